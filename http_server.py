#!/usr/bin/env python3
"""
lastfm-lab HTTP Server Runner
"""

import os

from lastfm_lab.crosscutting.config import setup_config
from lastfm_lab.interfaces.http import HTTPServer


def main():
    """Run the HTTP server with settings from .env when present."""
    config = setup_config('.env') if os.path.exists('.env') else setup_config()
    server = HTTPServer(
        host='localhost',
        port=3000,
        debug=True,
        config=config
    )
    server.run()


if __name__ == '__main__':
    main()
