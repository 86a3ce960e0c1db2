import json
import logging
import re
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variables for correlation
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
username_var: ContextVar[Optional[str]] = ContextVar('username', default=None)
report_var: ContextVar[Optional[str]] = ContextVar('report', default=None)
stage_var: ContextVar[Optional[str]] = ContextVar('stage', default=None)

_CONTEXT_VARS = {
    'request_id': request_id_var,
    'username': username_var,
    'report': report_var,
    'stage': stage_var,
}


class SecretMasker:
    """Masks sensitive information in log messages."""

    def __init__(self):
        """Initialize secret masker with patterns."""
        self.patterns = [
            # Last.fm API keys, also inside query strings (api_key=...)
            r'(?i)(api_key|apikey|api-key)(\s*[:=]\s*["\']?)([a-zA-Z0-9\-_\.]{10,})',
            # Shared secrets and session keys
            r'(?i)(secret|session_key|sk)(\s*[:=]\s*["\']?)([a-zA-Z0-9\-_\.]{10,})',
            # Generic tokens and passwords
            r'(?i)(token|password)(\s*[:=]\s*["\']?)([a-zA-Z0-9\-_\.]{10,})',
        ]

        self.compiled_patterns = [re.compile(pattern) for pattern in self.patterns]

    @staticmethod
    def _mask_value(secret: str) -> str:
        # Keep first 4 and last 4 characters, mask the rest
        if len(secret) > 8:
            return secret[:4] + '*' * (len(secret) - 8) + secret[-4:]
        return '*' * len(secret)

    def mask_secrets(self, text: str) -> str:
        """Mask sensitive information in text."""
        if not text:
            return text

        masked_text = text
        for pattern in self.compiled_patterns:
            masked_text = pattern.sub(
                lambda m: f"{m.group(1)}{m.group(2)}{self._mask_value(m.group(3))}",
                masked_text,
            )
        return masked_text

    def mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Mask sensitive information in dictionary."""
        if not data:
            return data

        masked_data = {}
        for key, value in data.items():
            if isinstance(value, str):
                if key.lower() in ('api_key', 'apikey', 'secret', 'token', 'password'):
                    masked_data[key] = self._mask_value(value)
                else:
                    masked_data[key] = self.mask_secrets(value)
            elif isinstance(value, dict):
                masked_data[key] = self.mask_dict(value)
            elif isinstance(value, list):
                masked_data[key] = [self.mask_dict(item) if isinstance(item, dict)
                                    else self.mask_secrets(item) if isinstance(item, str)
                                    else item for item in value]
            else:
                masked_data[key] = value
        return masked_data


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self):
        """Initialize formatter."""
        super().__init__()
        self.masker = SecretMasker()

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'ts': datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + 'Z',
            'level': record.levelname,
            'logger': record.name,
            'message': self.masker.mask_secrets(record.getMessage()),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Correlation fields from context
        request_id = request_id_var.get()
        username = username_var.get()
        report = report_var.get()
        stage = stage_var.get()
        if request_id:
            log_entry['requestId'] = request_id
        if username:
            log_entry['username'] = username
        if report:
            log_entry['report'] = report
        if stage:
            log_entry['stage'] = stage

        if record.exc_info:
            log_entry['exception'] = self.masker.mask_secrets(self.formatException(record.exc_info))

        fields = getattr(record, 'fields', None)
        if fields:
            log_entry['fields'] = self.masker.mask_dict(fields)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class CorrelationContext:
    """Context manager for correlation data."""

    def __init__(self, request_id: Optional[str] = None,
                 username: Optional[str] = None,
                 report: Optional[str] = None,
                 stage: Optional[str] = None):
        """Initialize correlation context."""
        self._values = {
            'request_id': request_id,
            'username': username,
            'report': report,
            'stage': stage,
        }
        self._tokens = {}

    def __enter__(self):
        """Set correlation context."""
        for name, value in self._values.items():
            if value is not None:
                self._tokens[name] = _CONTEXT_VARS[name].set(value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Restore correlation context."""
        for name, token in self._tokens.items():
            _CONTEXT_VARS[name].reset(token)
        self._tokens = {}


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None) -> logging.Logger:
    """Setup structured logging for the lastfm_lab logger tree."""
    logger = logging.getLogger('lastfm_lab')
    logger.setLevel(getattr(logging, level.upper()))

    logger.handlers.clear()
    formatter = StructuredFormatter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = 'lastfm_lab') -> logging.Logger:
    """Get logger with structured formatting."""
    return logging.getLogger(name)


def log_with_fields(logger: logging.Logger, level: str, message: str,
                    fields: Optional[Dict[str, Any]] = None,
                    exc_info: bool = False, **kwargs) -> None:
    """Log message with additional fields."""
    merged = dict(fields or {})
    merged.update(kwargs)
    logger.log(getattr(logging, level.upper()), message,
               extra={'fields': merged} if merged else None,
               exc_info=exc_info)


def log_report_start(logger: logging.Logger, report: str, username: str, **kwargs) -> None:
    """Log report assembly start."""
    with CorrelationContext(report=report, username=username, stage='start'):
        log_with_fields(logger, 'INFO', 'Report started', kwargs)


def log_report_complete(logger: logging.Logger, report: str, username: str,
                        duration_ms: int, **kwargs) -> None:
    """Log report assembly completion."""
    with CorrelationContext(report=report, username=username, stage='complete'):
        log_with_fields(logger, 'INFO', 'Report completed', {
            'duration_ms': duration_ms,
            **kwargs
        })


def log_upstream_failure(logger: logging.Logger, method: str, reason: str, detail: str = '') -> None:
    """Log an upstream call that degraded to empty data."""
    log_with_fields(logger, 'WARNING', f'Upstream call {method} failed: {reason}', {
        'method': method,
        'reason': reason,
        'detail': detail[:200],
    })


def log_error(logger: logging.Logger, message: str, error: Exception, **kwargs) -> None:
    """Log error with exception details."""
    log_with_fields(logger, 'ERROR', message, {
        'error_type': type(error).__name__,
        'error_message': str(error),
        **kwargs
    }, exc_info=True)
