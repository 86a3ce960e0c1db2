class MissingInput(Exception):
    """Required request input (the username) is absent or blank."""

    def __init__(self, field: str = "username", message: str = "") -> None:
        super().__init__(message or f"Missing required input: {field}")
        self.field = field


class UpstreamUnavailable(Exception):
    """A single upstream call failed. Recovered locally as an empty result."""

    def __init__(self, reason: str, message: str = "Upstream call failed") -> None:
        super().__init__(message)
        self.reason = reason


class AggregationFailure(Exception):
    """Unexpected internal error while assembling a report."""

    def __init__(self, report: str, message: str = "Report assembly failed") -> None:
        super().__init__(message)
        self.report = report
