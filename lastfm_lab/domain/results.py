from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class FetchFailure(str, Enum):
    """Why an upstream call produced no data."""

    TRANSPORT = "transport"
    EMPTY_BODY = "empty_body"
    MALFORMED_JSON = "malformed_json"
    UPSTREAM_ERROR = "upstream_error"


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one upstream call: a JSON object or a failure reason."""

    method: str
    payload: Dict[str, Any] = field(default_factory=dict)
    failure: Optional[FetchFailure] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    def or_empty(self) -> Dict[str, Any]:
        """Collapse a failed call to the empty object the normalizer expects."""
        if self.failure is not None:
            return {}
        return self.payload

    @classmethod
    def success(cls, method: str, payload: Dict[str, Any]) -> "FetchResult":
        return cls(method=method, payload=payload)

    @classmethod
    def failed(cls, method: str, failure: FetchFailure, detail: str = "") -> "FetchResult":
        return cls(method=method, failure=failure, detail=detail)
