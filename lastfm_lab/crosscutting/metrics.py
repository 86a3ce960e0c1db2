import time
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, List, Optional
from contextlib import contextmanager
import threading


@dataclass
class CallMetrics:
    """Metrics for a single upstream call."""
    method: str
    duration_ms: int = 0
    failure: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass
class RequestMetrics:
    """Aggregated upstream metrics for one report request."""
    total_calls: int = 0
    failed_calls: int = 0
    total_duration_ms: int = 0
    calls_by_method: Dict[str, int] = field(default_factory=dict)
    failures_by_reason: Dict[str, int] = field(default_factory=dict)
    calls: List[CallMetrics] = field(default_factory=list)

    @property
    def failure_rate(self) -> float:
        """Calculate the share of upstream calls that degraded to empty data."""
        if self.total_calls == 0:
            return 0.0
        return self.failed_calls / self.total_calls

    @property
    def average_call_duration_ms(self) -> float:
        """Calculate average upstream call duration."""
        if self.total_calls == 0:
            return 0.0
        return self.total_duration_ms / self.total_calls


class UpstreamMetrics:
    """Collects upstream call metrics; safe to share across fan-out worker threads."""

    def __init__(self):
        """Initialize metrics collector."""
        self._metrics = RequestMetrics()
        self._lock = threading.Lock()

    def record_call(self, method: str, duration_ms: int, failure: Optional[str] = None) -> None:
        """Record one finished upstream call."""
        with self._lock:
            metrics = self._metrics
            metrics.calls.append(CallMetrics(method=method, duration_ms=duration_ms, failure=failure))
            metrics.total_calls += 1
            metrics.total_duration_ms += max(0, duration_ms)
            metrics.calls_by_method[method] = metrics.calls_by_method.get(method, 0) + 1
            if failure is not None:
                metrics.failed_calls += 1
                metrics.failures_by_reason[failure] = metrics.failures_by_reason.get(failure, 0) + 1

    @contextmanager
    def call_context(self, method: str):
        """Time an upstream call; the body sets `outcome['failure']` when the call degrades."""
        outcome: Dict[str, Optional[str]] = {'failure': None}
        start = time.monotonic()
        try:
            yield outcome
        finally:
            duration_ms = int((time.monotonic() - start) * 1000)
            self.record_call(method, duration_ms, outcome['failure'])

    def get_metrics(self) -> RequestMetrics:
        """Get current metrics."""
        with self._lock:
            return self._metrics

    def to_dict(self) -> Dict[str, Any]:
        """Summary for structured log fields (per-call detail omitted)."""
        with self._lock:
            data = asdict(self._metrics)
            data.pop('calls')
            data['failure_rate'] = self._metrics.failure_rate
            data['average_call_duration_ms'] = self._metrics.average_call_duration_ms
            return data
