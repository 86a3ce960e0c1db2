import threading

import pytest

from lastfm_lab.crosscutting.metrics import CallMetrics, RequestMetrics, UpstreamMetrics


class TestRequestMetrics:
    """Tests for aggregated request metrics."""

    def test_empty_rates(self):
        metrics = RequestMetrics()
        assert metrics.failure_rate == 0.0
        assert metrics.average_call_duration_ms == 0.0

    def test_call_metrics_ok(self):
        assert CallMetrics(method='user.getInfo').ok
        assert not CallMetrics(method='user.getInfo', failure='transport').ok


class TestUpstreamMetrics:
    """Tests for the upstream metrics collector."""

    def setup_method(self):
        """Set up test fixtures."""
        self.metrics = UpstreamMetrics()

    def test_record_call(self):
        self.metrics.record_call('user.getInfo', 40)
        self.metrics.record_call('artist.getTopTags', 60, failure='empty_body')
        self.metrics.record_call('artist.getTopTags', 20)

        data = self.metrics.get_metrics()
        assert data.total_calls == 3
        assert data.failed_calls == 1
        assert data.calls_by_method == {'user.getInfo': 1, 'artist.getTopTags': 2}
        assert data.failures_by_reason == {'empty_body': 1}
        assert data.average_call_duration_ms == 40
        assert data.failure_rate == pytest.approx(1 / 3)

    def test_call_context_records_failure(self):
        with self.metrics.call_context('user.getInfo') as outcome:
            outcome['failure'] = 'malformed_json'

        call = self.metrics.get_metrics().calls[0]
        assert call.method == 'user.getInfo'
        assert call.failure == 'malformed_json'
        assert call.duration_ms >= 0

    def test_call_context_records_on_exception(self):
        with pytest.raises(RuntimeError):
            with self.metrics.call_context('user.getInfo'):
                raise RuntimeError("boom")

        assert self.metrics.get_metrics().total_calls == 1

    def test_to_dict_omits_calls(self):
        self.metrics.record_call('user.getInfo', 10, failure='transport')
        data = self.metrics.to_dict()

        assert 'calls' not in data
        assert data['total_calls'] == 1
        assert data['failure_rate'] == 1.0
        assert data['average_call_duration_ms'] == 10

    def test_thread_safety(self):
        def worker():
            for _ in range(100):
                self.metrics.record_call('artist.getTopTags', 1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert self.metrics.get_metrics().total_calls == 800
