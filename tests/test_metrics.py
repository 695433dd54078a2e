"""
Metrics collector tests.
"""

from billing_sync.core.metrics import KNOWN_COUNTERS, MetricsCollector


class TestMetricsCollector:
    def test_known_counters_start_at_zero(self):
        metrics = MetricsCollector()
        for name in KNOWN_COUNTERS:
            assert metrics.get(name) == 0

    def test_inc(self):
        metrics = MetricsCollector()
        metrics.inc("events_applied_total")
        metrics.inc("events_applied_total", 2)
        assert metrics.get("events_applied_total") == 3

    def test_prometheus_format(self):
        metrics = MetricsCollector()
        metrics.inc("webhooks_rejected_total")
        text = metrics.to_prometheus()
        assert "# TYPE billing_sync_webhooks_rejected_total counter" in text
        assert "billing_sync_webhooks_rejected_total 1" in text
        assert "# TYPE billing_sync_uptime_seconds gauge" in text
        assert text.endswith("\n")
