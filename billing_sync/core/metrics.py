"""
Webhook processing counters with Prometheus text exposition.
"""

from __future__ import annotations

import time
from collections import defaultdict

PREFIX = "billing_sync_"

# Counters rendered even before their first increment, so dashboards
# see a zero instead of a missing series.
KNOWN_COUNTERS = (
    "webhooks_received_total",
    "webhooks_rejected_total",
    "events_applied_total",
    "events_noop_total",
    "events_stale_total",
    "events_duplicate_total",
    "events_unattributable_total",
    "events_unknown_total",
    "storage_errors_total",
)


class MetricsCollector:
    """In-process counters for a single service instance."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = defaultdict(int)
        for name in KNOWN_COUNTERS:
            self._counters[f"{PREFIX}{name}"] = 0
        self._start_time = time.time()

    def inc(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        self._counters[f"{PREFIX}{name}"] += value

    def get(self, name: str) -> int:
        return self._counters.get(f"{PREFIX}{name}", 0)

    def to_prometheus(self) -> str:
        """Export all counters plus uptime in Prometheus text format."""
        lines = []
        for name, value in sorted(self._counters.items()):
            lines.append(f"# TYPE {name} counter")
            lines.append(f"{name} {value}")
        uptime = time.time() - self._start_time
        lines.append(f"# TYPE {PREFIX}uptime_seconds gauge")
        lines.append(f"{PREFIX}uptime_seconds {uptime:.1f}")
        return "\n".join(lines) + "\n"
