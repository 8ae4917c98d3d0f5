"""Sync pipeline metrics, served as JSON on /metrics.

Everything lives in process memory and starts from zero on restart.
Latencies are kept as a window of recent samples per timed operation, each
with a budget:

    sync      full orchestrator run; budget is Slack's 3 s interactive window,
              so ``over_budget`` counts syncs the user waited longer for
              than Slack itself would have
    clickup   task creation round-trip; budget is the configured HTTP
              timeout, so ``over_budget`` counts calls that ran into it

Collector methods are synchronous. They are only called from the event loop
and never await between reading and writing a value.
"""

from __future__ import annotations

import math
import time
from collections import Counter, deque
from typing import Any

from contextlayer.config import settings

SLACK_ACK_DEADLINE_MS = 3_000
WINDOW_SIZE = 512


class LatencyWindow:
    """Most recent ``size`` latencies plus lifetime totals."""

    def __init__(self, budget_ms: float, size: int = WINDOW_SIZE) -> None:
        self.budget_ms = budget_ms
        self.samples: deque[float] = deque(maxlen=size)
        self.total = 0
        self.over_budget = 0

    def add(self, elapsed_ms: float) -> None:
        self.total += 1
        self.samples.append(elapsed_ms)
        if elapsed_ms > self.budget_ms:
            self.over_budget += 1

    def quantile(self, q: float) -> float:
        """Nearest-rank quantile over the window; 0.0 when empty."""
        if not self.samples:
            return 0.0
        ordered = sorted(self.samples)
        rank = max(1, math.ceil(q * len(ordered)))
        return ordered[rank - 1]

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.total,
            "budget_ms": self.budget_ms,
            "over_budget": self.over_budget,
            "p50_ms": round(self.quantile(0.50), 1),
            "p95_ms": round(self.quantile(0.95), 1),
            "p99_ms": round(self.quantile(0.99), 1),
        }


class MetricsCollector:
    """Counts what happened to each sync and how long the slow parts took."""

    def __init__(self, clickup_budget_ms: float | None = None) -> None:
        if clickup_budget_ms is None:
            clickup_budget_ms = settings.http_timeout_s * 1000
        self._clickup_budget_ms = clickup_budget_ms
        self._started_at = time.monotonic()
        self.reset_all()

    def sync_started(self) -> None:
        self._syncs_started += 1

    def sync_finished(self, stage: str, elapsed_ms: float) -> None:
        """Record a finished run under its final stage (``notified`` or ``failed_notified``)."""
        self._syncs_by_stage[stage] += 1
        self._sync_latency.add(elapsed_ms)

    def duplicate_action(self) -> None:
        self._duplicates += 1

    def enrichment_degraded(self, kind: str) -> None:
        """A Slack lookup (user, channel, thread or reply author) fell back."""
        self._degraded[kind] += 1

    def callback_failed(self) -> None:
        self._callbacks_failed += 1

    def clickup_request(self, elapsed_ms: float, ok: bool) -> None:
        self._clickup_latency.add(elapsed_ms)
        if not ok:
            self._clickup_failures += 1

    def snapshot(self) -> dict[str, Any]:
        return {
            "uptime_seconds": round(time.monotonic() - self._started_at, 1),
            "syncs": {
                "started": self._syncs_started,
                "finished": dict(self._syncs_by_stage),
                "duplicates": self._duplicates,
            },
            "enrichment_degraded": dict(self._degraded),
            "callbacks_failed": self._callbacks_failed,
            "clickup_failures": self._clickup_failures,
            "latency": {
                "sync": self._sync_latency.to_dict(),
                "clickup": self._clickup_latency.to_dict(),
            },
        }

    def reset_all(self) -> None:
        self._syncs_started = 0
        self._syncs_by_stage: Counter[str] = Counter()
        self._duplicates = 0
        self._degraded: Counter[str] = Counter()
        self._callbacks_failed = 0
        self._clickup_failures = 0
        self._sync_latency = LatencyWindow(SLACK_ACK_DEADLINE_MS)
        self._clickup_latency = LatencyWindow(self._clickup_budget_ms)


_collector: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
