"""
Pipeline Metrics - Prometheus Timings and Counters
===================================================

Process-scoped metrics for sheet runs, bulk WhatsApp sends and the webhook
receiver. Every instance owns its own CollectorRegistry, so containers
never share counters.

Usage:
    metrics = PipelineMetrics()
    with metrics.timer("whatsapp-bulk-send"):
        ...
    metrics.stats("whatsapp-bulk-send")   # {"count": 1, "totalSeconds": ..., "avgSeconds": ...}
"""

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from ...domain.models import ProcessResult

logger = logging.getLogger(__name__)

DURATION_METRIC = "order_notifier_operation_duration_seconds"

DURATION_BUCKETS = (0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0)


class PipelineMetrics:
    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self._duration = Histogram(
            DURATION_METRIC,
            "Duration of pipeline operations",
            ["operation"],  # process-sheet|whatsapp-bulk-send|webhook-processing
            buckets=DURATION_BUCKETS,
            registry=self.registry,
        )
        self._runs = Counter(
            "order_notifier_sheet_runs_total",
            "Sheet pipeline runs by final state",
            ["state", "success"],
            registry=self.registry,
        )
        self._orders = Counter(
            "order_notifier_orders_total",
            "Order rows seen by sheet runs",
            ["kind"],  # new|already_sent|skipped
            registry=self.registry,
        )
        self._notifications = Counter(
            "order_notifier_notifications_total",
            "WhatsApp notifications per client",
            ["result"],  # sent|failed
            registry=self.registry,
        )

    @contextmanager
    def timer(self, operation: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self._duration.labels(operation=operation).observe(duration)
            logger.info(f"{operation}: {duration * 1000:.0f}ms")

    def record_run(self, result: ProcessResult) -> None:
        self._runs.labels(state=result.state.value, success=str(result.success).lower()).inc()
        self._orders.labels(kind="new").inc(result.new_count)
        self._orders.labels(kind="already_sent").inc(result.already_sent_count)
        self._orders.labels(kind="skipped").inc(result.skipped_rows)

    def record_notifications(self, sent: int, failed: int) -> None:
        self._notifications.labels(result="sent").inc(sent)
        self._notifications.labels(result="failed").inc(failed)

    def value(self, name: str, **labels) -> float:
        """Current value of one sample, 0 when it was never recorded."""
        return self.registry.get_sample_value(name, labels) or 0.0

    def stats(self, operation: str) -> Optional[dict]:
        count = self.value(f"{DURATION_METRIC}_count", operation=operation)
        if not count:
            return None
        total = self.value(f"{DURATION_METRIC}_sum", operation=operation)
        return {
            "count": int(count),
            "totalSeconds": round(total, 3),
            "avgSeconds": round(total / count, 3),
        }

    def render(self) -> bytes:
        return generate_latest(self.registry)
