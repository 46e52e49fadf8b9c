"""CloudWatch custom metrics for outbound Square calls.

Every call the connector makes to Square (customer search, customer
creation, booking creation) records a request count, a latency and, on
failure, an error count keyed by the failure kind.

* Data points are buffered in memory behind a lock, only while enabled.
* With ``METRICS_ENABLED=true`` a daemon thread pushes the buffer to
  CloudWatch every ``FLUSH_INTERVAL_SECONDS`` and once more at exit.
* Otherwise the points are only logged at DEBUG level and never buffered.

>>> from vapi_square.services.metrics import metrics
>>> metrics.record_success("POST /v2/bookings", latency_ms=212.0)
>>> metrics.record_failure("POST /v2/bookings", error_type="unavailable")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "VapiSquare"
SERVICE = "square"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch PutMetricData limit


def _point(
    name: str,
    dimensions: dict[str, str],
    value: float,
    unit: str,
    timestamp: datetime,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": [{"Name": k, "Value": v} for k, v in dimensions.items()],
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


class MetricsClient:
    """Batched CloudWatch publisher for Square call metrics."""

    def __init__(self, enabled: bool | None = None) -> None:
        if enabled is None:
            enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._enabled = enabled
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, operation: str, latency_ms: float) -> None:
        """Record a Square call that returned a usable response."""
        now = datetime.now(UTC)
        self._append(
            _point(
                "Square/RequestCount",
                {"Service": SERVICE, "Status": "success"},
                1, "Count", now,
            ),
            _point(
                "Square/Latency",
                {"Service": SERVICE, "Operation": operation},
                latency_ms, "Milliseconds", now,
            ),
        )
        logger.debug("Metric: %s success latency=%.1fms", operation, latency_ms)

    def record_failure(
        self,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Record a failed Square call; latency is only kept when known."""
        now = datetime.now(UTC)
        points = [
            _point(
                "Square/RequestCount",
                {"Service": SERVICE, "Status": "failure"},
                1, "Count", now,
            ),
            _point(
                "Square/ErrorCount",
                {"Service": SERVICE, "ErrorType": error_type},
                1, "Count", now,
            ),
        ]
        if latency_ms > 0:
            points.append(
                _point(
                    "Square/Latency",
                    {"Service": SERVICE, "Operation": operation},
                    latency_ms, "Milliseconds", now,
                )
            )
        self._append(*points)
        logger.debug(
            "Metric: %s failure error=%s latency=%.1fms",
            operation, error_type, latency_ms,
        )

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    def _append(self, *points: dict[str, Any]) -> None:
        # Nothing flushes a disabled buffer.
        if not self._enabled:
            return
        with self._lock:
            self._buffer.extend(points)

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info(
            "Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS,
        )


metrics = MetricsClient()
