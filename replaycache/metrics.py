"""
Prometheus metrics for the replay cache.

Counters stay unregistered until init_metrics() runs, so embedding the
library never touches the default registry unless asked to. CachePipeline
initializes them; the CLI can also expose them over HTTP during long runs.

Environment Variables:
    REPLAYCACHE_METRICS_PORT: HTTP port for /metrics when start_metrics_server() gets none
        - default: 9108

Usage:
    from replaycache.metrics import init_metrics, track_chunk

    init_metrics()
    track_chunk("hit")
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

DEFAULT_PORT = 9108

PARTITIONS_TOTAL: Optional[Counter] = None
RECORDS_APPENDED: Optional[Counter] = None
CHUNKS_TOTAL: Optional[Counter] = None
REPLAY_DURATION: Optional[Histogram] = None

_metrics_initialized = False
_metrics_lock = threading.Lock()


def init_metrics() -> None:
    """
    Create the metrics (call once; later calls are no-ops).

    Thread-safe via module-level lock.
    """
    global PARTITIONS_TOTAL, RECORDS_APPENDED, CHUNKS_TOTAL, REPLAY_DURATION
    global _metrics_initialized

    with _metrics_lock:
        if _metrics_initialized:
            return

        # Generation outcome per partition (labels: outcome)
        PARTITIONS_TOTAL = Counter(
            "replaycache_partitions_total",
            "Partitions handled by generation",
            labelnames=["outcome"],
        )

        RECORDS_APPENDED = Counter(
            "replaycache_records_appended_total",
            "Raw records appended to partition logs",
        )

        # Replay chunks (labels: outcome = hit, miss, skipped)
        CHUNKS_TOTAL = Counter(
            "replaycache_chunks_total",
            "Replay chunks flushed",
            labelnames=["outcome"],
        )

        REPLAY_DURATION = Histogram(
            "replaycache_replay_duration_seconds",
            "Duration of replay passes in seconds",
            buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
        )

        _metrics_initialized = True
        logger.debug("Prometheus metrics initialized")


def start_metrics_server(port: Optional[int] = None) -> int:
    """
    Expose /metrics on a background HTTP server.

    Args:
        port: HTTP port (default: REPLAYCACHE_METRICS_PORT or 9108)

    Returns:
        Port the server listens on
    """
    init_metrics()
    resolved = port or int(os.getenv("REPLAYCACHE_METRICS_PORT", str(DEFAULT_PORT)))
    # non-blocking, serves from a daemon thread
    start_http_server(resolved)
    logger.info("Metrics server started on port %d", resolved)
    return resolved


def track_partition(outcome: str, records: int = 0) -> None:
    """
    Count a generated, skipped or failed partition.

    Args:
        outcome: "generated", "skipped" or "failed"
        records: Records appended for it
    """
    if PARTITIONS_TOTAL is not None:
        PARTITIONS_TOTAL.labels(outcome=outcome).inc()
    if RECORDS_APPENDED is not None and records:
        RECORDS_APPENDED.inc(records)


def track_chunk(outcome: str) -> None:
    if CHUNKS_TOTAL is not None:
        CHUNKS_TOTAL.labels(outcome=outcome).inc()


@contextmanager
def track_replay_duration() -> Generator[None, None, None]:
    """
    Time a replay pass.

    Usage:
        with track_replay_duration():
            ...
    """
    if REPLAY_DURATION is None:
        yield
        return

    with REPLAY_DURATION.time():
        yield
