"""
Prometheus metrics for MongoDB operations and topology actions.
"""
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Gauge, Histogram

# MongoDB operation metrics
mongodb_operations_duration = Histogram(
    "mongoagent_mongodb_operations_duration",
    "Duration (in seconds) of MongoDB operations issued to the server",
    ["op"],
    buckets=(1.0, 1.5, 2.5, 4.0, 6.0, 8.5, 11.5, 15.0),
)

mongodb_operations_error = Counter(
    "mongoagent_mongodb_operations_error",
    "Number of MongoDB operations the server returned an error for",
    ["op"],
)

# Action metrics
action_total = Counter(
    "mongoagent_action_total",
    "Total number of actions that reached a terminal state",
    ["kind", "state", "error_kind"],
)

action_duration_seconds = Histogram(
    "mongoagent_action_duration_seconds",
    "Time spent running actions",
    ["kind", "state"],
    buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 300),
)

action_retry_total = Counter(
    "mongoagent_action_retry_total",
    "Total number of read/plan/apply retries",
    ["kind", "reason"],
)

action_rejected_total = Counter(
    "mongoagent_action_rejected_total",
    "Submissions refused before entering the state machine",
    ["reason"],
)

action_running = Gauge(
    "mongoagent_action_running",
    "Whether a topology action currently holds the single-flight slot",
)


@contextmanager
def observe_mongodb_op(op: str) -> Iterator[None]:
    """Time a MongoDB server operation and count it if it raises."""
    with mongodb_operations_duration.labels(op=op).time():
        try:
            yield
        except Exception:
            mongodb_operations_error.labels(op=op).inc()
            raise
