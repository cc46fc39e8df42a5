"""Prometheus metrics registry for the Kaleido command queue."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

kaleido_command_sent_total: Final = Counter(  # type: ignore[assignment]
    "kaleido_command_sent_total",
    "Total commands written to the device",
    ["kind", "outcome"],
)

kaleido_response_total: Final = Counter(  # type: ignore[assignment]
    "kaleido_response_total",
    "Total resolved command exchanges",
    ["kind", "outcome"],
)

kaleido_response_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "kaleido_response_latency_seconds",
    "Time from writing a command to resolving its reply",
    ["kind"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

kaleido_orphan_data_total: Final = Counter(  # type: ignore[assignment]
    "kaleido_orphan_data_total",
    "Total chunks received while no command was in flight",
)

kaleido_queue_depth: Final = Gauge(  # type: ignore[assignment]
    "kaleido_queue_depth",
    "Commands waiting in the queue, including the one in flight",
    ["host"],
)

kaleido_connection_state: Final = Gauge(  # type: ignore[assignment]
    "kaleido_connection_state",
    "Current connection state",
    ["host", "state"],
)

kaleido_reconnection_total: Final = Counter(  # type: ignore[assignment]
    "kaleido_reconnection_total",
    "Total reconnection attempts",
    ["host", "reason"],
)

_CONNECTION_STATES = ("disconnected", "connecting", "connected")

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_command_sent(kind: str, outcome: str) -> None:
    kaleido_command_sent_total.labels(kind=kind, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_response(kind: str, outcome: str) -> None:
    """Record a resolved exchange: parsed, nack, malformed, timeout or unknown."""
    kaleido_response_total.labels(kind=kind, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_response_latency(kind: str, latency_seconds: float) -> None:
    kaleido_response_latency_seconds.labels(kind=kind).observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_orphan_data() -> None:
    kaleido_orphan_data_total.inc()  # type: ignore[no-untyped-call]


def record_queue_depth(host: str, depth: int) -> None:
    kaleido_queue_depth.labels(host=host).set(depth)  # type: ignore[no-untyped-call]


def record_connection_state(host: str, state: str) -> None:
    """Set the gauge to 1 for the current state and 0 for all others."""
    for s in _CONNECTION_STATES:
        kaleido_connection_state.labels(host=host, state=s).set(1 if s == state else 0)  # type: ignore[no-untyped-call]


def record_reconnection(host: str, reason: str) -> None:
    kaleido_reconnection_total.labels(host=host, reason=reason).inc()  # type: ignore[no-untyped-call]
