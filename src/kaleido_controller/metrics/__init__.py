"""Metrics module."""

from .registry import (
    record_command_sent,
    record_connection_state,
    record_orphan_data,
    record_queue_depth,
    record_reconnection,
    record_response,
    record_response_latency,
    start_metrics_server,
)

__all__ = [
    "record_command_sent",
    "record_connection_state",
    "record_orphan_data",
    "record_queue_depth",
    "record_reconnection",
    "record_response",
    "record_response_latency",
    "start_metrics_server",
]
