"""Transport layer: asyncio TCP connection, timeouts and reconnect policy."""

from kaleido_controller.transport.exceptions import KaleidoConnectionError, ResponseTimeoutError
from kaleido_controller.transport.retry_policy import RetryPolicy, TimeoutConfig
from kaleido_controller.transport.socket_abstraction import TCPConnection

__all__ = [
    "KaleidoConnectionError",
    "ResponseTimeoutError",
    "RetryPolicy",
    "TCPConnection",
    "TimeoutConfig",
]
