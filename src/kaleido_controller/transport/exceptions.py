"""Transport-level error types, extending the protocol exception hierarchy."""

from __future__ import annotations

from kaleido_controller.protocol.exceptions import KaleidoProtocolError


class KaleidoConnectionError(KaleidoProtocolError):
    """Connection state error (not connected, connect failed, connection lost).

    Named KaleidoConnectionError to avoid shadowing Python's built-in ConnectionError.

    Attributes:
        reason: Specific failure reason
        state: Connection state when the error occurred

    """

    def __init__(self, reason: str, state: str = "unknown") -> None:
        self.reason: str = reason
        self.state: str = state
        super().__init__(f"Connection error: {reason} (state: {state})")


class ResponseTimeoutError(KaleidoProtocolError):
    """No complete reply arrived for the in-flight command in time.

    Attributes:
        command: Text of the command that timed out
        timeout_seconds: Timeout value that was exceeded
        correlation_id: Correlation ID of the exchange

    """

    def __init__(self, command: str, timeout_seconds: float, correlation_id: str = "") -> None:
        self.command: str = command
        self.timeout_seconds: float = timeout_seconds
        self.correlation_id: str = correlation_id
        super().__init__(f"No reply to {command!r} after {timeout_seconds:.1f}s")
