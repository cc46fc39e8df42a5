"""Response timeout configuration and reconnect backoff."""

from __future__ import annotations

import random

from kaleido_controller.const import DEFAULT_RESPONSE_TIMEOUT


class TimeoutConfig:
    """Timeouts applied to one Kaleido connection.

    The device protocol itself defines no timeout; a command that never gets
    a reply would otherwise stall the queue forever. ``response_timeout_seconds``
    bounds the wait for a complete reply after the command is written.
    """

    def __init__(
        self,
        response_timeout_seconds: float = DEFAULT_RESPONSE_TIMEOUT,
        connect_timeout_seconds: float = 3.0,
        write_timeout_seconds: float = 2.0,
    ) -> None:
        if response_timeout_seconds <= 0:
            msg = f"response_timeout_seconds must be positive, got {response_timeout_seconds}"
            raise ValueError(msg)
        self.response_timeout_seconds: float = response_timeout_seconds
        self.connect_timeout_seconds: float = connect_timeout_seconds
        self.write_timeout_seconds: float = write_timeout_seconds

    def __repr__(self) -> str:
        return (
            f"TimeoutConfig(response={self.response_timeout_seconds:.1f}s, "
            f"connect={self.connect_timeout_seconds:.1f}s, "
            f"write={self.write_timeout_seconds:.1f}s)"
        )


class RetryPolicy:
    """Exponential backoff with jitter for reconnect attempts.

    Formula: min(base * 2**attempt, max) plus up to ``jitter_factor`` of that
    delay. ``max_attempts`` None retries forever.
    """

    def __init__(
        self,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        jitter_factor: float = 0.1,
        max_attempts: int | None = None,
    ) -> None:
        self.base_delay_seconds: float = base_delay_seconds
        self.max_delay_seconds: float = max_delay_seconds
        self.jitter_factor: float = jitter_factor
        self.max_attempts: int | None = max_attempts

    def get_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt ``attempt`` (0-indexed)."""
        delay = min(self.base_delay_seconds * (2**attempt), self.max_delay_seconds)
        return delay + random.uniform(0, delay * self.jitter_factor)  # noqa: S311

    def should_retry(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt < self.max_attempts

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(base_delay={self.base_delay_seconds}s, "
            f"max_delay={self.max_delay_seconds}s, "
            f"jitter_factor={self.jitter_factor}, "
            f"max_attempts={self.max_attempts})"
        )
