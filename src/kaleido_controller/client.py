"""Connection lifecycle for one Kaleido device: connect, read, reconnect, act."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Mapping
from types import TracebackType

from kaleido_controller.actions import (
    ACTION_PRESET,
    AlarmState,
    TallyColor,
    alarm_command,
    build_command,
    tally_command,
    umd_text_command,
)
from kaleido_controller.config import ConfigurationError, KaleidoSettings
from kaleido_controller.logging_abstraction import get_logger
from kaleido_controller.metrics import registry
from kaleido_controller.protocol.commands import Command
from kaleido_controller.session import KaleidoSession, SessionStatus, StatusCallback
from kaleido_controller.state import DerivedState
from kaleido_controller.transport.exceptions import KaleidoConnectionError
from kaleido_controller.transport.retry_policy import RetryPolicy
from kaleido_controller.transport.socket_abstraction import TCPConnection

logger = get_logger(__name__)

__all__ = ["KaleidoClient"]


class KaleidoClient:
    """Owns one TCP connection and the session running over it.

    The derived state outlives individual connections; each reconnect starts a
    fresh queue and context and re-runs the startup queries.
    """

    def __init__(
        self,
        settings: KaleidoSettings,
        state: DerivedState | None = None,
        on_status: StatusCallback | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        if not settings.host:
            msg = "No Kaleido host configured (set KALEIDO_HOST or pass --host)"
            raise ConfigurationError(msg)

        self.settings: KaleidoSettings = settings
        self.host: str = settings.host
        self.connection: TCPConnection = TCPConnection(
            self.host,
            settings.port,
            connect_timeout=settings.connect_timeout,
            write_timeout=settings.write_timeout,
        )
        self.session: KaleidoSession = KaleidoSession(
            self.host,
            self.connection,
            state=state,
            timeout_config=settings.timeout_config(),
            max_buffer_bytes=settings.max_buffer_bytes,
            on_status=on_status,
        )
        self.retry_policy: RetryPolicy = retry_policy or settings.retry_policy()
        self._run_task: asyncio.Task[None] | None = None
        self._connected: asyncio.Event = asyncio.Event()
        self._stopping: bool = False
        self._failure: KaleidoConnectionError | None = None

    @property
    def state(self) -> DerivedState:
        return self.session.state

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    async def start(self) -> None:
        """Start the connect/read/reconnect loop in the background."""
        if self._run_task is not None and not self._run_task.done():
            return
        self._stopping = False
        self._failure = None
        self._run_task = asyncio.create_task(self._run(), name=f"kaleido-client-{self.host}")

    async def wait_until_connected(self, timeout: float | None = None) -> None:
        await asyncio.wait_for(self._connected.wait(), timeout=timeout)

    async def wait_until_idle(self, timeout: float | None = None) -> None:
        await self.session.wait_until_idle(timeout)

    async def run_forever(self) -> None:
        """Start (if needed) and wait until the connection loop gives up or is stopped.

        Raises:
            KaleidoConnectionError: Reconnect attempts were exhausted

        """
        await self.start()
        if self._run_task is not None:
            await self._run_task
        if self._failure is not None:
            raise self._failure

    async def stop(self) -> None:
        """Close the device session and the socket, and stop reconnecting."""
        self._stopping = True
        if self.connection.is_connected:
            logger.info("Closing device session", extra={"host": self.host})
            _ = await self.connection.send(Command.close_session().wire)

        task = self._run_task
        self._run_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self.connection.close()
        self._connected.clear()
        self.session.on_transport_disconnected()
        registry.record_connection_state(self.host, "disconnected")
        self.session.set_status(SessionStatus.DISCONNECTED, "Stopped")

    async def __aenter__(self) -> KaleidoClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _run(self) -> None:
        attempt = 0
        while not self._stopping:
            registry.record_connection_state(self.host, "connecting")
            self.session.set_status(SessionStatus.CONNECTING, None)

            if await self.connection.connect():
                attempt = 0
                reason = "connection_lost"
                await self._serve_connection()
                if self._stopping:
                    break
                self.session.set_status(SessionStatus.DISCONNECTED, "Connection closed by device")
            else:
                reason = "connect_failed"
                registry.record_connection_state(self.host, "disconnected")
                self.session.set_status(
                    SessionStatus.CONNECTION_FAILURE,
                    f"Cannot connect to {self.host}:{self.settings.port}",
                )

            if not self.retry_policy.should_retry(attempt):
                logger.error(
                    "Giving up on %s after %d reconnect attempts",
                    self.host,
                    attempt,
                    extra={"host": self.host, "attempts": attempt},
                )
                self._failure = KaleidoConnectionError("reconnect_attempts_exhausted", state="disconnected")
                break

            delay = self.retry_policy.get_delay(attempt)
            attempt += 1
            registry.record_reconnection(self.host, reason)
            logger.warning(
                "Reconnecting to %s in %.2fs (attempt %d)",
                self.host,
                delay,
                attempt,
                extra={"host": self.host, "delay": delay, "attempt": attempt, "reason": reason},
            )
            await asyncio.sleep(delay)

    async def _serve_connection(self) -> None:
        registry.record_connection_state(self.host, "connected")
        try:
            await self.session.on_transport_connected()
            self._connected.set()
            while True:
                data = await self.connection.recv()
                if data is None:
                    break
                await self.session.feed(data)
        finally:
            self._connected.clear()
            self.session.on_transport_disconnected()
            await self.connection.close()
            registry.record_connection_state(self.host, "disconnected")

    # Intents
    async def recall_layout(self, layout_id: str) -> None:
        await self.session.enqueue_layout_change(layout_id)

    async def set_tally(self, color: TallyColor, active: bool) -> None:
        await self.session.enqueue(tally_command(color, active))

    async def set_alarm(self, state: AlarmState) -> None:
        await self.session.enqueue(alarm_command(state))

    async def set_umd_text(self, text: str) -> None:
        await self.session.enqueue(umd_text_command(text))

    async def run_action(self, action_id: str, options: Mapping[str, object]) -> None:
        """Run an action by id with its option values."""
        if action_id == ACTION_PRESET:
            name = options.get("name")
            if not isinstance(name, str) or not name:
                msg = "Preset action needs a layout name"
                raise ValueError(msg)
            await self.recall_layout(name)
            return
        await self.session.enqueue(build_command(action_id, options))
