"""Command queue and reply dispatcher for one Kaleido connection.

The Kaleido protocol has no request identifiers, so replies are attributed by
position: exactly one command is in flight at a time, and every inbound byte
belongs to the command at the head of the queue. ``KaleidoSession`` owns that
queue, the working buffer, the session context and (shared with the caller)
the derived state, and has the lifecycle of one TCP connection.

Inbound chunks are processed strictly one at a time under ``_inbound_lock``;
a chunk is fully handled, including any follow-up commands it causes to be
queued and sent, before the next chunk is looked at.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from kaleido_controller.const import DEFAULT_MAX_BUFFER_BYTES
from kaleido_controller.context import ContextState, SessionContext
from kaleido_controller.correlation import correlation_context, generate_correlation_id
from kaleido_controller.logging_abstraction import get_logger
from kaleido_controller.metrics import registry
from kaleido_controller.protocol.commands import Command, CommandKind, split_room_qualifier
from kaleido_controller.protocol.exceptions import (
    IncompleteResponseError,
    MalformedResponseError,
    ResponseFramingError,
)
from kaleido_controller.protocol.framer import ResponseBuffer
from kaleido_controller.protocol.parsers import (
    is_nack,
    parse_acknowledgement,
    parse_current_layout,
    parse_key_value,
    parse_layout_list,
    parse_room_list,
)
from kaleido_controller.state import SOFTWARE_VERSION_KEY, SYSTEM_NAME_KEY, DerivedState
from kaleido_controller.transport.exceptions import ResponseTimeoutError
from kaleido_controller.transport.retry_policy import TimeoutConfig

logger = get_logger(__name__)

__all__ = [
    "KaleidoSession",
    "PendingCommand",
    "SessionStatus",
    "StatusCallback",
    "Transport",
    "startup_commands",
]


class SessionStatus(Enum):
    """Connectivity/error status reported to collaborators."""

    OK = "ok"
    CONNECTING = "connecting"
    DISCONNECTED = "disconnected"
    CONNECTION_FAILURE = "connection_failure"
    UNKNOWN_WARNING = "unknown_warning"
    UNKNOWN_ERROR = "unknown_error"


StatusCallback = Callable[[SessionStatus, str | None], None]


class Transport(Protocol):
    """What the session needs from a connection: a readiness flag and a writer."""

    @property
    def is_connected(self) -> bool: ...

    async def send(self, data: bytes) -> bool: ...


@dataclass
class PendingCommand:
    """Queue entry: an immutable command plus its send bookkeeping.

    ``group`` ties the members of one room macro (open, commands, close)
    together so they can be skipped as a unit when the room cannot be opened.
    """

    command: Command
    sequence: int
    group: int | None = None
    correlation_id: str = ""
    sent_at: float | None = None
    timeout_handle: asyncio.TimerHandle | None = None

    @property
    def in_flight(self) -> bool:
        return self.sent_at is not None


def startup_commands(host: str) -> list[Command]:
    """Commands queued on every new connection, in order."""
    return [
        Command.open_host_session(host),
        Command.get_parameter(SOFTWARE_VERSION_KEY),
        Command.get_parameter(SYSTEM_NAME_KEY),
        Command.get_room_list(),
        Command.get_layout_list(),
        Command.get_current_layout(),
    ]


def room_layout_query(room_id: str) -> list[Command]:
    """Open a room, ask for its current layout, close it again."""
    return [Command.open_session(room_id), Command.get_current_layout(), Command.close_session()]


class KaleidoSession:
    """Single-in-flight command queue, reply classifier and context tracker."""

    def __init__(
        self,
        host: str,
        transport: Transport,
        state: DerivedState | None = None,
        timeout_config: TimeoutConfig | None = None,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
        on_status: StatusCallback | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            host: Device host, used for the root session id and metric labels
            transport: Connection the session writes commands to
            state: Derived state store to update (a fresh one if None)
            timeout_config: Response timeout configuration
            max_buffer_bytes: Working buffer bound before a reply is declared malformed
            on_status: Callback for status changes

        """
        self.host: str = host
        self.transport: Transport = transport
        self.state: DerivedState = state if state is not None else DerivedState()
        self.timeout_config: TimeoutConfig = timeout_config or TimeoutConfig()
        self.context: SessionContext = SessionContext()
        self.buffer: ResponseBuffer = ResponseBuffer(max_buffer_bytes)
        self.on_status: StatusCallback | None = on_status
        self.status: SessionStatus = SessionStatus.DISCONNECTED
        self.status_message: str | None = None

        self._queue: deque[PendingCommand] = deque()
        self._sequence: itertools.count[int] = itertools.count(1)
        self._groups: itertools.count[int] = itertools.count(1)
        self._inbound_lock: asyncio.Lock = asyncio.Lock()
        self._idle: asyncio.Event = asyncio.Event()
        self._idle.set()
        self._background_tasks: set[asyncio.Task[None]] = set()

        self._reply_handlers: dict[CommandKind, Callable[[Command, str], list[list[Command]]]] = {
            CommandKind.OPEN_SESSION: self._handle_open,
            CommandKind.CLOSE_SESSION: self._handle_close,
            CommandKind.GET_PARAMETER: self._handle_parameter,
            CommandKind.GET_LAYOUT_LIST: self._handle_layout_list,
            CommandKind.GET_ROOM_LIST: self._handle_room_list,
            CommandKind.GET_CURRENT_LAYOUT: self._handle_current_layout,
            CommandKind.SET_LAYOUT: self._handle_set_layout,
            CommandKind.SET_TEXT: self._handle_acknowledged,
            CommandKind.SET_STATUS: self._handle_acknowledged,
        }

    # Queue inspection
    @property
    def queue(self) -> tuple[Command, ...]:
        """Queued commands, head (the only one that may be in flight) first."""
        return tuple(pending.command for pending in self._queue)

    @property
    def in_flight(self) -> Command | None:
        if self._queue and self._queue[0].in_flight:
            return self._queue[0].command
        return None

    @property
    def is_idle(self) -> bool:
        return not self._queue

    @property
    def is_session_closed(self) -> bool:
        """True after the root session itself was closed with an acknowledged ``<closeID/>``."""
        return self.context.current.state is ContextState.CLOSED

    async def wait_until_idle(self, timeout: float | None = None) -> None:
        """Wait for the queue to drain.

        Raises:
            TimeoutError: The queue did not drain within ``timeout`` seconds

        """
        await asyncio.wait_for(self._idle.wait(), timeout=timeout)

    # Outbound
    async def enqueue(self, command: Command | str) -> None:
        """Append a command; it is sent immediately if the queue was empty."""
        if isinstance(command, str):
            command = Command.from_text(command)
        await self._enqueue_batch([command])

    async def enqueue_layout_change(self, layout_id: str) -> None:
        """Recall a layout; room-qualified ids are wrapped in open/set/close for that room."""
        room, _ = split_room_qualifier(layout_id)
        if room is None:
            await self.enqueue(Command.set_current_layout(layout_id))
            return
        await self._enqueue_batch(
            [Command.open_session(room), Command.set_current_layout(layout_id), Command.close_session()],
        )

    async def _enqueue_batch(self, commands: list[Command]) -> None:
        """Append commands back to back, sending the head only once all are queued.

        A batch that starts by opening a room is tagged as one group.
        """
        if not commands:
            return
        was_empty = not self._queue
        opens_room = commands[0].kind is CommandKind.OPEN_SESSION and commands[0].room is not None
        group = next(self._groups) if opens_room else None
        for command in commands:
            pending = PendingCommand(command=command, sequence=next(self._sequence), group=group)
            self._queue.append(pending)
            logger.debug(
                "Queued: %s",
                command,
                extra={"kind": command.kind.value, "sequence": pending.sequence, "depth": len(self._queue)},
            )
        self._idle.clear()
        registry.record_queue_depth(self.host, len(self._queue))

        if was_empty:
            await self._send_head()

    async def process_queue(self) -> None:
        """(Re)send the head command if it has not been written yet, e.g. after a reconnect."""
        await self._send_head()

    async def _send_head(self) -> None:
        if not self._queue:
            self._idle.set()
            return

        pending = self._queue[0]
        if pending.in_flight:
            return

        command = pending.command
        if not self.transport.is_connected:
            logger.error(
                "Socket not connected, cannot send %s",
                command,
                extra={"kind": command.kind.value, "depth": len(self._queue)},
            )
            registry.record_command_sent(command.kind.value, "not_connected")
            return

        pending.correlation_id = generate_correlation_id(pending.sequence)
        pending.sent_at = time.monotonic()
        with correlation_context(pending.correlation_id):
            logger.debug("Sending: %s", command, extra={"kind": command.kind.value})
            sent = await self.transport.send(command.wire)

        if not self._queue or self._queue[0] is not pending:
            # Disconnected while writing; the queue has been reset.
            return
        if not sent:
            pending.sent_at = None
            registry.record_command_sent(command.kind.value, "failed")
            return

        registry.record_command_sent(command.kind.value, "success")
        loop = asyncio.get_running_loop()
        pending.timeout_handle = loop.call_later(
            self.timeout_config.response_timeout_seconds,
            self._on_response_timeout,
            pending,
        )

    async def _complete_head(self) -> None:
        """Pop the resolved head command and dispatch the next one."""
        pending = self._queue.popleft()
        if pending.timeout_handle is not None:
            pending.timeout_handle.cancel()
        if pending.sent_at is not None:
            registry.record_response_latency(pending.command.kind.value, time.monotonic() - pending.sent_at)
        registry.record_queue_depth(self.host, len(self._queue))

        if self._queue:
            await self._send_head()
        else:
            self._idle.set()

    # Timeouts
    def _on_response_timeout(self, pending: PendingCommand) -> None:
        task = asyncio.create_task(self._expire(pending))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _expire(self, pending: PendingCommand) -> None:
        async with self._inbound_lock:
            if not self._queue or self._queue[0] is not pending:
                return
            with correlation_context(pending.correlation_id):
                error = ResponseTimeoutError(
                    pending.command.text,
                    self.timeout_config.response_timeout_seconds,
                    pending.correlation_id,
                )
                logger.error(
                    "%s",
                    error,
                    extra={"kind": pending.command.kind.value, "buffered_bytes": self.buffer.size},
                )
                registry.record_response(pending.command.kind.value, "timeout")
                self._report(SessionStatus.UNKNOWN_ERROR, str(error))
                self.buffer.clear()
                await self._complete_head()

    # Inbound
    async def feed(self, data: bytes | str) -> None:
        """Process one inbound chunk from the transport."""
        async with self._inbound_lock:
            await self._process_chunk(data)

    async def _process_chunk(self, data: bytes | str) -> None:
        logger.debug("Received: %r", data)

        pending = self._queue[0] if self._queue else None
        if pending is None or not pending.in_flight:
            if not data.strip():
                logger.debug("Ignoring whitespace with no command outstanding")
                return
            logger.error(
                "Unexpected data with no command outstanding: %r",
                data,
                extra={"depth": len(self._queue)},
            )
            registry.record_orphan_data()
            self._report(SessionStatus.UNKNOWN_ERROR, "Unexpected data received with no command outstanding")
            self.buffer.clear()
            return

        with correlation_context(pending.correlation_id):
            try:
                self.buffer.feed(data)
            except ResponseFramingError as e:
                await self._resolve_malformed(pending.command, str(e))
                return

            if not self.buffer.looks_complete:
                logger.debug("Reply not complete yet", extra={"buffered_bytes": self.buffer.size})
                return

            await self._handle_reply(pending)

    async def _handle_reply(self, pending: PendingCommand) -> None:
        command = pending.command
        text = self.buffer.text

        handler = self._reply_handlers.get(command.kind)
        if handler is None:
            logger.error(
                "No reply parser for queued command %s, discarding %r",
                command,
                text,
                extra={"kind": command.kind.value},
            )
            registry.record_response(command.kind.value, "unknown")
            self._report(SessionStatus.UNKNOWN_ERROR, f"Unknown command in queue: {command}")
            self.buffer.clear()
            await self._complete_head()
            return

        if is_nack(text):
            self._handle_nack(pending)
            registry.record_response(command.kind.value, "nack")
            self.buffer.clear()
            await self._complete_head()
            return

        try:
            follow_ups = handler(command, text)
        except IncompleteResponseError as e:
            logger.debug("Incomplete reply, waiting for more data: %s", e.reason)
            return
        except MalformedResponseError as e:
            await self._resolve_malformed(command, f"{e.reason}: {e.data_preview!r}")
            return

        registry.record_response(command.kind.value, "parsed")
        self._report(SessionStatus.OK, None)
        self.buffer.clear()
        for batch in follow_ups:
            await self._enqueue_batch(batch)
        await self._complete_head()

    async def _resolve_malformed(self, command: Command, detail: str) -> None:
        logger.error(
            "Malformed reply to %s: %s",
            command,
            detail,
            extra={"kind": command.kind.value, "context": str(self.context.current)},
        )
        registry.record_response(command.kind.value, "malformed")
        self._report(SessionStatus.UNKNOWN_ERROR, f"Malformed reply to {command}")
        self.buffer.clear()
        await self._complete_head()

    def _handle_nack(self, pending: PendingCommand) -> None:
        command = pending.command
        context = self.context.current
        logger.warning(
            "Command rejected by device: %s",
            command,
            extra={"kind": command.kind.value, "context": str(context)},
        )
        if command.kind is CommandKind.GET_LAYOUT_LIST:
            self.state.clear_layouts()
        elif command.kind is CommandKind.GET_ROOM_LIST:
            self.state.clear_rooms()
        elif command.kind is CommandKind.OPEN_SESSION and pending.group is not None:
            self._skip_group(pending)
        self._report(SessionStatus.UNKNOWN_WARNING, f"Command {command} rejected in context {context}")

    def _skip_group(self, head: PendingCommand) -> None:
        """Drop the rest of a room macro whose open was rejected; none of it may run at root."""
        skipped: list[Command] = []
        while len(self._queue) > 1 and self._queue[1].group == head.group:
            skipped.append(self._queue[1].command)
            del self._queue[1]
        if skipped:
            logger.warning(
                "Skipping %d queued commands for room %s",
                len(skipped),
                head.command.room,
                extra={"room": head.command.room or "", "skipped": [str(c) for c in skipped]},
            )

    # Reply handlers, one per command kind; each returns batches of follow-up commands
    def _handle_acknowledged(self, command: Command, text: str) -> list[list[Command]]:
        parse_acknowledgement(text)
        logger.debug("Acknowledged: %s", command)
        return []

    def _handle_open(self, command: Command, text: str) -> list[list[Command]]:
        parse_acknowledgement(text)
        self.context.opened(command.room)
        return []

    def _handle_close(self, command: Command, text: str) -> list[list[Command]]:
        parse_acknowledgement(text)
        if self.context.closed().state is ContextState.CLOSED:
            logger.info("Device session closed", extra={"host": self.host})
        return []

    def _handle_parameter(self, command: Command, text: str) -> list[list[Command]]:
        reply = parse_key_value(text)
        if command.argument is not None and reply.key != command.argument:
            logger.warning(
                "Asked for parameter %s, device answered %s",
                command.argument,
                reply.key,
                extra={"requested": command.argument, "received": reply.key},
            )
        self.state.set_parameter(reply.key, reply.value)
        return []

    def _handle_layout_list(self, command: Command, text: str) -> list[list[Command]]:
        self.state.set_layouts(parse_layout_list(text))
        return []

    def _handle_room_list(self, command: Command, text: str) -> list[list[Command]]:
        rooms = parse_room_list(text)
        self.state.set_rooms(rooms)
        return [room_layout_query(room.id) for room in rooms]

    def _handle_current_layout(self, command: Command, text: str) -> list[list[Command]]:
        layout = parse_current_layout(text)
        self.state.set_current_layout(self.context.room_id, layout)
        return []

    def _handle_set_layout(self, command: Command, text: str) -> list[list[Command]]:
        parse_acknowledgement(text)
        room = command.room
        if room is None:
            return [[Command.get_current_layout()]]
        return [room_layout_query(room)]

    # Connection lifecycle
    async def on_transport_connected(self) -> None:
        """Reset per-connection state and queue the startup sequence.

        Commands queued while disconnected are kept and sent after the
        startup sequence.
        """
        logger.info("Transport connected, starting session", extra={"host": self.host})
        self.context.reset()
        self.buffer.clear()
        self._report(SessionStatus.OK, None)

        waiting = [pending for pending in self._queue if not pending.in_flight]
        self._queue.clear()
        for command in startup_commands(self.host):
            await self.enqueue(command)
        if waiting:
            self._queue.extend(waiting)
            self._idle.clear()
            registry.record_queue_depth(self.host, len(self._queue))
            await self._send_head()

    def on_transport_disconnected(self) -> None:
        """Drop the queue, working buffer and context; derived state is kept."""
        for pending in self._queue:
            if pending.timeout_handle is not None:
                pending.timeout_handle.cancel()
        dropped = len(self._queue)
        self._queue.clear()
        self.buffer.clear()
        self.context.reset()
        self._idle.set()
        registry.record_queue_depth(self.host, 0)
        logger.info("Transport disconnected", extra={"host": self.host, "dropped_commands": dropped})

    # Status
    def _report(self, status: SessionStatus, message: str | None) -> None:
        if status is self.status and message == self.status_message:
            return
        self.status = status
        self.status_message = message
        if self.on_status is None:
            return
        try:
            self.on_status(status, message)
        except Exception:
            logger.exception("Status callback failed", extra={"status": status.value})

    def set_status(self, status: SessionStatus, message: str | None = None) -> None:
        """Report a transport-level status through the session's status callback."""
        self._report(status, message)
