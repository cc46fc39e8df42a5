"""Test doubles: an in-memory transport and a scripted Kaleido device."""

from __future__ import annotations

import asyncio
import re

TEST_HOST = "10.0.0.5"


class FakeTransport:
    """Stand-in for TCPConnection that records every write."""

    def __init__(self, connected: bool = True) -> None:
        self.connected: bool = connected
        self.fail_sends: bool = False
        self.sent: list[bytes] = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def send(self, data: bytes) -> bool:
        if not self.connected or self.fail_sends:
            return False
        self.sent.append(data)
        return True

    @property
    def commands(self) -> list[str]:
        """Sent commands as text, without the newline terminator."""
        return [data.decode().removesuffix("\n") for data in self.sent]


class FakeKaleidoDevice:
    """Scripted Kaleido control port on a local asyncio server.

    Tracks the open room so current-layout queries and layout changes are
    answered per room, and splits every reply across two writes.
    """

    def __init__(
        self,
        parameters: dict[str, str] | None = None,
        rooms: list[str] | None = None,
        layouts: list[str] | None = None,
        current_layouts: dict[str | None, str] | None = None,
    ) -> None:
        self.parameters: dict[str, str] = parameters or {"softwareVersion": "9.20", "systemName": "Cougar-X"}
        self.rooms: list[str] = rooms or []
        self.layouts: list[str] = layouts or []
        self.current_layouts: dict[str | None, str] = current_layouts or {}
        self.received: list[str] = []
        self.connection_count: int = 0
        self._room: str | None = None
        self._server: asyncio.Server | None = None
        self._writers: list[asyncio.StreamWriter] = []

    async def start(self) -> int:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        self.drop_connections()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    def drop_connections(self) -> None:
        for writer in self._writers:
            writer.close()
        self._writers.clear()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connection_count += 1
        self._room = None
        self._writers.append(writer)
        try:
            while line := await reader.readline():
                command = line.decode().strip()
                self.received.append(command)
                reply = self.reply_to(command).encode() + b"\n"
                half = len(reply) // 2
                writer.write(reply[:half])
                await writer.drain()
                writer.write(reply[half:])
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()

    def reply_to(self, command: str) -> str:
        if match := re.fullmatch(r"<openID>(.+)</openID>", command):
            target = match.group(1)
            if target.endswith("_0_4_0_0"):
                self._room = None
                return "<ack/>"
            if target not in self.rooms:
                return "<nack/>"
            self._room = target
            return "<ack/>"
        if command == "<closeID/>":
            self._room = None
            return "<ack/>"
        if match := re.fullmatch(r'<getParameterInfo>get key="(.+)"</getParameterInfo>', command):
            key = match.group(1)
            if key not in self.parameters:
                return "<nack/>"
            return f'<kParameterInfo>{key}="{self.parameters[key]}"</kParameterInfo>'
        if command == "<getKRoomList/>":
            return "<kRoomList>" + "".join(f"<room>{room}</room>" for room in self.rooms) + "</kRoomList>"
        if command == "<getKLayoutList/>":
            return f"<kLayoutList>{' '.join(self.layouts)}</kLayoutList>"
        if command == "<getKCurrentLayout/>":
            return f'<kCurrentLayout>name="{self.current_layouts.get(self._room, "")}"</kCurrentLayout>'
        if match := re.fullmatch(r"<setKCurrentLayout>set (.+)</setKCurrentLayout>", command):
            layout_id = match.group(1)
            if layout_id not in self.layouts:
                return "<nack/>"
            room, _, name = layout_id.rpartition("/")
            self.current_layouts[room or self._room] = name
            return "<ack/>"
        if command.startswith(("<setKDynamicText>", "<setKStatusMessage>")):
            return "<ack/>"
        return "<nack/>"
