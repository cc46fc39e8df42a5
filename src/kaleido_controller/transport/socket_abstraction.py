"""Asyncio TCP connection to a Kaleido telnet port, with deadlines and instrumentation."""

from __future__ import annotations

import asyncio
import time

from kaleido_controller.const import DEFAULT_PORT
from kaleido_controller.logging_abstraction import get_logger

logger = get_logger(__name__)


class TCPConnection:
    """Async TCP connection with connect/write timeouts.

    Reads wait without a deadline: the Kaleido session is idle between
    commands and only the command queue decides when silence is an error.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        connect_timeout: float = 3.0,
        write_timeout: float = 2.0,
        max_read_size: int = 4096,
    ) -> None:
        """
        Initialize TCP connection parameters.

        Args:
            host: Device address
            port: Device telnet port (13000 on Kaleido)
            connect_timeout: Connection timeout in seconds
            write_timeout: Drain timeout in seconds
            max_read_size: Maximum bytes to read in one operation
        """
        self.host: str = host
        self.port: int = port
        self.connect_timeout: float = connect_timeout
        self.write_timeout: float = write_timeout
        self.max_read_size: int = max_read_size
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self._connected: bool = False

    def _log_extra(self, **extra: object) -> dict[str, object]:
        return {"host": self.host, "port": self.port, **extra}

    async def connect(self) -> bool:
        """Open the connection; returns False (and logs) on timeout or socket error."""
        start_time = time.perf_counter()
        logger.info(
            "Connecting to %s:%d (timeout: %.1fs)",
            self.host,
            self.port,
            self.connect_timeout,
            extra=self._log_extra(timeout=self.connect_timeout),
        )
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Connection to %s:%d timed out after %.1fms",
                self.host,
                self.port,
                elapsed_ms,
                extra=self._log_extra(elapsed_ms=elapsed_ms, error="timeout"),
            )
            return False
        except OSError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Connection to %s:%d failed after %.1fms: %s",
                self.host,
                self.port,
                elapsed_ms,
                e,
                extra=self._log_extra(elapsed_ms=elapsed_ms, error=str(e)),
            )
            return False

        self._connected = True
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Connected to %s:%d in %.1fms",
            self.host,
            self.port,
            elapsed_ms,
            extra=self._log_extra(elapsed_ms=elapsed_ms),
        )
        return True

    async def send(self, data: bytes) -> bool:
        """Write data and wait for the transport buffer to drain.

        Returns:
            True if sent, False if not connected or the write failed
        """
        if not self._connected or self.writer is None:
            logger.error("Cannot send: not connected", extra=self._log_extra())
            return False

        try:
            self.writer.write(data)
            await asyncio.wait_for(self.writer.drain(), timeout=self.write_timeout)
        except TimeoutError:
            logger.error(
                "Send to %s:%d timed out after %.1fs",
                self.host,
                self.port,
                self.write_timeout,
                extra=self._log_extra(bytes=len(data), error="timeout"),
            )
            return False
        except OSError as e:
            logger.error(
                "Send to %s:%d failed: %s",
                self.host,
                self.port,
                e,
                extra=self._log_extra(bytes=len(data), error=str(e)),
            )
            self._connected = False
            return False

        logger.debug("Sent %d bytes", len(data), extra=self._log_extra(bytes=len(data)))
        return True

    async def recv(self, max_bytes: int | None = None) -> bytes | None:
        """Wait for the next chunk of data.

        Returns:
            Received bytes, or None once the connection is closed or broken
        """
        if not self._connected or self.reader is None:
            logger.error("Cannot receive: not connected", extra=self._log_extra())
            return None

        try:
            data = await self.reader.read(max_bytes or self.max_read_size)
        except OSError as e:
            logger.error(
                "Receive from %s:%d failed: %s",
                self.host,
                self.port,
                e,
                extra=self._log_extra(error=str(e)),
            )
            self._connected = False
            return None

        if not data:
            logger.warning("Connection closed by %s:%d", self.host, self.port, extra=self._log_extra())
            self._connected = False
            return None

        logger.debug("Received %d bytes", len(data), extra=self._log_extra(bytes=len(data)))
        return data

    async def close(self) -> None:
        """Close the connection (best effort)."""
        writer = self.writer
        self._connected = False
        self.writer = None
        self.reader = None
        if writer is None:
            return

        logger.info("Closing connection to %s:%d", self.host, self.port, extra=self._log_extra())
        try:
            writer.close()
            await writer.wait_closed()
        except (OSError, RuntimeError) as e:
            logger.warning(
                "Error closing connection: %s",
                e,
                extra=self._log_extra(error=str(e), error_type=type(e).__name__),
            )

    @property
    def is_connected(self) -> bool:
        return self._connected

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"TCPConnection({self.host}:{self.port}, {status})"
