"""Asyncio TCP transport adapter with deadlines and instrumentation.

Only opens sockets and moves bytes: one connection per address, a reader task
handing every received chunk to ``on_data`` and status notifications to
``on_status``. Framing and encryption belong to the codec.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from dataclasses import dataclass

from tuya_lan.const import TUYA_PORT
from tuya_lan.logging_abstraction import get_logger
from tuya_lan.protocol.exceptions import TransportConnectError, TransportError

logger = get_logger(__name__)

DataCallback = Callable[[str, bytes], None]
StatusCallback = Callable[[str, str], None]


@dataclass
class _Connection:
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    reader_task: asyncio.Task[None] | None = None


class TCPTransport:
    """Async TCP transport with timeouts and instrumentation."""

    lp: str = "TCPTransport:"

    def __init__(
        self,
        on_data: DataCallback | None = None,
        on_status: StatusCallback | None = None,
        port: int = TUYA_PORT,
        connect_timeout: float = 1.0,
        io_timeout: float = 1.5,
        max_read_size: int = 65536,
    ):
        """
        Initialize transport parameters.

        Args:
            on_data: Called with (address, chunk) for every chunk read
            on_status: Called with (address, message) when a connection closes or fails
            port: Target port
            connect_timeout: Connection timeout in seconds
            io_timeout: Write timeout in seconds
            max_read_size: Maximum bytes to read in one operation
        """
        self.on_data = on_data
        self.on_status = on_status
        self.port = port
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout
        self.max_read_size = max_read_size
        self._connections: dict[str, _Connection] = {}

    def is_connected(self, address: str) -> bool:
        conn = self._connections.get(address)
        return conn is not None and not conn.writer.is_closing()

    async def send(self, address: str, data: bytes) -> None:
        """
        Send data to ``address``, connecting first if needed.

        Raises:
            TransportConnectError: The connection could not be established
            TransportError: The write failed or timed out
        """
        conn = await self._connect(address)
        start_time = time.perf_counter()
        try:
            conn.writer.write(data)
            await asyncio.wait_for(conn.writer.drain(), timeout=self.io_timeout)
        except TimeoutError as e:
            await self._drop(address, "error: send timeout")
            raise TransportError(address, "send timeout") from e
        except OSError as e:
            await self._drop(address, f"error: {e}")
            raise TransportError(address, str(e)) from e

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            "%ssend: sent %d bytes to %s:%d in %.1fms",
            self.lp,
            len(data),
            address,
            self.port,
            elapsed_ms,
            extra={"bytes": len(data), "address": address, "elapsed_ms": elapsed_ms},
        )

    async def close(self, address: str | None = None) -> None:
        """Close one connection, or all of them when ``address`` is None."""
        addresses = [address] if address is not None else list(self._connections)
        for addr in addresses:
            await self._drop(addr, None)

    async def _connect(self, address: str) -> _Connection:
        existing = self._connections.get(address)
        if existing is not None and not existing.writer.is_closing():
            return existing
        if existing is not None:
            await self._drop(address, None)

        start_time = time.perf_counter()
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(address, self.port),
                timeout=self.connect_timeout,
            )
        except TimeoutError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(
                "%sconnect: %s:%d timed out after %.1fms",
                self.lp,
                address,
                self.port,
                elapsed_ms,
            )
            raise TransportConnectError(address, "timeout") from e
        except OSError as e:
            logger.debug("%sconnect: %s:%d failed: %s", self.lp, address, self.port, e)
            raise TransportConnectError(address, str(e)) from e

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "%sconnect: connected to %s:%d in %.1fms",
            self.lp,
            address,
            self.port,
            elapsed_ms,
            extra={"address": address, "port": self.port, "elapsed_ms": elapsed_ms},
        )
        conn = _Connection(reader=reader, writer=writer)
        conn.reader_task = asyncio.create_task(self._read_loop(address, reader), name=f"tuya-read-{address}")
        self._connections[address] = conn
        return conn

    async def _read_loop(self, address: str, reader: asyncio.StreamReader) -> None:
        status = "closed"
        try:
            while True:
                chunk = await reader.read(self.max_read_size)
                if not chunk:
                    break
                if self.on_data is not None:
                    self.on_data(address, chunk)
        except OSError as e:
            status = f"error: {e}"
        finally:
            conn = self._connections.get(address)
            if conn is not None and conn.reader_task is asyncio.current_task():
                del self._connections[address]
                conn.writer.close()
        self._notify(address, status)

    async def _drop(self, address: str, status: str | None) -> None:
        conn = self._connections.pop(address, None)
        if conn is None:
            return
        if conn.reader_task is not None and not conn.reader_task.done():
            _ = conn.reader_task.cancel()
        conn.writer.close()
        with contextlib.suppress(OSError):
            await conn.writer.wait_closed()
        if status is not None:
            self._notify(address, status)

    def _notify(self, address: str, message: str) -> None:
        logger.debug("%sstatus: %s %s", self.lp, address, message)
        if self.on_status is not None:
            self.on_status(address, message)
