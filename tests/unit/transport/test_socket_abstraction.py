"""Unit tests for the TCPTransport adapter.

Tests cover:
- Connection reuse and writes
- Connect failures (timeout, OSError)
- Write failures and status notifications
- Reader task forwarding and close
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.helpers.assertions import assert_message, expect_async_exception
from tuya_lan.const import TUYA_PORT
from tuya_lan.protocol.exceptions import TransportConnectError, TransportError
from tuya_lan.transport.socket_abstraction import TCPTransport

ADDRESS = "127.0.0.1"


def _mock_writer() -> MagicMock:
    writer = MagicMock()
    writer.write = MagicMock()
    writer.drain = AsyncMock()
    writer.is_closing = MagicMock(return_value=False)
    writer.close = MagicMock()
    writer.wait_closed = AsyncMock()
    return writer


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def received() -> list[tuple[str, bytes]]:
    return []


@pytest.fixture
def statuses() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def tcp_transport(received: list[tuple[str, bytes]], statuses: list[tuple[str, str]]) -> TCPTransport:
    """Create TCPTransport instance for testing."""
    return TCPTransport(
        on_data=lambda address, data: received.append((address, data)),
        on_status=lambda address, message: statuses.append((address, message)),
        connect_timeout=0.1,
        io_timeout=0.1,
    )


@pytest.mark.asyncio
async def test_send_connects_once_and_writes(tcp_transport: TCPTransport) -> None:
    """Test a connection is opened on first send and reused afterwards."""
    writer = _mock_writer()
    with patch("asyncio.open_connection", new=AsyncMock(return_value=(asyncio.StreamReader(), writer))) as mock_open:
        await tcp_transport.send(ADDRESS, b"one")
        await tcp_transport.send(ADDRESS, b"two")

        mock_open.assert_called_once_with(ADDRESS, TUYA_PORT)
        assert writer.write.call_count == 2
        assert tcp_transport.is_connected(ADDRESS) is True
        await tcp_transport.close()


@pytest.mark.asyncio
async def test_connect_timeout(tcp_transport: TCPTransport) -> None:
    """Test connection timeout raises TransportConnectError."""

    async def slow_connect(*_args: object, **_kwargs: object) -> tuple[object, object]:
        await asyncio.sleep(1.0)  # Longer than timeout
        return (asyncio.StreamReader(), _mock_writer())

    with patch("asyncio.open_connection", side_effect=slow_connect):
        error = await expect_async_exception(tcp_transport.send, TransportConnectError, ADDRESS, b"x")

    assert error.address == ADDRESS
    assert "timeout" in error.reason
    assert tcp_transport.is_connected(ADDRESS) is False


@pytest.mark.asyncio
async def test_connect_oserror(tcp_transport: TCPTransport) -> None:
    """Test connection failure with OSError."""
    with patch("asyncio.open_connection", side_effect=OSError("Connection refused")):
        error = await expect_async_exception(tcp_transport.send, TransportConnectError, ADDRESS, b"x")

    assert_message(error, r"^Transport error for 127\.0\.0\.1: connect failed: Connection refused$")


@pytest.mark.asyncio
async def test_write_failure_raises_and_reports_status(
    tcp_transport: TCPTransport,
    statuses: list[tuple[str, str]],
) -> None:
    """Test a failed drain drops the connection and reports an error status."""
    writer = _mock_writer()
    writer.drain = AsyncMock(side_effect=OSError("broken pipe"))
    with patch("asyncio.open_connection", new=AsyncMock(return_value=(asyncio.StreamReader(), writer))):
        error = await expect_async_exception(tcp_transport.send, TransportError, ADDRESS, b"x")

    assert not isinstance(error, TransportConnectError)
    assert "broken pipe" in error.reason
    assert tcp_transport.is_connected(ADDRESS) is False
    assert statuses and statuses[-1][0] == ADDRESS
    assert "error" in statuses[-1][1]


@pytest.mark.asyncio
async def test_received_data_is_forwarded(
    tcp_transport: TCPTransport,
    received: list[tuple[str, bytes]],
    statuses: list[tuple[str, str]],
) -> None:
    """Test the reader task hands every chunk to on_data and reports close on EOF."""
    reader = asyncio.StreamReader()
    with patch("asyncio.open_connection", new=AsyncMock(return_value=(reader, _mock_writer()))):
        await tcp_transport.send(ADDRESS, b"query")

    reader.feed_data(b"frame")
    await _settle()
    assert received == [(ADDRESS, b"frame")]

    reader.feed_eof()
    await _settle()
    assert statuses == [(ADDRESS, "closed")]
    assert tcp_transport.is_connected(ADDRESS) is False


@pytest.mark.asyncio
async def test_close_stops_reader(tcp_transport: TCPTransport, statuses: list[tuple[str, str]]) -> None:
    """Test close() cancels the reader without a status notification."""
    writer = _mock_writer()
    with patch("asyncio.open_connection", new=AsyncMock(return_value=(asyncio.StreamReader(), writer))):
        await tcp_transport.send(ADDRESS, b"x")

    await tcp_transport.close(ADDRESS)
    await _settle()

    writer.close.assert_called_once()
    assert tcp_transport.is_connected(ADDRESS) is False
    assert statuses == []
