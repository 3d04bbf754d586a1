"""Exception hierarchy for local command delivery.

Only retry exhaustion (or a protocol error) reaches callers of the dispatcher,
and only as a failed SendResult. The exceptions below are raised between the
layers and translated into counters and results by the dispatcher.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tuya_lan.transport.types import DecodedFrame


class TuyaLanError(Exception):
    """Base exception for all tuya-lan errors.

    Enables catch-all handling while keeping specific types for detailed
    handling.
    """


class ConfigurationError(TuyaLanError):
    """Endpoint is missing identity, secret or address.

    Raised before any network I/O. Never counted and never retried.

    Attributes:
        endpoint_id: Endpoint the check failed for (may be empty)
        missing: Names of the missing fields
    """

    def __init__(self, endpoint_id: str, missing: list[str]):
        self.endpoint_id = endpoint_id
        self.missing = list(missing)
        super().__init__(f"Endpoint '{endpoint_id}' is not configured: missing {', '.join(self.missing)}")


class TransportError(TuyaLanError):
    """Transmitting bytes to the endpoint failed.

    Attributes:
        address: Network address the transmit was aimed at
        reason: Specific failure reason
    """

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Transport error for {address}: {reason}")


class TransportConnectError(TransportError):
    """Connection to the endpoint could not be established."""

    def __init__(self, address: str, reason: str):
        super().__init__(address, f"connect failed: {reason}")


class ProtocolError(TuyaLanError):
    """The codec reported an error while decoding an inbound frame.

    Raised by AckSlot.take when the offered frame carries an error. The
    dispatcher turns it into a failed SendResult without retrying.

    Attributes:
        reason: Error text reported by the codec
        command_byte: Command byte of the offending frame, when known
        frame: The offending frame, when one was decoded
    """

    def __init__(self, reason: str, command_byte: int | None = None, frame: DecodedFrame | None = None):
        self.reason = reason
        self.command_byte = command_byte
        self.frame = frame
        super().__init__(f"Frame decode failed: {reason}")


class AckTimeoutError(TuyaLanError):
    """No acknowledgment arrived within the wait window.

    Attributes:
        endpoint_id: Endpoint that did not answer
        timeout_seconds: Window that was exceeded
    """

    def __init__(self, endpoint_id: str, timeout_seconds: float):
        self.endpoint_id = endpoint_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"No ack from '{endpoint_id}' within {timeout_seconds}s")
