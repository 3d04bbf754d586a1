"""Error types shared by the transport and device layers."""

from tuya_lan.protocol.exceptions import (
    AckTimeoutError,
    ConfigurationError,
    ProtocolError,
    TransportConnectError,
    TransportError,
    TuyaLanError,
)

__all__ = [
    "AckTimeoutError",
    "ConfigurationError",
    "ProtocolError",
    "TransportConnectError",
    "TransportError",
    "TuyaLanError",
]
