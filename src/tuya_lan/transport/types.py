"""Core types for the local command delivery layer.

This module defines the verbs, frame and result dataclasses, and the
collaborator protocols (codec and transport) the dispatcher is built on.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

DatapointValue = bool | int | str
Datapoints = dict[str, DatapointValue]

# Command-byte discriminator of decoded frames
CMD_CONTROL_ACK = 7
CMD_STATUS = 8
CMD_HEARTBEAT_ACK = 9
CMD_QUERY_RESULT = 10

ACK_COMMAND_BYTES: frozenset[int] = frozenset({CMD_CONTROL_ACK, CMD_HEARTBEAT_ACK})
STATE_COMMAND_BYTES: frozenset[int] = frozenset({CMD_STATUS, CMD_QUERY_RESULT})


class Verb(StrEnum):
    """Command verbs understood by the codec."""

    CONTROL = "CONTROL"
    DP_QUERY = "DP_QUERY"
    HEART_BEAT = "HEART_BEAT"


@dataclass(frozen=True)
class DecodedFrame:
    """Frame as returned by the codec.

    Attributes:
        command_byte: Discriminator (7 control ack, 8 status, 9 heartbeat ack, 10 query result)
        text: Decrypted payload text (JSON for status/query frames)
        error: Error text reported by the codec, None when the frame decoded cleanly
    """

    command_byte: int
    text: str = ""
    error: str | None = None

    @property
    def is_ack(self) -> bool:
        return self.command_byte in ACK_COMMAND_BYTES

    @property
    def is_state(self) -> bool:
        return self.command_byte in STATE_COMMAND_BYTES


@dataclass
class SendResult:
    """Result of a dispatcher command run.

    Attributes:
        success: Whether an acknowledgment was received
        correlation_id: Correlation ID of the command run
        reason: Error reason if success=False (empty string if success=True)
        retry_count: Number of retries consumed by this run
        ack: Acknowledgment frame that completed the rendezvous
    """

    success: bool
    correlation_id: str
    reason: str = ""
    retry_count: int = 0
    ack: DecodedFrame | None = None


class Codec(Protocol):
    """Binary frame codec (encryption, framing, checksum)."""

    def encode(self, local_key: str, datapoints: Datapoints, verb: Verb) -> bytes: ...

    def decode(self, data: bytes, local_key: str) -> DecodedFrame: ...


class Transport(Protocol):
    """Moves encoded frames to an endpoint address."""

    async def send(self, address: str, data: bytes) -> None: ...

    async def close(self, address: str | None = None) -> None: ...
