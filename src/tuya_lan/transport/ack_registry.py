"""Per-endpoint acknowledgment rendezvous.

Each endpoint owns one AckSlot: an asyncio.Lock that serializes command runs
(send plus wait) and a zero-capacity hand-off. A waiter arms a Future before
transmitting; the inbound path offers frames without ever blocking. Frames
offered while nobody is armed are dropped, never buffered.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

from tuya_lan.logging_abstraction import get_logger
from tuya_lan.metrics import registry
from tuya_lan.protocol.exceptions import AckTimeoutError, ProtocolError
from tuya_lan.transport.types import CMD_CONTROL_ACK, CMD_HEARTBEAT_ACK, DecodedFrame

logger = get_logger(__name__)

_ACK_TYPE_NAMES = {
    CMD_CONTROL_ACK: "control",
    CMD_HEARTBEAT_ACK: "heartbeat",
}


class AckSlot:
    """Rendezvous channel for a single endpoint."""

    def __init__(self, endpoint_id: str):
        self.endpoint_id = endpoint_id
        self.lock = asyncio.Lock()
        self._waiter: asyncio.Future[DecodedFrame] | None = None
        self.lp = f"AckSlot:{endpoint_id}:"

    @property
    def waiting(self) -> bool:
        """True while a waiter is armed and not yet satisfied."""
        return self._waiter is not None and not self._waiter.done()

    def arm(self) -> asyncio.Future[DecodedFrame]:
        """Arm the slot so an ack racing the transmit is still delivered.

        Re-arming before ``take`` returns the existing waiter, which may
        already hold the frame.
        """
        if self._waiter is not None:
            return self._waiter
        self._waiter = asyncio.get_running_loop().create_future()
        return self._waiter

    def disarm(self) -> None:
        """Drop the armed waiter; later offers become unsolicited."""
        waiter, self._waiter = self._waiter, None
        if waiter is not None and not waiter.done():
            _ = waiter.cancel()

    @contextlib.asynccontextmanager
    async def exclusive(self) -> AsyncIterator[AckSlot]:
        """Hold the lock for one command run.

        The slot is disarmed when the run ends, including on cancellation,
        so a frame arriving afterwards is dropped as unsolicited.
        """
        async with self.lock:
            try:
                yield self
            finally:
                self.disarm()

    async def take(self, timeout: float) -> DecodedFrame:
        """Wait up to ``timeout`` seconds for an offered frame.

        Arms the slot if the caller has not already done so. The slot is
        disarmed on return, whatever the outcome.

        Raises:
            AckTimeoutError: Nothing was offered within the window
            ProtocolError: The offered frame carries a codec error
        """
        waiter = self.arm()
        try:
            frame = await asyncio.wait_for(waiter, timeout=timeout)
        except TimeoutError as exc:
            raise AckTimeoutError(self.endpoint_id, timeout) from exc
        finally:
            self.disarm()
        if frame.error:
            raise ProtocolError(frame.error, frame.command_byte, frame)
        return frame

    def offer(self, frame: DecodedFrame) -> bool:
        """Hand a frame to the armed waiter, if any. Never blocks.

        Returns:
            True if a waiter received the frame, False if it was discarded
        """
        lp = f"{self.lp}offer:"
        ack_type = _ACK_TYPE_NAMES.get(frame.command_byte, str(frame.command_byte))
        if not self.waiting:
            logger.warning(
                "%s no command awaiting an ack, dropping frame (command byte %s)",
                lp,
                frame.command_byte,
                extra={"endpoint_id": self.endpoint_id, "command_byte": frame.command_byte},
            )
            registry.record_ack_received(self.endpoint_id, ack_type, "unsolicited")
            registry.record_unsolicited_frame(self.endpoint_id)
            return False

        assert self._waiter is not None
        self._waiter.set_result(frame)
        registry.record_ack_received(self.endpoint_id, ack_type, "delivered")
        logger.debug("%s delivered frame (command byte %s)", lp, frame.command_byte)
        return True


class AckRegistry:
    """Keyed AckSlots, one per endpoint, created on first use."""

    def __init__(self) -> None:
        self._slots: dict[str, AckSlot] = {}

    def slot(self, endpoint_id: str) -> AckSlot:
        slot = self._slots.get(endpoint_id)
        if slot is None:
            slot = AckSlot(endpoint_id)
            self._slots[endpoint_id] = slot
        return slot

    def offer(self, endpoint_id: str, frame: DecodedFrame) -> bool:
        """Offer a frame to the endpoint's slot."""
        return self.slot(endpoint_id).offer(frame)

    def __contains__(self, endpoint_id: object) -> bool:
        return endpoint_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)
