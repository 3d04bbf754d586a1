"""
Passive network discovery by sequential probing.

Probes one address at a time with a CONTROL power-on command and a short ack
window. Each next probe is handed to the scheduler with zero delay, so the
caller is never blocked across the whole range.
"""

from __future__ import annotations

import inspect
import ipaddress
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING

from tuya_lan.const import SCAN_PROBE_TIMEOUT_SECONDS
from tuya_lan.correlation import correlation_context
from tuya_lan.logging_abstraction import get_logger
from tuya_lan.metrics import registry
from tuya_lan.protocol.exceptions import TransportError
from tuya_lan.transport.types import CMD_CONTROL_ACK

if TYPE_CHECKING:
    from tuya_lan.config import Endpoint
    from tuya_lan.transport.dispatcher import CommandDispatcher
    from tuya_lan.transport.scheduler import ScheduledHandle, Scheduler

logger = get_logger(__name__)

FoundCallback = Callable[[str], Awaitable[None] | None]


class ScanState(StrEnum):
    IDLE = "idle"
    PROBING = "probing"
    FOUND = "found"
    EXHAUSTED = "exhausted"


class NetworkScanner:
    """Sequential IPv4 range prober."""

    lp: str = "NetworkScanner:"

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        scheduler: Scheduler,
        probe_timeout: float = SCAN_PROBE_TIMEOUT_SECONDS,
    ):
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.probe_timeout = probe_timeout
        self.state = ScanState.IDLE
        self.current_ip: str | None = None
        self.found_ip: str | None = None
        self._handle: ScheduledHandle | None = None

    async def scan(self, endpoint: Endpoint, start_ip: str, end_ip: str, on_found: FoundCallback) -> None:
        """
        Start probing ``start_ip`` .. ``end_ip`` (inclusive) for ``endpoint``.

        Args:
            endpoint: Endpoint whose id and local_key are used for the probes
            start_ip: First IPv4 address of the range
            end_ip: Last IPv4 address of the range
            on_found: Called with the address that answered

        Raises:
            ValueError: An address is not a valid IPv4 address
        """
        start = int(ipaddress.IPv4Address(start_ip))
        end = int(ipaddress.IPv4Address(end_ip))
        logger.info("%sscan: scan network from %s to %s", self.lp, start_ip, end_ip)
        self.cancel()
        self.found_ip = None
        await self._probe(endpoint, start, end, on_found)

    def cancel(self) -> None:
        """Abandon a scan in progress."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self.state is ScanState.PROBING:
            self.state = ScanState.IDLE
            self.current_ip = None

    @property
    def probing(self) -> bool:
        return self.state is ScanState.PROBING

    async def _probe(self, endpoint: Endpoint, current: int, end: int, on_found: FoundCallback) -> None:
        lp = f"{self.lp}probe:"
        self._handle = None
        address = str(ipaddress.IPv4Address(current))
        self.state = ScanState.PROBING
        self.current_ip = address
        logger.info("%s scanning for tuya device at %s", lp, address)

        frame = None
        reachable = False
        with correlation_context():
            try:
                frame = await self.dispatcher.probe(
                    endpoint,
                    address,
                    {endpoint.power_code: True},
                    self.probe_timeout,
                )
                reachable = True
            except TransportError:
                logger.debug("%s nothing reachable at %s", lp, address)

        if frame is not None and frame.command_byte == CMD_CONTROL_ACK:
            registry.record_scan_probe("found")
            self.state = ScanState.FOUND
            self.found_ip = address
            logger.info("%s found Tuya device at %s", lp, address)
            result = on_found(address)
            if inspect.isawaitable(result):
                await result
            return

        registry.record_scan_probe("miss")
        if reachable:
            # something accepted the connection but did not answer as this device
            await self.dispatcher.release(address)
        if current < end:
            self._handle = self.scheduler.call_later(0, lambda: self._probe(endpoint, current + 1, end, on_found))
        else:
            self.state = ScanState.EXHAUSTED
            self.current_ip = None
            logger.info("%s completed network scanning, device not found", lp)
