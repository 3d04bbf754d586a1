"""Heartbeat liveness loop."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tuya_lan.correlation import correlation_context
from tuya_lan.logging_abstraction import get_logger
from tuya_lan.metrics import registry
from tuya_lan.protocol.exceptions import ConfigurationError
from tuya_lan.transport.types import Verb

if TYPE_CHECKING:
    from tuya_lan.config import Endpoint
    from tuya_lan.transport.dispatcher import CommandDispatcher
    from tuya_lan.transport.scheduler import ScheduledHandle, Scheduler

logger = get_logger(__name__)


class HeartbeatLoop:
    """
    Periodically sends an empty HEART_BEAT through the dispatcher.

    A missed heartbeat is logged and counted in ``consecutive_failures``;
    the endpoint is never marked unreachable.
    """

    def __init__(self, endpoint: Endpoint, dispatcher: CommandDispatcher, scheduler: Scheduler):
        self.endpoint = endpoint
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.consecutive_failures = 0
        self.running = False
        self._handle: ScheduledHandle | None = None
        self.lp = f"HeartbeatLoop:{endpoint.display_name}:"

    @property
    def interval(self) -> int:
        return self.endpoint.settings.heartbeat_secs

    async def start(self) -> None:
        """Beat immediately, then every ``heartbeat_secs`` (0 sends a single beat)."""
        self.running = True
        await self.beat()

    def stop(self) -> None:
        """Cancel the pending beat."""
        self.running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def beat(self) -> None:
        lp = f"{self.lp}beat:"
        self._handle = None
        logger.debug("%s sending heartbeat", lp)
        with correlation_context():
            try:
                result = await self.dispatcher.send_once(self.endpoint, {}, Verb.HEART_BEAT)
            except ConfigurationError as e:
                logger.warning("%s heartbeat disabled: %s", lp, e)
                self.running = False
                return

        if result.success:
            self.consecutive_failures = 0
            registry.record_heartbeat(self.endpoint.id, "ok")
            logger.debug("%s received heartbeat", lp)
        else:
            self.consecutive_failures += 1
            registry.record_heartbeat(self.endpoint.id, result.reason or "failed")
            logger.warning(
                "%s no response to heartbeat",
                lp,
                extra={"reason": result.reason, "consecutive_failures": self.consecutive_failures},
            )

        if self.running and self.interval:
            self._handle = self.scheduler.call_later(self.interval, self.beat)
