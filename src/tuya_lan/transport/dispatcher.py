"""
Command dispatcher: single-flight, bounded retry-with-timeout delivery.

Every command run for an endpoint holds that endpoint's AckSlot lock across
transmit and wait, so at most one command is ever in flight per endpoint while
different endpoints proceed concurrently. Failures are translated into the
endpoint's retries/errors counters; only exhaustion (or a protocol error)
reaches the caller, as a failed SendResult.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from tuya_lan.const import SEND_BACKOFF_SECONDS
from tuya_lan.correlation import correlation_context, get_correlation_id
from tuya_lan.instrumentation import timed_async
from tuya_lan.logging_abstraction import get_logger
from tuya_lan.metrics import registry
from tuya_lan.protocol.exceptions import AckTimeoutError, ConfigurationError, ProtocolError, TransportError
from tuya_lan.transport.ack_registry import AckRegistry, AckSlot
from tuya_lan.transport.retry_policy import RetryPolicy
from tuya_lan.transport.types import Codec, Datapoints, DecodedFrame, SendResult, Transport, Verb

if TYPE_CHECKING:
    from tuya_lan.config import Endpoint
    from tuya_lan.devices.state import EndpointCounters, StateRegistry

logger = get_logger(__name__)


class CommandDispatcher:
    """Sends datapoint commands through the codec and transport, waiting for acks."""

    lp: str = "CommandDispatcher:"

    def __init__(
        self,
        codec: Codec,
        transport: Transport,
        acks: AckRegistry,
        states: StateRegistry,
        backoff_seconds: float = SEND_BACKOFF_SECONDS,
    ):
        """
        Initialize the dispatcher.

        Args:
            codec: Frame codec used to encode commands and decode inbound data
            transport: Moves encoded frames to endpoint addresses
            acks: Per-endpoint rendezvous slots
            states: Per-endpoint records holding the retries/errors counters
            backoff_seconds: Pause after a transport failure before the next attempt
        """
        self.codec = codec
        self.transport = transport
        self.acks = acks
        self.states = states
        self.backoff_seconds = backoff_seconds

    @timed_async("dispatcher_send")
    async def send(self, endpoint: Endpoint, datapoints: Datapoints, verb: Verb = Verb.CONTROL) -> SendResult:
        """
        Send a command, retrying on timeout or transport failure.

        Args:
            endpoint: Target endpoint (must have id, local_key and address)
            datapoints: Datapoint code -> encoded value
            verb: Command verb

        Returns:
            SendResult; success=False with reason "max_retries", "protocol_error" or "no_attempts"

        Raises:
            ConfigurationError: Endpoint is missing identity, secret or address (before any I/O)
        """
        endpoint.ensure_configured()
        policy = RetryPolicy.from_settings(endpoint.settings, self.backoff_seconds)
        slot = self.acks.slot(endpoint.id)
        counters = self._counters(endpoint)
        lp = f"{self.lp}send:{endpoint.id}:"

        with correlation_context(get_correlation_id()) as corr_id:
            correlation_id = corr_id or ""
            if policy.repeat == 0:
                logger.warning("%s repeat is 0, no attempt made", lp, extra={"datapoints": datapoints})
                registry.record_command_abandoned(endpoint.id, "no_attempts")
                return SendResult(success=False, correlation_id=correlation_id, reason="no_attempts")

            retry_count = 0
            async with slot.exclusive():
                for attempt in policy.attempts():
                    logger.debug(
                        "%s sending %s command %s (attempt %d of %d)",
                        lp,
                        verb,
                        datapoints,
                        attempt,
                        policy.repeat,
                    )
                    _ = slot.arm()
                    sent_at = time.perf_counter()
                    try:
                        await self._transmit(endpoint, endpoint.address, datapoints, verb)
                    except TransportError as e:
                        slot.disarm()
                        logger.warning(
                            "%s send failed (%d of %d): %s",
                            lp,
                            attempt,
                            policy.repeat,
                            e.reason,
                            extra={"address": endpoint.address, "attempt": attempt},
                        )
                        _ = counters.increment_errors(str(e))
                        await asyncio.sleep(policy.backoff_seconds)
                        _ = counters.increment_retries()
                        retry_count += 1
                        registry.record_retry_attempt(endpoint.id, attempt)
                        continue

                    try:
                        frame = await slot.take(policy.timeout_seconds)
                    except AckTimeoutError:
                        logger.warning("%s command timeout (%d of %d)", lp, attempt, policy.repeat)
                        registry.record_ack_timeout(endpoint.id)
                        _ = counters.increment_retries()
                        retry_count += 1
                        registry.record_retry_attempt(endpoint.id, attempt)
                        continue
                    except ProtocolError as e:
                        logger.error(
                            "%s device answered with an undecodable frame: %s",
                            lp,
                            e.reason,
                            extra={"command_byte": e.command_byte},
                        )
                        registry.record_command_abandoned(endpoint.id, "protocol_error")
                        return SendResult(
                            success=False,
                            correlation_id=correlation_id,
                            reason="protocol_error",
                            retry_count=retry_count,
                            ack=e.frame,
                        )

                    registry.record_ack_latency(endpoint.id, time.perf_counter() - sent_at)
                    logger.info("%s received device ack", lp, extra={"attempt": attempt})
                    return SendResult(
                        success=True,
                        correlation_id=correlation_id,
                        retry_count=retry_count,
                        ack=frame,
                    )

            logger.warning(
                "%s giving up after %d attempts",
                lp,
                policy.repeat,
                extra={"datapoints": datapoints, "retries": retry_count},
            )
            registry.record_command_abandoned(endpoint.id, "max_retries")
            return SendResult(
                success=False,
                correlation_id=correlation_id,
                reason="max_retries",
                retry_count=retry_count,
            )

    async def send_once(self, endpoint: Endpoint, datapoints: Datapoints, verb: Verb) -> SendResult:
        """
        Single attempt with the endpoint's per-attempt timeout.

        Transport failures are counted as errors; a timeout is not a retry.
        """
        endpoint.ensure_configured()
        slot = self.acks.slot(endpoint.id)
        lp = f"{self.lp}send_once:{endpoint.id}:"

        with correlation_context(get_correlation_id()) as corr_id:
            correlation_id = corr_id or ""
            async with slot.exclusive():
                _ = slot.arm()
                try:
                    await self._transmit(endpoint, endpoint.address, datapoints, verb)
                except TransportError as e:
                    logger.warning("%s send failed: %s", lp, e.reason, extra={"address": endpoint.address})
                    _ = self._counters(endpoint).increment_errors(str(e))
                    return SendResult(success=False, correlation_id=correlation_id, reason="transport_error")
                try:
                    frame = await slot.take(float(endpoint.settings.timeout_secs))
                except AckTimeoutError:
                    return SendResult(success=False, correlation_id=correlation_id, reason="timeout")
                except ProtocolError as e:
                    return SendResult(success=False, correlation_id=correlation_id, reason="protocol_error", ack=e.frame)

            return SendResult(success=True, correlation_id=correlation_id, ack=frame)

    async def post(self, endpoint: Endpoint, datapoints: Datapoints, verb: Verb) -> bool:
        """Transmit without waiting for an ack (the answer arrives as a state frame).

        Returns:
            True if the frame was handed to the transport
        """
        endpoint.ensure_configured()
        slot = self.acks.slot(endpoint.id)
        async with slot.lock:
            try:
                await self._transmit(endpoint, endpoint.address, datapoints, verb)
            except TransportError as e:
                logger.warning("%spost:%s: send failed: %s", self.lp, endpoint.id, e.reason)
                _ = self._counters(endpoint).increment_errors(str(e))
                return False
        return True

    async def probe(
        self,
        endpoint: Endpoint,
        address: str,
        datapoints: Datapoints,
        timeout: float,
    ) -> DecodedFrame | None:
        """
        Single attempt against an arbitrary address, used by network discovery.

        No counters are touched. An undecodable answer counts as no answer.

        Returns:
            The frame offered within ``timeout``, or None

        Raises:
            ConfigurationError: Endpoint is missing identity or secret
            TransportError: Nothing reachable at ``address``
        """
        missing = [name for name, value in (("id", endpoint.id), ("local_key", endpoint.local_key)) if not value]
        if missing:
            raise ConfigurationError(endpoint.id, missing)

        slot = self.acks.slot(endpoint.id)
        async with slot.exclusive():
            _ = slot.arm()
            await self._transmit(endpoint, address, datapoints, Verb.CONTROL)
            try:
                return await slot.take(timeout)
            except AckTimeoutError:
                return None
            except ProtocolError as e:
                logger.debug("%sprobe: undecodable answer from %s: %s", self.lp, address, e.reason)
                return None

    async def release(self, address: str) -> None:
        """Close the transport connection to ``address``."""
        await self.transport.close(address)

    def decode(self, endpoint: Endpoint, data: bytes) -> DecodedFrame:
        """Decode inbound bytes with the endpoint's key."""
        return self.codec.decode(data, endpoint.local_key)

    def slot(self, endpoint_id: str) -> AckSlot:
        return self.acks.slot(endpoint_id)

    async def _transmit(self, endpoint: Endpoint, address: str, datapoints: Datapoints, verb: Verb) -> None:
        data = self.codec.encode(endpoint.local_key, datapoints, verb)
        try:
            await self.transport.send(address, data)
        except TransportError:
            registry.record_command_sent(endpoint.id, verb.value, "transport_error")
            registry.record_transport_error(endpoint.id)
            raise
        registry.record_command_sent(endpoint.id, verb.value, "sent")

    def _counters(self, endpoint: Endpoint) -> EndpointCounters:
        return self.states.counters(endpoint.id)
