"""Composition root: owns the registries, dispatcher, normalizer and lights."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from tuya_lan.devices.light import FallbackHandler, SettingsHook, TuyaLight
from tuya_lan.devices.normalizer import StateNormalizer
from tuya_lan.devices.state import DeviceEvent, StateRegistry
from tuya_lan.logging_abstraction import get_logger
from tuya_lan.transport.ack_registry import AckRegistry
from tuya_lan.transport.dispatcher import CommandDispatcher
from tuya_lan.transport.scheduler import LoopScheduler, Scheduler
from tuya_lan.transport.socket_abstraction import TCPTransport

if TYPE_CHECKING:
    from tuya_lan.config import Endpoint
    from tuya_lan.transport.types import Codec, Transport

logger = get_logger(__name__)

EventCallback = Callable[[str, DeviceEvent], None]


class TuyaLanController:
    """Wires endpoints to a shared dispatcher and routes inbound data to their lights."""

    lp: str = "TuyaLanController:"

    def __init__(
        self,
        codec: Codec,
        transport: Transport | None = None,
        scheduler: Scheduler | None = None,
        fallback: FallbackHandler | None = None,
        on_settings_changed: SettingsHook | None = None,
        on_event: EventCallback | None = None,
    ):
        """
        Initialize the controller.

        Args:
            codec: Frame codec shared by every endpoint
            transport: Transport to use; a TCPTransport routed back to this controller by default
            scheduler: Scheduler for heartbeats and scan continuation (LoopScheduler by default)
            fallback: Collaborator invoked when local commands fail
            on_settings_changed: Called with the new Endpoint after a settings update
            on_event: Called with (endpoint_id, event) for every published event
        """
        self.acks = AckRegistry()
        self.states = StateRegistry()
        self.scheduler: Scheduler = scheduler or LoopScheduler()
        self.transport: Transport = transport or TCPTransport(
            on_data=self.handle_address_data,
            on_status=self.handle_address_status,
        )
        self.dispatcher = CommandDispatcher(codec, self.transport, self.acks, self.states)
        self.normalizer = StateNormalizer(self.states)
        self.fallback = fallback
        self.on_settings_changed = on_settings_changed
        self.on_event = on_event
        self.lights: dict[str, TuyaLight] = {}

    def add_endpoint(self, endpoint: Endpoint) -> TuyaLight:
        """Register an endpoint and return its light."""
        if endpoint.id in self.lights:
            msg = f"Endpoint '{endpoint.id}' is already registered"
            raise ValueError(msg)
        light = TuyaLight(
            endpoint,
            self.dispatcher,
            self.normalizer,
            self.states,
            self.scheduler,
            fallback=self.fallback,
            on_settings_changed=self.on_settings_changed,
        )
        if self.on_event is not None:
            callback = self.on_event
            endpoint_id = endpoint.id
            light.record.subscribe(lambda event: callback(endpoint_id, event))
        self.lights[endpoint.id] = light
        logger.debug("%sadd_endpoint: registered %s", self.lp, endpoint.display_name)
        return light

    def add_endpoints(self, endpoints: Iterable[Endpoint]) -> None:
        for endpoint in endpoints:
            _ = self.add_endpoint(endpoint)

    def get(self, endpoint_id: str) -> TuyaLight:
        """Return the light for ``endpoint_id``.

        Raises:
            KeyError: The endpoint is not registered
        """
        return self.lights[endpoint_id]

    def handle_frame(self, endpoint_id: str, data: bytes) -> None:
        """Route inbound bytes for a known endpoint."""
        self.get(endpoint_id).parse(data)

    def light_for_address(self, address: str) -> TuyaLight | None:
        """Light configured at ``address``, or the one currently probing it during a scan."""
        for light in self.lights.values():
            if light.endpoint.address == address:
                return light
        for light in self.lights.values():
            if light.scanner.probing and light.scanner.current_ip == address:
                return light
        return None

    def handle_address_data(self, address: str, data: bytes) -> None:
        light = self.light_for_address(address)
        if light is None:
            logger.warning("%shandle_address_data: data from unknown address %s dropped", self.lp, address)
            return
        light.parse(data)

    def handle_address_status(self, address: str, message: str) -> None:
        light = self.light_for_address(address)
        if light is not None:
            light.socket_status(message)

    async def initialize_all(self) -> None:
        """Initialize every light; one failing light does not stop the others."""
        for light in self.lights.values():
            try:
                await light.initialize()
            except Exception:
                logger.exception("%sinitialize_all: failed to initialize %s", self.lp, light.endpoint.display_name)

    async def stop(self) -> None:
        """Stop heartbeats and scans, close the transport and cancel scheduled work."""
        logger.info("%sstop: shutting down", self.lp)
        for light in self.lights.values():
            light.stop()
        await self.transport.close()
        shutdown = getattr(self.scheduler, "shutdown", None)
        if shutdown is not None:
            await shutdown()
