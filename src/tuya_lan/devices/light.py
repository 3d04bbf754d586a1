"""
Capability surface of a Tuya RGBW light on the local network.

Capability calls build datapoint maps, remap logical values to the device's
native ranges and hand them to the CommandDispatcher. A successful CONTROL
command publishes optimistic events through the normalizer's change gate; a
failed one is delegated to the FallbackHandler when one is configured.
"""

from __future__ import annotations

import inspect
import json
import math
from collections.abc import Awaitable, Callable, Iterable, Mapping
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from tuya_lan.const import MAX_MIREDS, MIN_MIREDS
from tuya_lan.devices.color import color_name, hsv_to_rgb_hex, remap
from tuya_lan.devices.heartbeat import HeartbeatLoop
from tuya_lan.devices.scanner import NetworkScanner
from tuya_lan.devices.state import ColorMode
from tuya_lan.logging_abstraction import get_logger
from tuya_lan.metrics import registry
from tuya_lan.protocol.exceptions import ConfigurationError
from tuya_lan.transport.types import Datapoints, DatapointValue, Verb

if TYPE_CHECKING:
    from tuya_lan.config import Endpoint
    from tuya_lan.devices.normalizer import StateNormalizer
    from tuya_lan.devices.state import CanonicalState, DeviceRecord, StateRegistry
    from tuya_lan.transport.dispatcher import CommandDispatcher
    from tuya_lan.transport.scheduler import Scheduler

logger = get_logger(__name__)

SettingsHook = Callable[["Endpoint"], Awaitable[None] | None]

MODE_CODE = "2"
BRIGHTNESS_CODE = "3"
TEMPERATURE_CODE = "4"
COLOUR_CODE = "5"


class FallbackHandler(Protocol):
    """External collaborator that takes over when a local command fails (e.g. a cloud relay)."""

    async def component_on(self, endpoint: Endpoint) -> None: ...

    async def component_off(self, endpoint: Endpoint) -> None: ...

    async def component_set_color(self, endpoint: Endpoint, hue: float, saturation: float, level: float) -> None: ...

    async def component_set_color_temperature(
        self,
        endpoint: Endpoint,
        kelvin: float,
        level: float | None,
        duration: float | None,
    ) -> None: ...

    async def component_set_level(self, endpoint: Endpoint, level: float, duration: float | None) -> None: ...

    async def component_refresh(self, endpoint: Endpoint) -> None: ...


class TuyaLight:
    """A locally controlled RGBW light."""

    def __init__(
        self,
        endpoint: Endpoint,
        dispatcher: CommandDispatcher,
        normalizer: StateNormalizer,
        states: StateRegistry,
        scheduler: Scheduler,
        fallback: FallbackHandler | None = None,
        on_settings_changed: SettingsHook | None = None,
    ):
        self.endpoint = endpoint
        self.dispatcher = dispatcher
        self.normalizer = normalizer
        self.states = states
        self.scheduler = scheduler
        self.fallback = fallback
        self.on_settings_changed = on_settings_changed
        self.scanner = NetworkScanner(dispatcher, scheduler)
        self.heartbeat: HeartbeatLoop | None = None

    @property
    def lp(self) -> str:
        return f"TuyaLight:{self.endpoint.display_name}:"

    @property
    def record(self) -> DeviceRecord:
        return self.states.record(self.endpoint.id)

    @property
    def state(self) -> CanonicalState:
        return self.record.state

    @property
    def retries(self) -> int:
        return self.record.counters.retries

    @property
    def errors(self) -> int:
        return self.record.counters.errors

    def attributes(self) -> dict[str, object]:
        """Snapshot of every exposed attribute."""
        return {**self.state.model_dump(), "retries": self.retries, "errors": self.errors}

    # lifecycle

    async def initialize(self) -> None:
        """Reset counters and canonical state, publish the effect list and (re)start the heartbeat."""
        lp = f"{self.lp}initialize:"
        logger.info("%s initializing", lp, extra={"address": self.endpoint.address})
        if self.heartbeat is not None:
            self.heartbeat.stop()
        self.record.counters.reset("reset")
        self.record.reset_state()

        fx_count = self.endpoint.settings.fx_count
        effects = {str(i): f"scene{i}" for i in range(1, fx_count + 1)}
        _ = self._commit("lightEffects", json.dumps(effects))

        self.heartbeat = HeartbeatLoop(self.endpoint, self.dispatcher, self.scheduler)
        await self.heartbeat.start()

    async def update_settings(self, **changes: object) -> None:
        """Apply settings changes, notify the settings hook and re-initialize.

        Raises:
            pydantic.ValidationError: A changed value is out of range
        """
        self.endpoint = self.endpoint.with_settings(**changes)
        logger.info("%supdate_settings: driver configuration updated", self.lp, extra=dict(changes))
        if self.on_settings_changed is not None:
            result = self.on_settings_changed(self.endpoint)
            if inspect.isawaitable(result):
                await result
        await self.initialize()

    def stop(self) -> None:
        if self.heartbeat is not None:
            self.heartbeat.stop()
        self.scanner.cancel()

    # inbound

    def parse(self, data: bytes) -> None:
        """Decode inbound bytes and route the frame by command byte."""
        lp = f"{self.lp}parse:"
        if not data:
            return
        frame = self.dispatcher.decode(self.endpoint, data)
        logger.debug("%s received %s", lp, frame)
        slot = self.dispatcher.slot(self.endpoint.id)

        if frame.error:
            logger.error("%s received error %s", lp, frame.error)
            registry.record_protocol_error(self.endpoint.id)
            _ = self.record.counters.increment_errors(frame.error)
            # fail the pending command rather than let it time out
            if slot.waiting:
                _ = slot.offer(frame)
        elif frame.is_ack:
            _ = slot.offer(frame)
        elif frame.is_state:
            try:
                payload = json.loads(frame.text)
            except ValueError:
                logger.warning("%s state frame is not JSON: %r", lp, frame.text)
                registry.record_protocol_error(self.endpoint.id)
                _ = self.record.counters.increment_errors("invalid state payload")
                return
            dps = payload.get("dps") if isinstance(payload, Mapping) else None
            if isinstance(dps, Mapping):
                _ = self.normalizer.apply(self.endpoint, dps)
        else:
            logger.debug("%s ignoring frame with command byte %s", lp, frame.command_byte)

    def parse_cloud_events(self, events: Iterable[Mapping[str, object]]) -> None:
        """Apply events relayed by the fallback collaborator through the change gate."""
        for event in events:
            name = event.get("name")
            if not isinstance(name, str):
                continue
            _ = self._commit(
                name,
                event.get("value"),
                str(event.get("unit") or ""),
                str(event.get("descriptionText") or event.get("description") or ""),
            )

    def socket_status(self, message: str) -> None:
        """Transport status notification; errors are counted."""
        lp = f"{self.lp}socket_status:"
        if "error" in message:
            logger.error("%s socket %s", lp, message)
            _ = self.record.counters.increment_errors(message)
        else:
            logger.info("%s socket %s", lp, message)

    # capabilities

    async def on(self) -> None:
        logger.info("%son: switching on", self.lp)
        if await self._command({self.endpoint.power_code: True}):
            _ = self._commit("switch", "on", description="switch is on")
        elif self.fallback is not None:
            await self.fallback.component_on(self.endpoint)

    async def off(self) -> None:
        logger.info("%soff: switching off", self.lp)
        if await self._command({self.endpoint.power_code: False}):
            _ = self._commit("switch", "off", description="switch is off")
        elif self.fallback is not None:
            await self.fallback.component_off(self.endpoint)

    async def set_color(self, hue: float, saturation: float, level: float) -> None:
        """Set hue/saturation/level (all 0-100)."""
        lp = f"{self.lp}set_color:"
        logger.info("%s setting color to hue=%s saturation=%s level=%s", lp, hue, saturation, level)

        functions = self.endpoint.functions
        h = int(remap(hue, 0, 100, *functions.colour_channel("h")))
        s = int(remap(saturation, 0, 100, *functions.colour_channel("s")))
        v = int(remap(level, 0, 100, *functions.colour_channel("v")))
        rgb = hsv_to_rgb_hex(hue, saturation, level)
        hsv = f"{h:04x}{s:02x}{v:02x}"
        name = color_name(int(hue), int(saturation))

        if await self._command({COLOUR_CODE: rgb + hsv, MODE_CODE: "colour"}):
            _ = self._commit("hue", _number(hue), description=f"hue is {_number(hue)}")
            _ = self._commit("saturation", _number(saturation), description=f"saturation is {_number(saturation)}")
            _ = self._commit("level", _number(level), "%", f"level is {_number(level)}%")
            _ = self._commit("colorName", name, description=f"color name is {name}")
            _ = self._commit("colorMode", ColorMode.RGB.value, description="color mode is RGB")
        elif self.fallback is not None:
            await self.fallback.component_set_color(self.endpoint, hue, saturation, level)

    async def set_color_temperature(
        self,
        kelvin: float,
        level: float | None = None,
        duration: float | None = None,
    ) -> None:
        """Set color temperature in Kelvin, then the level when one is given and differs."""
        lp = f"{self.lp}set_color_temperature:"
        if kelvin <= 0:
            msg = f"Color temperature must be positive, got {kelvin}"
            raise ValueError(msg)
        logger.info("%s setting color temperature to %sK", lp, kelvin)

        low, high = self.endpoint.functions.range("temperature")
        mireds = Decimal(1_000_000) / Decimal(str(kelvin))
        value = high - math.ceil(remap(mireds, MIN_MIREDS, MAX_MIREDS, low, high))

        if await self._command({TEMPERATURE_CODE: value}):
            _ = self._commit("colorTemperature", _number(kelvin), "K", f"color temperature is {_number(kelvin)}K")
            _ = self._commit("colorMode", ColorMode.CT.value, description="color mode is CT")
        else:
            if self.fallback is not None:
                await self.fallback.component_set_color_temperature(self.endpoint, kelvin, level, duration)
            return

        if level and self.state.level != level:
            await self.set_level(level, duration)

    async def set_level(self, level: float, duration: float | None = None) -> None:
        """Set brightness (0-100); outside CT mode the color is re-sent with the new level."""
        lp = f"{self.lp}set_level:"
        logger.info("%s setting level to %s%%", lp, level)

        if self.state.colorMode == ColorMode.CT.value:
            low, high = self.endpoint.functions.range("brightness")
            value = math.ceil(remap(level, 0, 100, low, high))
            if await self._command({BRIGHTNESS_CODE: value}):
                _ = self._commit("level", _number(level), "%", f"level is {_number(level)}%")
            elif self.fallback is not None:
                await self.fallback.component_set_level(self.endpoint, level, duration)
        else:
            await self.set_color(self.state.hue or 0, self.state.saturation or 0, level)

    async def set_hue(self, hue: float) -> None:
        saturation = self.state.saturation if self.state.saturation is not None else 100
        await self.set_color(hue, saturation, self.state.level or 100)

    async def set_saturation(self, saturation: float) -> None:
        await self.set_color(self.state.hue or 100, saturation, self.state.level or 100)

    async def set_effect(self, effect: int) -> None:
        """Activate scene ``effect``; no fallback."""
        value = f"scene{effect}"
        logger.info("%sset_effect: setting effect to %s", self.lp, value)
        if await self._command({MODE_CODE: value}):
            _ = self._commit("effectName", value, description=f"scene is {value}")

    async def set_next_effect(self) -> None:
        current = self._current_effect()
        if current is None:
            return
        if current == self.endpoint.settings.fx_count:
            current = 0
        await self.set_effect(current + 1)

    async def set_previous_effect(self) -> None:
        current = self._current_effect()
        if current is None:
            return
        if current == 1:
            current = self.endpoint.settings.fx_count + 1
        await self.set_effect(current - 1)

    async def refresh(self) -> None:
        """Ask the device for its datapoints; the answer arrives as a query-result frame."""
        lp = f"{self.lp}refresh:"
        try:
            posted = await self.dispatcher.post(self.endpoint, {}, Verb.DP_QUERY)
        except ConfigurationError as e:
            logger.error("%s %s", lp, e)
            posted = False
        if posted:
            logger.info("%s refreshed local state", lp)
        elif self.fallback is not None:
            await self.fallback.component_refresh(self.endpoint)

    async def scan_network(self, start_ip: str, end_ip: str) -> None:
        """Probe an IPv4 range for this device; the address that answers is saved."""
        await self.scanner.scan(self.endpoint, start_ip, end_ip, self._on_scan_found)

    async def send_custom_dps(self, code: int | str, value: str) -> None:
        """Send a raw datapoint; "true"/"false" (any case) are sent as booleans."""
        logger.info("%ssend_custom_dps: sending DPS %s command %s", self.lp, code, value)
        encoded: DatapointValue
        match value.lower():
            case "true":
                encoded = True
            case "false":
                encoded = False
            case _:
                encoded = value
        _ = await self._command({str(code): encoded})

    # internals

    async def _command(self, datapoints: Datapoints) -> bool:
        try:
            result = await self.dispatcher.send(self.endpoint, datapoints, Verb.CONTROL)
        except ConfigurationError as e:
            logger.error("%scommand: %s", self.lp, e)
            return False
        return result.success

    def _commit(self, name: str, value: object, unit: str = "", description: str = "") -> object:
        return self.normalizer.commit(self.endpoint.id, name, value, unit, description)

    def _current_effect(self) -> int | None:
        effect = self.state.effectName
        if not effect or not effect[-1].isdigit():
            return None
        return int(effect[-1])

    async def _on_scan_found(self, address: str) -> None:
        await self.update_settings(address=address)


def _number(value: float) -> int | float:
    """Render whole numbers as int so events compare equal to decoded state."""
    return int(value) if float(value).is_integer() else value
