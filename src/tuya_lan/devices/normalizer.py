"""
State normalizer: vendor datapoint maps -> canonical attribute events.

Decoded datapoints are turned into candidate (attribute, value) pairs through
a lookup table keyed by Datapoint. Every candidate passes through ``commit``,
the single change gate that compares with the canonical state, updates it and
publishes an event only when the value actually changed.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING, NamedTuple

from tuya_lan.const import MAX_MIREDS, MIN_MIREDS
from tuya_lan.devices.color import color_name, remap
from tuya_lan.devices.state import CanonicalState, ColorMode, DeviceEvent, StateRegistry
from tuya_lan.logging_abstraction import get_logger

if TYPE_CHECKING:
    from tuya_lan.config import Endpoint

logger = get_logger(__name__)

# first six characters are the RGB pre-render, the HSV triple follows
COLOUR_PATTERN = re.compile(r"^.{6}([0-9a-f]{4})([0-9a-f]{2})([0-9a-f]{2})$")


class Datapoint(StrEnum):
    """Closed set of datapoint codes understood by the normalizer.

    POWER holds the default code; the effective power code comes from the
    endpoint's ``power_dps`` setting.
    """

    POWER = "1"
    MODE = "2"
    BRIGHTNESS = "3"
    TEMPERATURE = "4"
    COLOUR = "5"


class Candidate(NamedTuple):
    name: str
    value: object
    unit: str = ""
    description: str = ""


class StateNormalizer:
    """Reconciles inbound datapoints against the canonical state."""

    lp: str = "StateNormalizer:"

    def __init__(self, states: StateRegistry):
        self._states = states
        self._decoders: dict[Datapoint, Callable[[Endpoint, object, str | None], list[Candidate]]] = {
            Datapoint.POWER: self._decode_power,
            Datapoint.BRIGHTNESS: self._decode_brightness,
            Datapoint.TEMPERATURE: self._decode_temperature,
            Datapoint.COLOUR: self._decode_colour,
        }

    def apply(self, endpoint: Endpoint, datapoints: Mapping[str, object]) -> list[DeviceEvent]:
        """Decode ``datapoints`` for ``endpoint`` and return the events that changed state."""
        lp = f"{self.lp}apply:{endpoint.id}:"
        dps = {str(code): value for code, value in datapoints.items()}
        logger.debug("%s parsing dps %s", lp, dps)

        by_datapoint = self._classify(endpoint, dps, lp)
        state = self._states.state(endpoint.id)

        candidates: list[Candidate] = []
        if Datapoint.POWER in by_datapoint:
            candidates.extend(self._decoders[Datapoint.POWER](endpoint, by_datapoint[Datapoint.POWER], state.colorMode))

        mode_candidates, mode = self._resolve_mode(by_datapoint, state.colorMode)
        candidates.extend(mode_candidates)

        for datapoint in (Datapoint.BRIGHTNESS, Datapoint.TEMPERATURE, Datapoint.COLOUR):
            if datapoint in by_datapoint:
                candidates.extend(self._decoders[datapoint](endpoint, by_datapoint[datapoint], mode))

        events: list[DeviceEvent] = []
        for candidate in candidates:
            event = self.commit(endpoint.id, *candidate)
            if event is not None:
                events.append(event)
        return events

    def commit(
        self,
        endpoint_id: str,
        name: str,
        value: object,
        unit: str = "",
        description: str = "",
    ) -> DeviceEvent | None:
        """Change gate: update the canonical attribute and publish if it differs.

        Returns:
            The published event, or None when the value is unchanged
        """
        if name not in CanonicalState.attribute_names():
            logger.debug("%scommit: ignoring unknown attribute '%s'", self.lp, name)
            return None

        record = self._states.record(endpoint_id)
        if getattr(record.state, name) == value:
            return None

        setattr(record.state, name, value)
        event = DeviceEvent(name, value, unit, description)
        if description:
            logger.info("%scommit:%s: %s", self.lp, endpoint_id, description)
        record.publish(event)
        return event

    @staticmethod
    def _classify(endpoint: Endpoint, dps: dict[str, object], lp: str) -> dict[Datapoint, object]:
        by_datapoint: dict[Datapoint, object] = {}
        fixed = {dp.value: dp for dp in Datapoint if dp is not Datapoint.POWER}
        for code, value in dps.items():
            if code == endpoint.power_code:
                by_datapoint[Datapoint.POWER] = value
            elif code in fixed:
                by_datapoint[fixed[code]] = value
            else:
                logger.debug("%s ignoring unrecognized datapoint %s=%r", lp, code, value)
        return by_datapoint

    @staticmethod
    def _resolve_mode(
        by_datapoint: Mapping[Datapoint, object],
        current_mode: str | None,
    ) -> tuple[list[Candidate], str | None]:
        """Apply the mode precedence: explicit mode > temperature > colour."""
        if Datapoint.MODE in by_datapoint:
            value = str(by_datapoint[Datapoint.MODE])
            if value.startswith("scene"):
                return [Candidate("effectName", value, description=f"scene is {value}")], current_mode
            mode = ColorMode.RGB.value if value == "colour" else ColorMode.CT.value
            return [
                Candidate("colorMode", mode, description=f"color mode is {mode}"),
                Candidate("effectName", ""),
            ], mode
        if Datapoint.TEMPERATURE in by_datapoint:
            mode = ColorMode.CT.value
            return [Candidate("colorMode", mode, description=f"color mode is {mode}")], mode
        if Datapoint.COLOUR in by_datapoint:
            mode = ColorMode.RGB.value
            return [Candidate("colorMode", mode, description=f"color mode is {mode}")], mode
        return [], current_mode

    def _decode_power(self, _endpoint: Endpoint, value: object, _mode: str | None) -> list[Candidate]:
        switch = "on" if value else "off"
        return [Candidate("switch", switch, description=f"switch is {switch}")]

    def _decode_brightness(self, endpoint: Endpoint, value: object, mode: str | None) -> list[Candidate]:
        if mode != ColorMode.CT.value:
            return []
        try:
            raw = int(str(value))
        except ValueError:
            logger.debug("%s ignoring malformed brightness %r", self.lp, value)
            return []
        low, high = endpoint.functions.range("brightness")
        level = math.floor(remap(raw, low, high, 0, 100))
        return [Candidate("level", level, "%", f"level is {level}%")]

    def _decode_temperature(self, endpoint: Endpoint, value: object, _mode: str | None) -> list[Candidate]:
        try:
            raw = int(str(value))
        except ValueError:
            logger.debug("%s ignoring malformed color temperature %r", self.lp, value)
            return []
        low, high = endpoint.functions.range("temperature")
        mireds = remap(high - raw, low, high, MIN_MIREDS, MAX_MIREDS)
        kelvin = math.floor(Decimal(1_000_000) / mireds)
        return [Candidate("colorTemperature", kelvin, "K", f"color temperature is {kelvin}K")]

    def _decode_colour(self, endpoint: Endpoint, value: object, mode: str | None) -> list[Candidate]:
        if mode != ColorMode.RGB.value:
            return []
        match = COLOUR_PATTERN.match(str(value))
        if match is None:
            logger.debug("%s ignoring malformed colour %r", self.lp, value)
            return []

        functions = endpoint.functions
        h, s, v = (int(group, 16) for group in match.groups())
        hue = math.floor(remap(h, *functions.colour_channel("h"), 0, 100))
        saturation = math.floor(remap(s, *functions.colour_channel("s"), 0, 100))
        level = math.floor(remap(v, *functions.colour_channel("v"), 0, 100))
        name = color_name(hue, saturation)
        return [
            Candidate("hue", hue, description=f"hue is {hue}"),
            Candidate("colorName", name, description=f"color name is {name}"),
            Candidate("saturation", saturation, description=f"saturation is {saturation}"),
            Candidate("level", level, "%", f"level is {level}%"),
        ]
