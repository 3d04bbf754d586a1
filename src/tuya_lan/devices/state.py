"""Canonical device state, counters and the per-endpoint state registry."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel

from tuya_lan.logging_abstraction import get_logger
from tuya_lan.metrics import registry

logger = get_logger(__name__)


class ColorMode(StrEnum):
    RGB = "RGB"
    CT = "CT"


class CanonicalState(BaseModel):
    """
    Last-known attribute values of a light.

    None means the value has never been reported. Attribute names are the
    ones exposed to consumers of state change events.
    """

    switch: str | None = None
    hue: int | float | None = None
    saturation: int | float | None = None
    level: int | float | None = None
    colorTemperature: int | float | None = None
    colorMode: str | None = None
    colorName: str | None = None
    effectName: str | None = None
    lightEffects: str | None = None

    @classmethod
    def attribute_names(cls) -> frozenset[str]:
        return frozenset(cls.model_fields)


@dataclass(frozen=True)
class DeviceEvent:
    """An attribute change surfaced to subscribers.

    Attributes:
        name: Attribute name (e.g. "switch", "level", "retries")
        value: New value
        unit: Unit suffix ("%", "K") or empty
        description: Human readable description text
    """

    name: str
    value: object
    unit: str = ""
    description: str = ""


EventListener = Callable[[DeviceEvent], None]


class EndpointCounters:
    """Monotonic retries/errors counters; every change is published as an event."""

    def __init__(self, endpoint_id: str, publish: EventListener):
        self.endpoint_id = endpoint_id
        self.retries = 0
        self.errors = 0
        self._publish = publish

    def increment_retries(self, description: str = "") -> int:
        self.retries += 1
        self._publish(DeviceEvent("retries", self.retries, description=description))
        return self.retries

    def increment_errors(self, description: str = "") -> int:
        self.errors += 1
        self._publish(DeviceEvent("errors", self.errors, description=description))
        return self.errors

    def reset(self, description: str = "reset") -> None:
        self.retries = 0
        self.errors = 0
        self._publish(DeviceEvent("retries", 0, description=description))
        self._publish(DeviceEvent("errors", 0, description=description))


@dataclass
class DeviceRecord:
    """Everything tracked for one endpoint: canonical state, counters, subscribers."""

    endpoint_id: str
    state: CanonicalState = field(default_factory=CanonicalState)
    listeners: list[EventListener] = field(default_factory=list)
    counters: EndpointCounters = field(init=False)

    def __post_init__(self) -> None:
        self.counters = EndpointCounters(self.endpoint_id, self.publish)

    def subscribe(self, listener: EventListener) -> None:
        self.listeners.append(listener)

    def publish(self, event: DeviceEvent) -> None:
        registry.record_event_emitted(self.endpoint_id, event.name)
        for listener in list(self.listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "DeviceRecord:%s:publish: listener failed for event '%s'",
                    self.endpoint_id,
                    event.name,
                )

    def reset_state(self) -> None:
        self.state = CanonicalState()


class StateRegistry:
    """Keyed DeviceRecords, one per endpoint, created on first use."""

    def __init__(self) -> None:
        self._records: dict[str, DeviceRecord] = {}

    def record(self, endpoint_id: str) -> DeviceRecord:
        rec = self._records.get(endpoint_id)
        if rec is None:
            rec = DeviceRecord(endpoint_id)
            self._records[endpoint_id] = rec
        return rec

    def state(self, endpoint_id: str) -> CanonicalState:
        return self.record(endpoint_id).state

    def counters(self, endpoint_id: str) -> EndpointCounters:
        return self.record(endpoint_id).counters

    def __contains__(self, endpoint_id: object) -> bool:
        return endpoint_id in self._records
