"""Endpoint configuration: settings model, endpoint record and YAML loader."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tuya_lan.const import (
    DEFAULT_FX_COUNT,
    DEFAULT_HEARTBEAT_SECS,
    DEFAULT_POWER_DPS,
    DEFAULT_REPEAT,
    DEFAULT_TIMEOUT_SECS,
)
from tuya_lan.devices.functions import FunctionMap
from tuya_lan.logging_abstraction import get_logger
from tuya_lan.protocol.exceptions import ConfigurationError

logger = get_logger(__name__)

__all__ = [
    "Endpoint",
    "EndpointSettings",
    "load_endpoints",
    "persist_settings",
]


class EndpointSettings(BaseModel):
    """User-facing configuration surface of one endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    address: str = ""
    power_dps: int = Field(DEFAULT_POWER_DPS, ge=1, le=255)
    repeat: int = Field(DEFAULT_REPEAT, ge=0, le=5)
    timeout_secs: float = Field(DEFAULT_TIMEOUT_SECS, ge=1, le=5)
    heartbeat_secs: int = Field(DEFAULT_HEARTBEAT_SECS, ge=0, le=60)
    fx_count: int = Field(DEFAULT_FX_COUNT, ge=0, le=9)


@dataclasses.dataclass(frozen=True)
class Endpoint:
    """A LAN endpoint: identity, shared secret, settings and function map.

    Immutable while in use; a settings update produces a new Endpoint.
    """

    id: str
    local_key: str = ""
    name: str = ""
    settings: EndpointSettings = dataclasses.field(default_factory=EndpointSettings)
    functions: FunctionMap = dataclasses.field(default_factory=FunctionMap)

    @property
    def address(self) -> str:
        return self.settings.address

    @property
    def power_code(self) -> str:
        """Datapoint code of the power switch."""
        return str(self.settings.power_dps)

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def ensure_configured(self) -> None:
        """Raise ConfigurationError unless identity, secret and address are all set."""
        missing = [
            field_name
            for field_name, value in (("id", self.id), ("local_key", self.local_key), ("address", self.address))
            if not value
        ]
        if missing:
            raise ConfigurationError(self.id, missing)

    def with_settings(self, **changes: Any) -> Endpoint:
        """Return a copy with ``changes`` applied to (and validated against) the settings."""
        merged = {**self.settings.model_dump(), **changes}
        return dataclasses.replace(self, settings=EndpointSettings.model_validate(merged))


def _endpoint_from_mapping(endpoint_id: str, data: Mapping[str, object]) -> Endpoint:
    settings = EndpointSettings.model_validate(dict(data))
    functions_obj = data.get("functions")
    functions = FunctionMap(cast("Mapping[str, Any]", functions_obj) if isinstance(functions_obj, Mapping) else None)
    return Endpoint(
        id=endpoint_id,
        local_key=str(data.get("local_key") or ""),
        name=str(data.get("name") or ""),
        settings=settings,
        functions=functions,
    )


def load_endpoints(config_file: str | Path) -> dict[str, Endpoint]:
    """Parse a YAML configuration file into endpoints keyed by id.

    Args:
        config_file: Path to the YAML configuration file

    Returns:
        Mapping of endpoint id to Endpoint. Invalid entries are logged and skipped.

    Raises:
        OSError: The file cannot be read
        yaml.YAMLError: The file is not valid YAML

    """
    path = Path(config_file).expanduser()
    logger.debug("Parsing config file: %s", path)
    endpoints: dict[str, Endpoint] = {}

    try:
        with path.open() as f:
            raw_config_obj = cast("Mapping[str, object] | None", yaml.safe_load(f))
    except (OSError, yaml.YAMLError):
        logger.exception("Failed to parse config file: %s", path)
        raise

    if not isinstance(raw_config_obj, Mapping):
        logger.warning("Invalid config structure: expected mapping at root")
        return endpoints

    devices_obj = raw_config_obj.get("devices")
    if not isinstance(devices_obj, Mapping):
        logger.warning("No 'devices' section found in config file")
        return endpoints

    for endpoint_id, data in cast("Mapping[object, object]", devices_obj).items():
        if not isinstance(data, Mapping):
            logger.warning("Skipping device '%s' - expected a mapping", endpoint_id)
            continue
        try:
            endpoint = _endpoint_from_mapping(str(endpoint_id), cast("Mapping[str, object]", data))
        except (ValidationError, ValueError) as e:
            logger.warning(
                "Skipping device '%s' - invalid configuration: %s",
                endpoint_id,
                e,
                extra={"endpoint_id": str(endpoint_id)},
            )
            continue
        endpoints[endpoint.id] = endpoint

    logger.info("Parsed config: %d devices", len(endpoints))
    return endpoints


def persist_settings(config_file: str | Path, endpoint: Endpoint) -> None:
    """Write ``endpoint``'s settings back into its entry of the YAML configuration file.

    Other entries and keys are preserved; the file is created if missing.
    """
    path = Path(config_file).expanduser()
    raw_config: dict[str, Any] = {}
    if path.exists():
        with path.open() as f:
            loaded = yaml.safe_load(f)
        if isinstance(loaded, Mapping):
            raw_config = dict(cast("Mapping[str, Any]", loaded))

    devices_obj = raw_config.get("devices")
    devices: dict[str, Any] = dict(cast("Mapping[str, Any]", devices_obj)) if isinstance(devices_obj, Mapping) else {}
    entry_obj = devices.get(endpoint.id)
    entry: dict[str, Any] = dict(cast("Mapping[str, Any]", entry_obj)) if isinstance(entry_obj, Mapping) else {}
    entry.update(endpoint.settings.model_dump())
    devices[endpoint.id] = entry
    raw_config["devices"] = devices

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as f:
        _ = f.write(yaml.safe_dump(raw_config, sort_keys=False))
    logger.info("Saved settings for device '%s' to %s", endpoint.id, path)
