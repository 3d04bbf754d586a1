"""Function map: per-device encoding metadata keyed by function code."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from tuya_lan.const import DEFAULT_FUNCTIONS, TUYA_FUNCTIONS

FunctionMeta = dict[str, Any]

COLOUR_BYTE_MAX = 0xFF


class FunctionMap:
    """Resolves a capability category to a function code and its min/max metadata.

    For each category the first candidate code the device reports wins,
    otherwise the category's first candidate is used. Metadata falls back to
    built-in defaults for the common brightness, temperature and colour codes.
    """

    def __init__(self, functions: Mapping[str, Any] | None = None):
        self._functions: dict[str, FunctionMeta] = {}
        for code, meta in (functions or {}).items():
            # device details sometimes carry the metadata as a JSON string
            if isinstance(meta, str):
                meta = json.loads(meta)
            if isinstance(meta, Mapping):
                self._functions[str(code)] = dict(meta)

    def __contains__(self, code: object) -> bool:
        return code in self._functions

    def __eq__(self, other: object) -> bool:
        return isinstance(other, FunctionMap) and self._functions == other._functions

    def __repr__(self) -> str:
        return f"FunctionMap({sorted(self._functions)})"

    def as_dict(self) -> dict[str, FunctionMeta]:
        return {code: dict(meta) for code, meta in self._functions.items()}

    def code_for(self, category: str) -> str:
        """Return the function code used for ``category``."""
        candidates = TUYA_FUNCTIONS[category]
        for code in candidates:
            if code in self._functions:
                return code
        return candidates[0]

    def meta(self, category: str) -> FunctionMeta:
        """Return encoding metadata for ``category`` (may be empty)."""
        code = self.code_for(category)
        if code in self._functions:
            return self._functions[code]
        return dict(DEFAULT_FUNCTIONS.get(code, {}))

    def range(self, category: str, channel: str | None = None, default: tuple[int, int] = (0, 100)) -> tuple[int, int]:
        """Return the (min, max) hardware range for a category or one of its channels."""
        meta = self.meta(category)
        if channel is not None:
            meta = meta.get(channel) or {}
        if not isinstance(meta, Mapping) or "min" not in meta or "max" not in meta:
            return default
        return int(meta["min"]), int(meta["max"])

    def colour_channel(self, channel: str) -> tuple[int, int]:
        """Return the range of the colour datapoint's ``h``, ``s`` or ``v`` field.

        Saturation and value travel as two hex digits, so a wider device
        range (``colour_data_v2`` reports 1-1000) is capped at 0xff.
        """
        if channel == "h":
            return self.range("colour", "h", (1, 360))
        low, high = self.range("colour", channel, (1, 255))
        return min(low, COLOUR_BYTE_MAX), min(high, COLOUR_BYTE_MAX)
