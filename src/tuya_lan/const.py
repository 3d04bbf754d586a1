import os
from typing import Any

from tuya_lan import __version__

__all__ = [
    "DEFAULT_FUNCTIONS",
    "DEFAULT_FX_COUNT",
    "DEFAULT_HEARTBEAT_SECS",
    "DEFAULT_POWER_DPS",
    "DEFAULT_REPEAT",
    "DEFAULT_TIMEOUT_SECS",
    "MAX_MIREDS",
    "MIN_MIREDS",
    "SCAN_PROBE_TIMEOUT_SECONDS",
    "SEND_BACKOFF_SECONDS",
    "TUYA_CONFIG_FILE_PATH",
    "TUYA_DEBUG",
    "TUYA_FUNCTIONS",
    "TUYA_LOG_FORMAT",
    "TUYA_LOG_HUMAN_OUTPUT",
    "TUYA_LOG_JSON_FILE",
    "TUYA_METRICS_PORT",
    "TUYA_PERF_THRESHOLD_MS",
    "TUYA_PERF_TRACKING",
    "TUYA_PORT",
    "TUYA_VERSION",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
TUYA_VERSION: str = __version__

TUYA_DEBUG: bool = os.environ.get("TUYA_DEBUG", "0").casefold() in YES_ANSWER
TUYA_LOG_FORMAT: str = os.environ.get("TUYA_LOG_FORMAT", "human").casefold()
_json_file = os.environ.get("TUYA_LOG_JSON_FILE")
TUYA_LOG_JSON_FILE: str | None = _json_file if _json_file else None
TUYA_LOG_HUMAN_OUTPUT: str = os.environ.get("TUYA_LOG_HUMAN_OUTPUT", "stdout")

TUYA_PERF_TRACKING: bool = os.environ.get("TUYA_PERF_TRACKING", "0").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("TUYA_PERF_THRESHOLD_MS", "1500")
try:
    _perf_threshold_value: int = int(_perf_threshold) if _perf_threshold else 1500
except ValueError:
    _perf_threshold_value = 1500
TUYA_PERF_THRESHOLD_MS: int = _perf_threshold_value

TUYA_CONFIG_FILE_PATH: str = os.environ.get("TUYA_CONFIG_FILE_PATH", "~/.config/tuya-lan/devices.yaml")
_metrics_port = os.environ.get("TUYA_METRICS_PORT")
try:
    _metrics_port_value: int | None = int(_metrics_port) if _metrics_port else None
except ValueError:
    _metrics_port_value = None
TUYA_METRICS_PORT: int | None = _metrics_port_value

# Local protocol port used by the TCP adapter
TUYA_PORT = 6668

# Configuration surface defaults
DEFAULT_POWER_DPS = 1
DEFAULT_REPEAT = 3
DEFAULT_TIMEOUT_SECS = 1
DEFAULT_HEARTBEAT_SECS = 20
DEFAULT_FX_COUNT = 0

SEND_BACKOFF_SECONDS: float = 0.25
SCAN_PROBE_TIMEOUT_SECONDS: float = 0.25

# Hardware-native color temperature scale
MIN_MIREDS = 153
MAX_MIREDS = 500

# Function categories -> candidate function codes, in preference order
TUYA_FUNCTIONS: dict[str, tuple[str, ...]] = {
    "brightness": ("bright_value", "bright_value_v2", "bright_value_1"),
    "colour": ("colour_data", "colour_data_v2"),
    "switch": ("switch_led", "switch_led_1", "light"),
    "temperature": ("temp_value", "temp_value_v2"),
    "workMode": ("work_mode",),
}

# Encoding metadata used when the device details omit a function
DEFAULT_FUNCTIONS: dict[str, dict[str, Any]] = {
    "bright_value": {"min": 0, "max": 100, "scale": 0, "step": 1},
    "bright_value_v2": {"min": 0, "max": 100, "scale": 0, "step": 1},
    "temp_value": {"min": 0, "max": 100, "scale": 0, "step": 1},
    "temp_value_v2": {"min": 0, "max": 100, "scale": 0, "step": 1},
    "colour_data": {
        "h": {"min": 1, "max": 360, "scale": 0, "step": 1},
        "s": {"min": 1, "max": 255, "scale": 0, "step": 1},
        "v": {"min": 1, "max": 255, "scale": 0, "step": 1},
    },
    "colour_data_v2": {
        "h": {"min": 1, "max": 360, "scale": 0, "step": 1},
        "s": {"min": 1, "max": 1000, "scale": 0, "step": 1},
        "v": {"min": 1, "max": 1000, "scale": 0, "step": 1},
    },
}
