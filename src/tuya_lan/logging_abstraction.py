"""Logging for tuya-lan.

Records go to JSON lines, human-readable lines, or both, selected by the
TUYA_LOG_* environment. Each record is stamped with the correlation ID of the
command run, heartbeat or scan probe that emitted it, and carries the
``extra=`` context (endpoint, address, attempt) passed by the caller.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import cast

from typing_extensions import override

from tuya_lan.correlation import get_correlation_id

__all__ = [
    "HumanReadableFormatter",
    "JSONFormatter",
    "LogFormat",
    "TuyaLogger",
    "get_logger",
]

NO_CORRELATION = "--------"


class LogFormat(StrEnum):
    JSON = "json"
    HUMAN = "human"
    BOTH = "both"

    @property
    def writes_json(self) -> bool:
        return self is not LogFormat.HUMAN

    @property
    def writes_human(self) -> bool:
        return self is not LogFormat.JSON


def _context(record: logging.LogRecord) -> dict[str, object]:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping):
        return dict(cast("Mapping[str, object]", extra_data))
    return {}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shipping."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "location": f"{record.module}:{record.lineno}",
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Console lines: ``time level [module:line] [corr] > message | key=value``."""

    def __init__(self) -> None:
        super().__init__(datefmt="%m/%d/%y %H:%M:%S")

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        tag = correlation_id[:8] if correlation_id else NO_CORRELATION
        line = (
            f"{self.formatTime(record, self.datefmt)}.{int(record.msecs):03d} {record.levelname} "
            f"[{record.module}:{record.lineno}] [{tag}] > {record.getMessage()}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        context = _context(record)
        if context:
            line += " | " + " | ".join(f"{key}={value}" for key, value in context.items())
        return line


def _open_handler(target: str) -> logging.Handler:
    """Stream handler for ``stdout``/``stderr``, file handler for anything else."""
    if target == "stdout":
        return logging.StreamHandler(sys.stdout)
    if target == "stderr":
        return logging.StreamHandler(sys.stderr)
    path = Path(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a")


class TuyaLogger:
    """Wraps a stdlib logger; ``extra=`` becomes structured context.

    Handlers are attached the first time a name is used, so every module can
    call ``get_logger(__name__)`` without duplicating output.
    """

    def __init__(
        self,
        name: str,
        log_format: str = LogFormat.HUMAN,
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        """
        Args:
            name: Logger name, usually the module's ``__name__``
            log_format: "json", "human" or "both"; unknown values mean "human"
            json_file: Where JSON lines go; JSON output is off without one
            human_output: "stdout", "stderr" or a file path
        """
        # const is reloaded after .env loading, so read it at call time
        from tuya_lan.const import TUYA_DEBUG

        self.name = name
        self.logger = logging.getLogger(name)
        try:
            self.log_format = LogFormat(log_format)
        except ValueError:
            self.log_format = LogFormat.HUMAN
        self.logger.setLevel(logging.DEBUG if TUYA_DEBUG else logging.INFO)
        if not self.logger.handlers:
            self._attach(json_file, human_output or "stdout")

    def _attach(self, json_file: str | Path | None, human_output: str) -> None:
        outputs: list[tuple[str, logging.Formatter]] = []
        if self.log_format.writes_json and json_file:
            outputs.append((str(json_file), JSONFormatter()))
        if self.log_format.writes_human:
            outputs.append((human_output, HumanReadableFormatter()))

        for target, formatter in outputs:
            try:
                handler = _open_handler(target)
            except OSError as e:
                print(f"Warning: cannot open log output {target}: {e}; using stderr", file=sys.stderr)
                handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            handler.setLevel(self.logger.level)
            self.logger.addHandler(handler)

    def _log(
        self,
        level: int,
        msg: str,
        *args: object,
        extra: Mapping[str, object] | None = None,
        exc_info: bool = False,
    ) -> None:
        # stacklevel 3 attributes the record to the caller of debug()/info()/...
        payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=payload, exc_info=exc_info, stacklevel=3)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, msg, *args, extra=extra, exc_info=True)

    def set_level(self, level: int) -> None:
        """Apply ``level`` to the logger and each of its handlers."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> TuyaLogger:
    """Return a TuyaLogger; arguments left as None come from TUYA_LOG_*."""
    from tuya_lan.const import TUYA_LOG_FORMAT, TUYA_LOG_HUMAN_OUTPUT, TUYA_LOG_JSON_FILE

    return TuyaLogger(
        name,
        log_format=log_format or TUYA_LOG_FORMAT,
        json_file=json_file or TUYA_LOG_JSON_FILE,
        human_output=human_output or TUYA_LOG_HUMAN_OUTPUT,
    )
