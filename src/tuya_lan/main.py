"""Main entrypoint and lifecycle management for the tuya-lan service."""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import signal
import sys
from pathlib import Path
from typing import Protocol, cast, runtime_checkable

import dotenv
import uvloop

from tuya_lan import const
from tuya_lan.config import Endpoint, load_endpoints, persist_settings
from tuya_lan.controller import TuyaLanController
from tuya_lan.correlation import correlation_context, ensure_correlation_id
from tuya_lan.devices.state import DeviceEvent
from tuya_lan.logging_abstraction import TuyaLogger, get_logger
from tuya_lan.metrics import start_metrics_server
from tuya_lan.transport.types import Codec

logger = get_logger(__name__)

SCAN_POLL_SECONDS = 0.5


@runtime_checkable
class _CLIArgs(Protocol):
    config: Path | None
    codec: str | None
    debug: bool
    env: Path | None
    metrics_port: int | None
    scan: list[str] | None
    device: str | None


def load_codec(path: str) -> Codec:
    """Instantiate a codec from a ``module:factory`` path.

    Raises:
        ValueError: ``path`` is not of the form module:factory
        ImportError: The module cannot be imported
        AttributeError: The module has no such factory
    """
    module_name, sep, factory_name = path.partition(":")
    if not sep or not module_name or not factory_name:
        msg = f"Codec must be given as module:factory, got '{path}'"
        raise ValueError(msg)
    module = importlib.import_module(module_name)
    factory = getattr(module, factory_name)
    return cast("Codec", factory())


def _set_debug(log: TuyaLogger) -> None:
    log.set_level(logging.DEBUG)
    for name in list(logging.root.manager.loggerDict):
        if name.startswith("tuya_lan"):
            logging.getLogger(name).setLevel(logging.DEBUG)
            for handler in logging.getLogger(name).handlers:
                handler.setLevel(logging.DEBUG)


def _load_env(env_path: Path) -> None:
    env_path = env_path.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return
    if dotenv.load_dotenv(env_path, override=True):
        logger.info(" Environment variables loaded", extra={"source": str(env_path)})
        # constants are read at import time
        _ = importlib.reload(const)
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tuya local network light controller")
    _ = parser.add_argument("--config", type=Path, default=None, help="Path to the devices YAML file")
    _ = parser.add_argument(
        "--codec",
        default=None,
        help="Frame codec factory as module:factory (required to talk to devices)",
    )
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument("--metrics-port", type=int, default=None, help="Serve Prometheus metrics on this port")
    _ = parser.add_argument(
        "--scan",
        nargs=2,
        metavar=("START_IP", "END_IP"),
        default=None,
        help="Scan an IPv4 range for --device and save the address that answers",
    )
    _ = parser.add_argument("--device", default=None, help="Device id used with --scan")
    return parser


def parse_cli(argv: list[str] | None = None) -> _CLIArgs:
    """Parse CLI arguments and apply --debug/--env."""
    parser = build_parser()
    args = cast("_CLIArgs", cast("object", parser.parse_args(argv)))
    if args.scan and not args.device:
        parser.error("--scan requires --device")

    if args.env:
        _load_env(args.env)
    if args.debug or const.TUYA_DEBUG:
        _set_debug(logger)
        logger.info("Debug mode enabled")
    return args


def _log_event(endpoint_id: str, event: DeviceEvent) -> None:
    logger.info(
        "%s: %s = %s%s",
        endpoint_id,
        event.name,
        event.value,
        event.unit,
        extra={"description": event.description} if event.description else None,
    )


async def run(args: _CLIArgs) -> int:
    """Load configuration and run the controller until signalled."""
    _ = ensure_correlation_id()
    cfg_file = (args.config or Path(const.TUYA_CONFIG_FILE_PATH)).expanduser().resolve()
    if not cfg_file.exists():
        logger.error(" Configuration file not found", extra={"config_path": str(cfg_file)})
        return 1
    if not args.codec:
        logger.error(" No frame codec configured", extra={"action_required": "pass --codec module:factory"})
        return 2

    logger.info(" Loading configuration", extra={"config_path": str(cfg_file)})
    endpoints = load_endpoints(cfg_file)
    codec = load_codec(args.codec)

    metrics_port = args.metrics_port or const.TUYA_METRICS_PORT
    if metrics_port:
        start_metrics_server(metrics_port)
        logger.info(" Metrics server started", extra={"port": metrics_port})

    def _persist(endpoint: Endpoint) -> None:
        persist_settings(cfg_file, endpoint)

    controller = TuyaLanController(codec, on_settings_changed=_persist, on_event=_log_event)
    controller.add_endpoints(endpoints.values())

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)
    logger.debug("Signal handlers configured for SIGINT & SIGTERM")

    try:
        if args.scan:
            if args.device not in controller.lights:
                logger.error(" Unknown device for scan", extra={"device": args.device})
                return 1
            light = controller.get(cast("str", args.device))
            start_ip, end_ip = args.scan
            await light.scan_network(start_ip, end_ip)
            while light.scanner.probing and not stop_event.is_set():
                await asyncio.sleep(SCAN_POLL_SECONDS)
            logger.info(" Scan finished", extra={"state": light.scanner.state.value, "found": light.scanner.found_ip})
            return 0 if light.scanner.found_ip else 3

        await controller.initialize_all()
        logger.info(" Controller running", extra={"device_count": len(controller.lights)})
        _ = await stop_event.wait()
    finally:
        await controller.stop()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the tuya-lan entry point."""
    with correlation_context():
        logger.info("Starting tuya-lan", extra={"version": const.TUYA_VERSION})
        args = parse_cli(argv)

        loop = uvloop.new_event_loop()
        asyncio.set_event_loop(loop)
        exit_code = 1
        try:
            exit_code = loop.run_until_complete(run(args))
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        except Exception as e:
            logger.exception(" Fatal error in main loop", extra={"error": str(e)})
        else:
            logger.info(" tuya-lan stopped gracefully")
        finally:
            loop.close()
        return exit_code


if __name__ == "__main__":
    sys.exit(main())
