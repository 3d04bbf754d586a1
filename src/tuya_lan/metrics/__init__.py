"""Metrics module."""

from . import registry
from .registry import (
    record_ack_received,
    record_ack_timeout,
    record_command_sent,
    record_heartbeat,
    start_metrics_server,
)

__all__ = [
    "record_ack_received",
    "record_ack_timeout",
    "record_command_sent",
    "record_heartbeat",
    "registry",
    "start_metrics_server",
]
