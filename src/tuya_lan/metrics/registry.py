"""Prometheus metrics registry for command delivery and state sync."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Histogram,
    start_http_server,
)

tuya_lan_command_sent_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_command_sent_total",
    "Total commands transmitted",
    ["device_id", "verb", "outcome"],
)

tuya_lan_ack_received_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_ack_received_total",
    "Total ack-shaped frames received",
    ["device_id", "ack_type", "outcome"],
)

tuya_lan_ack_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "tuya_lan_ack_latency_seconds",
    "Time from transmit to ack rendezvous in seconds",
    ["device_id"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

tuya_lan_ack_timeout_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_ack_timeout_total",
    "Total ack timeouts",
    ["device_id"],
)

tuya_lan_retry_attempts_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_retry_attempts_total",
    "Total retry attempts",
    ["device_id", "attempt_number"],
)

tuya_lan_transport_errors_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_transport_errors_total",
    "Total transport send failures",
    ["device_id"],
)

tuya_lan_protocol_errors_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_protocol_errors_total",
    "Total frames the codec reported as errors",
    ["device_id"],
)

tuya_lan_unsolicited_frame_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_unsolicited_frame_total",
    "Total ack frames dropped because no command was waiting",
    ["device_id"],
)

tuya_lan_command_abandoned_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_command_abandoned_total",
    "Total commands abandoned",
    ["device_id", "reason"],
)

tuya_lan_heartbeat_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_heartbeat_total",
    "Total heartbeat exchanges",
    ["device_id", "outcome"],
)

tuya_lan_scan_probe_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_scan_probe_total",
    "Total network scan probes",
    ["outcome"],
)

tuya_lan_event_emitted_total: Final = Counter(  # type: ignore[assignment]
    "tuya_lan_event_emitted_total",
    "Total canonical state change events emitted",
    ["device_id", "attribute"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_command_sent(device_id: str, verb: str, outcome: str) -> None:
    """Record a command transmit attempt."""
    tuya_lan_command_sent_total.labels(device_id=device_id, verb=verb, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_ack_received(device_id: str, ack_type: str, outcome: str) -> None:
    """Record an ack-shaped frame and whether it met a waiter."""
    tuya_lan_ack_received_total.labels(
        device_id=device_id,
        ack_type=ack_type,
        outcome=outcome,
    ).inc()  # type: ignore[no-untyped-call]


def record_ack_latency(device_id: str, latency_seconds: float) -> None:
    """Record transmit-to-ack latency."""
    tuya_lan_ack_latency_seconds.labels(device_id=device_id).observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_ack_timeout(device_id: str) -> None:
    """Record an ack timeout."""
    tuya_lan_ack_timeout_total.labels(device_id=device_id).inc()  # type: ignore[no-untyped-call]


def record_retry_attempt(device_id: str, attempt_number: int) -> None:
    """Record a retry attempt."""
    tuya_lan_retry_attempts_total.labels(
        device_id=device_id,
        attempt_number=str(attempt_number),
    ).inc()  # type: ignore[no-untyped-call]


def record_transport_error(device_id: str) -> None:
    """Record a transport failure."""
    tuya_lan_transport_errors_total.labels(device_id=device_id).inc()  # type: ignore[no-untyped-call]


def record_protocol_error(device_id: str) -> None:
    """Record a frame the codec could not decode."""
    tuya_lan_protocol_errors_total.labels(device_id=device_id).inc()  # type: ignore[no-untyped-call]


def record_unsolicited_frame(device_id: str) -> None:
    """Record an ack dropped because nobody was waiting."""
    tuya_lan_unsolicited_frame_total.labels(device_id=device_id).inc()  # type: ignore[no-untyped-call]


def record_command_abandoned(device_id: str, reason: str) -> None:
    """Record a command given up on."""
    tuya_lan_command_abandoned_total.labels(device_id=device_id, reason=reason).inc()  # type: ignore[no-untyped-call]


def record_heartbeat(device_id: str, outcome: str) -> None:
    """Record a heartbeat exchange."""
    tuya_lan_heartbeat_total.labels(device_id=device_id, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_scan_probe(outcome: str) -> None:
    """Record a network scan probe."""
    tuya_lan_scan_probe_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_event_emitted(device_id: str, attribute: str) -> None:
    """Record a state change event."""
    tuya_lan_event_emitted_total.labels(device_id=device_id, attribute=attribute).inc()  # type: ignore[no-untyped-call]
