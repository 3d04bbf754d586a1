"""Unit tests for metrics registry."""

from __future__ import annotations

from unittest.mock import patch

from tuya_lan.metrics import registry


def _has_labels(metric: object, labels: dict[str, str]) -> bool:
    samples = list(metric.collect()[0].samples)  # type: ignore[attr-defined]
    return any(s.labels == labels for s in samples)


class TestCommandMetrics:
    """Tests for command delivery metrics."""

    def test_record_command_sent(self) -> None:
        registry.record_command_sent("device1", "CONTROL", "sent")
        assert _has_labels(
            registry.tuya_lan_command_sent_total,
            {"device_id": "device1", "verb": "CONTROL", "outcome": "sent"},
        )

    def test_record_ack_received(self) -> None:
        registry.record_ack_received("device1", "control", "delivered")
        assert _has_labels(
            registry.tuya_lan_ack_received_total,
            {"device_id": "device1", "ack_type": "control", "outcome": "delivered"},
        )

    def test_record_ack_latency(self) -> None:
        registry.record_ack_latency("device1", 0.03)
        samples = list(registry.tuya_lan_ack_latency_seconds.collect()[0].samples)
        count = next(s for s in samples if s.name.endswith("_count") and s.labels == {"device_id": "device1"})
        assert count.value >= 1

    def test_record_ack_timeout(self) -> None:
        registry.record_ack_timeout("device1")
        assert _has_labels(registry.tuya_lan_ack_timeout_total, {"device_id": "device1"})

    def test_record_retry_attempt(self) -> None:
        registry.record_retry_attempt("device1", 2)
        assert _has_labels(registry.tuya_lan_retry_attempts_total, {"device_id": "device1", "attempt_number": "2"})

    def test_record_command_abandoned(self) -> None:
        registry.record_command_abandoned("device1", "max_retries")
        assert _has_labels(registry.tuya_lan_command_abandoned_total, {"device_id": "device1", "reason": "max_retries"})


class TestErrorMetrics:
    """Tests for error and drop counters."""

    def test_record_transport_error(self) -> None:
        registry.record_transport_error("device1")
        assert _has_labels(registry.tuya_lan_transport_errors_total, {"device_id": "device1"})

    def test_record_protocol_error(self) -> None:
        registry.record_protocol_error("device1")
        assert _has_labels(registry.tuya_lan_protocol_errors_total, {"device_id": "device1"})

    def test_record_unsolicited_frame(self) -> None:
        registry.record_unsolicited_frame("device1")
        assert _has_labels(registry.tuya_lan_unsolicited_frame_total, {"device_id": "device1"})


class TestDeviceMetrics:
    """Tests for heartbeat, scan and event counters."""

    def test_record_heartbeat(self) -> None:
        registry.record_heartbeat("device1", "ok")
        assert _has_labels(registry.tuya_lan_heartbeat_total, {"device_id": "device1", "outcome": "ok"})

    def test_record_scan_probe(self) -> None:
        registry.record_scan_probe("miss")
        assert _has_labels(registry.tuya_lan_scan_probe_total, {"outcome": "miss"})

    def test_record_event_emitted(self) -> None:
        registry.record_event_emitted("device1", "switch")
        assert _has_labels(registry.tuya_lan_event_emitted_total, {"device_id": "device1", "attribute": "switch"})


class TestMetricsServer:
    """Tests for the HTTP exporter."""

    def test_start_is_idempotent(self) -> None:
        with patch.dict(registry._server_state, {"started": False}), patch.object(
            registry,
            "start_http_server",
        ) as mock_start:
            registry.start_metrics_server(9555)
            registry.start_metrics_server(9555)

        mock_start.assert_called_once_with(9555)
