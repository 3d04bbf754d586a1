"""Unit tests for TuyaLanController."""

from __future__ import annotations

import asyncio

import pytest

from tests.helpers.fakes import (
    TEST_ADDRESS,
    FakeCodec,
    ManualScheduler,
    RecordingTransport,
    SentFrame,
    frame_bytes,
    make_endpoint,
    status_bytes,
)
from tuya_lan.controller import TuyaLanController
from tuya_lan.devices.state import DeviceEvent
from tuya_lan.transport.socket_abstraction import TCPTransport
from tuya_lan.transport.types import CMD_CONTROL_ACK


@pytest.fixture
def received() -> list[tuple[str, DeviceEvent]]:
    return []


@pytest.fixture
def controller(
    codec: FakeCodec,
    transport: RecordingTransport,
    scheduler: ManualScheduler,
    received: list[tuple[str, DeviceEvent]],
) -> TuyaLanController:
    return TuyaLanController(
        codec,
        transport=transport,
        scheduler=scheduler,
        on_event=lambda endpoint_id, event: received.append((endpoint_id, event)),
    )


class TestRegistration:
    """Tests for endpoint registration."""

    def test_add_and_get(self, controller: TuyaLanController):
        light = controller.add_endpoint(make_endpoint("bulb1"))
        assert controller.get("bulb1") is light

    def test_duplicate_rejected(self, controller: TuyaLanController):
        _ = controller.add_endpoint(make_endpoint("bulb1"))
        with pytest.raises(ValueError, match="already registered"):
            _ = controller.add_endpoint(make_endpoint("bulb1"))

    def test_unknown_endpoint(self, controller: TuyaLanController):
        with pytest.raises(KeyError):
            _ = controller.get("nope")

    def test_default_transport_routes_back(self, codec: FakeCodec, scheduler: ManualScheduler):
        controller = TuyaLanController(codec, scheduler=scheduler)
        assert isinstance(controller.transport, TCPTransport)
        assert controller.transport.on_data == controller.handle_address_data
        assert controller.transport.on_status == controller.handle_address_status


class TestRouting:
    """Tests for inbound routing."""

    def test_events_are_tagged_with_endpoint(
        self,
        controller: TuyaLanController,
        received: list[tuple[str, DeviceEvent]],
    ):
        controller.add_endpoints([make_endpoint("bulb1"), make_endpoint("bulb2", address="192.168.1.41")])

        controller.handle_frame("bulb2", status_bytes({"1": True}))

        assert [(endpoint_id, event.name, event.value) for endpoint_id, event in received] == [("bulb2", "switch", "on")]

    def test_address_data_routed_by_address(self, controller: TuyaLanController):
        _ = controller.add_endpoint(make_endpoint("bulb1"))
        other = controller.add_endpoint(make_endpoint("bulb2", address="192.168.1.41"))

        controller.handle_address_data("192.168.1.41", status_bytes({"1": False}))

        assert other.state.switch == "off"
        assert controller.get("bulb1").state.switch is None

    def test_unknown_address_dropped(self, controller: TuyaLanController):
        _ = controller.add_endpoint(make_endpoint("bulb1"))
        controller.handle_address_data("10.9.9.9", status_bytes({"1": True}))
        assert controller.get("bulb1").state.switch is None

    def test_status_counts_errors(self, controller: TuyaLanController):
        light = controller.add_endpoint(make_endpoint("bulb1"))

        controller.handle_address_status(TEST_ADDRESS, "error: connection reset")
        controller.handle_address_status("10.9.9.9", "error: connection reset")

        assert light.errors == 1

    @pytest.mark.asyncio
    async def test_scan_replies_routed_to_probing_light(
        self,
        controller: TuyaLanController,
        transport: RecordingTransport,
    ):
        light = controller.add_endpoint(make_endpoint("bulb1", address=""))
        light.scanner.probe_timeout = 0.01
        probed: list[str] = []

        def _respond(frame: SentFrame) -> None:
            probed.append(frame.address)
            assert controller.light_for_address(frame.address) is light

        transport.responder = _respond

        await light.scan_network("10.0.0.5", "10.0.0.5")

        assert probed == ["10.0.0.5"]
        assert controller.light_for_address("10.0.0.5") is None


class TestLifecycle:
    """Tests for initialize_all and stop."""

    @pytest.mark.asyncio
    async def test_initialize_all_survives_failures(
        self,
        controller: TuyaLanController,
        transport: RecordingTransport,
    ):
        healthy = controller.add_endpoint(make_endpoint("bulb1", timeout_secs=0.01))
        broken = controller.add_endpoint(make_endpoint("bulb2", address="192.168.1.41", timeout_secs=0.01))

        async def _explode() -> None:
            msg = "boom"
            raise RuntimeError(msg)

        broken.initialize = _explode  # type: ignore[method-assign]

        await controller.initialize_all()

        assert healthy.state.lightEffects == "{}"
        assert [frame.address for frame in transport.sent] == [TEST_ADDRESS]

    @pytest.mark.asyncio
    async def test_address_ack_completes_command(
        self,
        controller: TuyaLanController,
        transport: RecordingTransport,
    ):
        light = controller.add_endpoint(make_endpoint("bulb1", timeout_secs=0.05))

        def _respond(frame: SentFrame) -> None:
            loop = asyncio.get_running_loop()
            _ = loop.call_soon(controller.handle_address_data, frame.address, frame_bytes(CMD_CONTROL_ACK))

        transport.responder = _respond

        await light.off()

        assert light.state.switch == "off"
        assert light.retries == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_heartbeats(
        self,
        controller: TuyaLanController,
        scheduler: ManualScheduler,
        transport: RecordingTransport,
    ):
        _ = controller.add_endpoint(make_endpoint("bulb1", timeout_secs=0.01, heartbeat_secs=20))
        await controller.initialize_all()
        assert len(scheduler.pending) == 1

        await controller.stop()

        assert scheduler.pending == []
        assert transport.closed == [None]
