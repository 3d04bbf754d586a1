"""Shared fixtures for unit tests.

This module wires the delivery layer to in-memory collaborators: a JSON
codec, a recording transport and a manually driven scheduler.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from tests.helpers.fakes import FakeCodec, ManualScheduler, RecordingTransport, SentFrame, make_endpoint
from tuya_lan.config import Endpoint
from tuya_lan.devices.light import TuyaLight
from tuya_lan.devices.normalizer import StateNormalizer
from tuya_lan.devices.state import DeviceEvent, StateRegistry
from tuya_lan.transport.ack_registry import AckRegistry
from tuya_lan.transport.dispatcher import CommandDispatcher
from tuya_lan.transport.types import CMD_CONTROL_ACK, CMD_HEARTBEAT_ACK, DecodedFrame, Verb

# Keeps retry tests fast while preserving the backoff ordering
TEST_BACKOFF_SECONDS = 0.01


@pytest.fixture
def codec() -> FakeCodec:
    return FakeCodec()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def acks() -> AckRegistry:
    return AckRegistry()


@pytest.fixture
def states() -> StateRegistry:
    return StateRegistry()


@pytest.fixture
def dispatcher(codec: FakeCodec, transport: RecordingTransport, acks: AckRegistry, states: StateRegistry) -> CommandDispatcher:
    return CommandDispatcher(codec, transport, acks, states, backoff_seconds=TEST_BACKOFF_SECONDS)


@pytest.fixture
def normalizer(states: StateRegistry) -> StateNormalizer:
    return StateNormalizer(states)


@pytest.fixture
def endpoint() -> Endpoint:
    return make_endpoint(timeout_secs=0.05)


@pytest.fixture
def events(states: StateRegistry, endpoint: Endpoint) -> list[DeviceEvent]:
    """Every event published for the default endpoint."""
    received: list[DeviceEvent] = []
    states.record(endpoint.id).subscribe(received.append)
    return received


@pytest.fixture
def light(
    endpoint: Endpoint,
    dispatcher: CommandDispatcher,
    normalizer: StateNormalizer,
    states: StateRegistry,
    scheduler: ManualScheduler,
) -> TuyaLight:
    return TuyaLight(endpoint, dispatcher, normalizer, states, scheduler)


@pytest.fixture
def auto_ack(transport: RecordingTransport, acks: AckRegistry) -> Callable[[str], None]:
    """Make the transport answer every send with the matching ack for ``endpoint_id``."""

    def _enable(endpoint_id: str = "bulb1") -> None:
        def _respond(frame: SentFrame) -> None:
            command_byte = CMD_HEARTBEAT_ACK if frame.verb == Verb.HEART_BEAT.value else CMD_CONTROL_ACK
            ack = DecodedFrame(command_byte=command_byte)
            _ = asyncio.get_running_loop().call_soon(acks.offer, endpoint_id, ack)

        transport.responder = _respond

    return _enable
