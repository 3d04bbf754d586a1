"""In-memory collaborators for unit tests: codec, transport and scheduler."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field

from tuya_lan.config import Endpoint, EndpointSettings
from tuya_lan.devices.functions import FunctionMap
from tuya_lan.protocol.exceptions import TransportError
from tuya_lan.transport.scheduler import Job
from tuya_lan.transport.types import Datapoints, DecodedFrame, Verb

TEST_ADDRESS = "192.168.1.40"
TEST_LOCAL_KEY = "0123456789abcdef"


def make_endpoint(
    endpoint_id: str = "bulb1",
    *,
    local_key: str = TEST_LOCAL_KEY,
    functions: dict[str, object] | None = None,
    **settings: object,
) -> Endpoint:
    """Endpoint with unvalidated settings so tests can use sub-second timeouts."""
    values: dict[str, object] = {"address": TEST_ADDRESS, "heartbeat_secs": 0}
    values.update(settings)
    return Endpoint(
        id=endpoint_id,
        local_key=local_key,
        name=endpoint_id,
        settings=EndpointSettings.model_construct(**values),
        functions=FunctionMap(functions),
    )


def frame_bytes(command_byte: int, text: str = "", error: str | None = None) -> bytes:
    """Wire bytes the FakeCodec decodes into the given frame."""
    return json.dumps({"command_byte": command_byte, "text": text, "error": error}).encode()


def status_bytes(dps: dict[str, object], command_byte: int = 8) -> bytes:
    return frame_bytes(command_byte, json.dumps({"dps": dps}))


class FakeCodec:
    """JSON stand-in for the encrypted frame codec."""

    def __init__(self) -> None:
        self.decoded_with: list[str] = []

    def encode(self, local_key: str, datapoints: Datapoints, verb: Verb) -> bytes:
        return json.dumps({"key": local_key, "verb": str(verb), "dps": datapoints}).encode()

    def decode(self, data: bytes, local_key: str) -> DecodedFrame:
        self.decoded_with.append(local_key)
        payload = json.loads(data)
        return DecodedFrame(
            command_byte=int(payload["command_byte"]),
            text=str(payload.get("text") or ""),
            error=payload.get("error"),
        )


@dataclass
class SentFrame:
    address: str
    key: str
    verb: str
    dps: dict[str, object]


@dataclass
class RecordingTransport:
    """Records every transmit; can fail, hang or answer each send."""

    sent: list[SentFrame] = field(default_factory=list)
    failures: list[TransportError] = field(default_factory=list)
    responder: Callable[[SentFrame], None] | None = None
    hang: asyncio.Event | None = None
    closed: list[str | None] = field(default_factory=list)
    in_flight: int = 0
    max_in_flight: int = 0

    async def send(self, address: str, data: bytes) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.hang is not None:
                # blocks until the test sets the event or cancels the sender
                await self.hang.wait()
            if self.failures:
                raise self.failures.pop(0)
            payload = json.loads(data)
            frame = SentFrame(address, payload["key"], payload["verb"], payload["dps"])
            self.sent.append(frame)
            if self.responder is not None:
                self.responder(frame)
        finally:
            self.in_flight -= 1

    async def close(self, address: str | None = None) -> None:
        self.closed.append(address)

    def fail_next(self, count: int = 1, address: str = TEST_ADDRESS) -> None:
        self.failures.extend(TransportError(address, "connection reset") for _ in range(count))


class ManualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ScheduledJob:
    delay: float
    job: Job
    handle: ManualHandle


class ManualScheduler:
    """Scheduler that only runs jobs when the test says so."""

    def __init__(self) -> None:
        self.jobs: list[ScheduledJob] = []

    def call_later(self, delay: float, job: Job) -> ManualHandle:
        handle = ManualHandle()
        self.jobs.append(ScheduledJob(delay, job, handle))
        return handle

    @property
    def pending(self) -> list[ScheduledJob]:
        return [entry for entry in self.jobs if not entry.handle.cancelled]

    async def run_next(self) -> bool:
        """Run the oldest pending job; False when nothing is pending."""
        for entry in self.jobs:
            if not entry.handle.cancelled:
                self.jobs.remove(entry)
                await entry.job()
                return True
        return False

    async def run_all(self, limit: int = 1000) -> int:
        ran = 0
        while ran < limit and await self.run_next():
            ran += 1
        return ran
