"""Local command delivery: ack rendezvous, retry policy, dispatcher and TCP adapter."""

from tuya_lan.transport.ack_registry import AckRegistry, AckSlot
from tuya_lan.transport.dispatcher import CommandDispatcher
from tuya_lan.transport.retry_policy import RetryPolicy
from tuya_lan.transport.scheduler import LoopScheduler, Scheduler
from tuya_lan.transport.types import Codec, DecodedFrame, SendResult, Transport, Verb

__all__ = [
    "AckRegistry",
    "AckSlot",
    "Codec",
    "CommandDispatcher",
    "DecodedFrame",
    "LoopScheduler",
    "RetryPolicy",
    "Scheduler",
    "SendResult",
    "Transport",
    "Verb",
]
