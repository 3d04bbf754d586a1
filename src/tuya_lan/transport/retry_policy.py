"""Retry policy for command delivery.

A command run makes up to ``repeat`` attempts. Each attempt waits
``timeout_seconds`` for an acknowledgment; a transport failure sleeps a
fixed ``backoff_seconds`` before the next attempt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tuya_lan.const import SEND_BACKOFF_SECONDS

if TYPE_CHECKING:
    from tuya_lan.config import EndpointSettings


class RetryPolicy:
    """Fixed-count, fixed-backoff retry policy."""

    def __init__(
        self,
        repeat: int = 3,
        timeout_seconds: float = 1.0,
        backoff_seconds: float = SEND_BACKOFF_SECONDS,
    ):
        """Initialize retry policy.

        Args:
            repeat: Number of attempts (0 makes no attempt at all)
            timeout_seconds: Ack wait per attempt
            backoff_seconds: Pause after a transport failure
        """
        self.repeat = repeat
        self.timeout_seconds = timeout_seconds
        self.backoff_seconds = backoff_seconds

    @classmethod
    def from_settings(cls, settings: EndpointSettings, backoff_seconds: float = SEND_BACKOFF_SECONDS) -> RetryPolicy:
        return cls(
            repeat=settings.repeat,
            timeout_seconds=float(settings.timeout_secs),
            backoff_seconds=backoff_seconds,
        )

    def attempts(self) -> range:
        """Attempt numbers, 1-based."""
        return range(1, self.repeat + 1)

    @property
    def max_duration_seconds(self) -> float:
        """Upper bound of a command run that never succeeds."""
        return self.repeat * (self.timeout_seconds + self.backoff_seconds)

    def __repr__(self) -> str:
        return (
            f"RetryPolicy(repeat={self.repeat}, "
            f"timeout={self.timeout_seconds}s, "
            f"backoff={self.backoff_seconds}s)"
        )
