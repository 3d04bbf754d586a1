"""Unit tests for RetryPolicy."""

from __future__ import annotations

import pytest

from tuya_lan.config import EndpointSettings
from tuya_lan.const import SEND_BACKOFF_SECONDS
from tuya_lan.transport.retry_policy import RetryPolicy


class TestRetryPolicy:
    """Tests for attempt counting and bounds."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.repeat == 3
        assert policy.timeout_seconds == 1.0
        assert policy.backoff_seconds == SEND_BACKOFF_SECONDS

    def test_attempts_are_one_based(self):
        assert list(RetryPolicy(repeat=3).attempts()) == [1, 2, 3]

    def test_zero_repeat_has_no_attempts(self):
        assert list(RetryPolicy(repeat=0).attempts()) == []

    def test_from_settings(self):
        policy = RetryPolicy.from_settings(EndpointSettings(repeat=5, timeout_secs=2), backoff_seconds=0.5)
        assert policy.repeat == 5
        assert policy.timeout_seconds == 2.0
        assert policy.backoff_seconds == 0.5

    def test_max_duration(self):
        policy = RetryPolicy(repeat=2, timeout_seconds=1.0, backoff_seconds=0.25)
        assert policy.max_duration_seconds == pytest.approx(2.5)

    def test_repr(self):
        assert "repeat=4" in repr(RetryPolicy(repeat=4))
