"""Assertion helpers shared by the unit tests."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
E = TypeVar("E", bound=BaseException)


async def expect_async_exception(
    func: Callable[P, Awaitable[object]],
    exception_type: type[E],
    *args: P.args,
    **kwargs: P.kwargs,
) -> E:
    """Await ``func`` and return the ``exception_type`` it raised.

    Any other exception propagates; returning normally fails the test.
    """
    try:
        _ = await func(*args, **kwargs)
    except exception_type as err:
        return err
    msg = f"{getattr(func, '__qualname__', func)} did not raise {exception_type.__name__}"
    raise AssertionError(msg)


def assert_message(error: BaseException, pattern: str) -> None:
    """Fail unless ``str(error)`` matches ``pattern`` (re.search)."""
    assert re.search(pattern, str(error)), f"{str(error)!r} does not match {pattern!r}"
