"""Assertion helpers for code that is expected to raise.

Each helper returns the caught exception so tests can inspect ``reason``,
previews or messages afterwards.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
TException = TypeVar("TException", bound=BaseException)


def _not_raised(exception_type: type[BaseException]) -> AssertionError:
    return AssertionError(f"Expected {exception_type.__name__} to be raised")


def expect_exception(
    func: Callable[P, object],
    exception_type: type[TException],
    *args: P.args,
    **kwargs: P.kwargs,
) -> TException:
    """Call ``func`` and return the ``exception_type`` it raised."""
    try:
        _ = func(*args, **kwargs)
    except exception_type as err:
        return err
    raise _not_raised(exception_type)  # pragma: no cover


async def expect_async_exception(
    func: Callable[P, Awaitable[object]],
    exception_type: type[TException],
    *args: P.args,
    **kwargs: P.kwargs,
) -> TException:
    """Await ``func`` and return the ``exception_type`` it raised."""
    try:
        _ = await func(*args, **kwargs)
    except exception_type as err:
        return err
    raise _not_raised(exception_type)  # pragma: no cover


def assert_reason(err: BaseException, reason: str) -> None:
    """Check the ``reason`` attribute carried by Kaleido protocol and transport errors."""
    actual = getattr(err, "reason", None)
    assert actual == reason, f"{type(err).__name__} reason {actual!r} != {reason!r}"
