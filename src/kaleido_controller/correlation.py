"""Correlation IDs tying the log lines of one command exchange together.

The Kaleido protocol carries no request identifiers. Each command gets a
local ID when it is written (``<sequence>-<random>``) and the processing of
its reply runs under the same ID, so send, parse and follow-up logs can be
grepped together. ``main`` opens a run-level scope for everything else.
"""

from __future__ import annotations

import secrets
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar

__all__ = [
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
]

RUN_PREFIX = "run"

_current: ContextVar[str | None] = ContextVar("kaleido_correlation_id", default=None)


def generate_correlation_id(sequence: int | None = None) -> str:
    """``0042-9f3c1a2b`` for command 42, ``run-9f3c1a2b`` without a sequence."""
    prefix = f"{sequence:04d}" if sequence is not None else RUN_PREFIX
    return f"{prefix}-{secrets.token_hex(4)}"


def get_correlation_id() -> str | None:
    return _current.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """Run a block under ``correlation_id`` (a fresh run ID when None).

    The enclosing ID is restored on exit, also when the block raises.
    """
    scoped_id = correlation_id or generate_correlation_id()
    token = _current.set(scoped_id)
    try:
        yield scoped_id
    finally:
        _current.reset(token)
