"""Shared fixtures for unit tests.

The fake transport records every command the session writes, so queue and
reply handling can be asserted without sockets.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from kaleido_controller.session import KaleidoSession
from kaleido_controller.state import DerivedState
from kaleido_controller.transport.retry_policy import TimeoutConfig
from tests.helpers.fakes import TEST_HOST, FakeTransport


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def derived_state() -> DerivedState:
    return DerivedState()


@pytest.fixture
def status_callback() -> MagicMock:
    return MagicMock()


@pytest.fixture
def session(fake_transport: FakeTransport, derived_state: DerivedState, status_callback: MagicMock) -> KaleidoSession:
    """Session over the fake transport with a long response timeout."""
    return KaleidoSession(
        TEST_HOST,
        fake_transport,
        state=derived_state,
        timeout_config=TimeoutConfig(response_timeout_seconds=30.0),
        on_status=status_callback,
    )
