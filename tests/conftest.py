"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from bus_rpc.bus import InMemoryBus


@pytest.fixture
def bus() -> InMemoryBus:
    """Bus delivering synchronously inside publish()."""
    return InMemoryBus()


@pytest.fixture
def async_bus() -> InMemoryBus:
    """Bus scheduling deliveries on the running event loop."""
    return InMemoryBus(asynchronous=True)


@pytest.fixture(params=[False, True], ids=["sync-bus", "async-bus"])
def any_bus(request: pytest.FixtureRequest) -> InMemoryBus:
    """Both delivery modes; the protocol must not depend on either."""
    return InMemoryBus(asynchronous=request.param)
