"""Correlation ID generation.

IDs combine a random per-generator token with a monotonic counter, so a
single generator never repeats itself and two generators are separated by
their tokens. Nothing is persisted.
"""

from __future__ import annotations

import itertools
import uuid


class CorrelationIdGenerator:
    """Produces correlation IDs of the form ``<prefix>_<token>_<n>``."""

    def __init__(self, prefix: str = "rpc") -> None:
        self.prefix = prefix
        self.token = uuid.uuid4().hex[:12]
        self._counter = itertools.count(1)

    def next_id(self) -> str:
        """Return a fresh correlation ID."""
        return f"{self.prefix}_{self.token}_{next(self._counter)}"


_default_generator = CorrelationIdGenerator()


def new_correlation_id() -> str:
    """Return a fresh ID from the process-wide default generator."""
    return _default_generator.next_id()
