"""Mock implementations for testing."""

from tests.mocks.engine import FakeCheckProvider, FakeEngine, ManualClock


__all__ = [
    "FakeCheckProvider",
    "FakeEngine",
    "ManualClock",
]
