"""
Test configuration: puts the repo root on sys.path and provides a fake clock.

Tests that exercise TTL behaviour use `fake_clock` instead of sleeping, so
expiry boundaries can be checked to the millisecond.
"""

import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import memo_cache
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def fake_clock(monkeypatch):
    """Replace the cache engine's clock with a FakeClock starting at 0 ms."""
    clock = FakeClock()
    monkeypatch.setattr("memo_cache.cache_manager._now_ms", clock)
    return clock
