"""Shared fixtures: a fixed clock and fresh stores per test."""

import datetime as dt

import pytest

from clarity_signals.capsule import CapsuleStore
from clarity_signals.observations import ObservationKind
from clarity_signals.stat_store import DecayedStatStore, InMemoryStatStore, PatternStat


NOW = dt.datetime(2025, 3, 14, 9, 30, tzinfo=dt.timezone.utc)


@pytest.fixture
def now():
    """Fixed UTC instant; tests move time with timedelta."""
    return NOW


@pytest.fixture
def mem_port():
    return InMemoryStatStore()


@pytest.fixture
def stats(mem_port):
    """DecayedStatStore over an in-memory port."""
    return DecayedStatStore(mem_port)


@pytest.fixture
def capsule():
    """In-memory capsule with learning enabled."""
    return CapsuleStore()


@pytest.fixture
def make_stat(now):
    """Build a PatternStat with sensible defaults."""

    def _make(kind=ObservationKind.STYLE_PREFERENCE, key="bullets", score=0.7, count=3,
              first_seen_at=None, last_seen_at=None, half_life_days=90.0):
        return PatternStat(
            kind=kind,
            key=key,
            score=score,
            count=count,
            first_seen_at=first_seen_at or now - dt.timedelta(days=30),
            last_seen_at=last_seen_at or now,
            half_life_days=half_life_days,
        )

    return _make
