"""Shared test fixtures with dual-mode support (fake vs live explorer).

Usage:
    pytest tests/                 # Fast, fake statistics service (no network)
    pytest tests/ --live          # Also hit the real Lichess explorer

Fixtures:
    memory_store       - Fresh in-process KeyValueStore.
    session_store      - SessionStore over memory_store.
    blunder_store      - BlunderStore over memory_store.
    fake_clock         - Manually advanced clock for drill timing.
    enable_validation  - Sets OPENINGBLITZ_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os

import chess
import pytest

from openingblitz.blunders import BlunderStore
from openingblitz.explorer import StatsUnavailableError
from openingblitz.models import MoveStat, PositionStats
from openingblitz.rules import position_key
from openingblitz.sessions import SessionStore
from openingblitz.store import MemoryStore


# ---------------------------------------------------------------------------
# CLI option and marker registration
# ---------------------------------------------------------------------------


def pytest_addoption(parser):
    """Register --live CLI flag for tests against the real explorer."""
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests that call the real Lichess opening explorer.",
    )


def pytest_configure(config):
    """Register the live marker."""
    config.addinivalue_line(
        "markers", "live: mark test as needing network access to Lichess"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--live"):
        return
    skip_live = pytest.mark.skip(reason="needs --live")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Position and statistics helpers
# ---------------------------------------------------------------------------


def fen_after(*sans: str) -> str:
    """FEN reached by playing ``sans`` from the starting position."""
    board = chess.Board()
    for san in sans:
        board.push_san(san)
    return board.fen()


def make_stats(*moves: tuple, opening_name: str | None = None) -> PositionStats:
    """Build PositionStats from (san, white, draws, black[, opening_name]) tuples.

    Position totals are the sums over the moves.
    """
    stats = []
    for entry in moves:
        san, white, draws, black = entry[:4]
        name = entry[4] if len(entry) > 4 else None
        stats.append(MoveStat(san=san, white=white, draws=draws, black=black, opening_name=name))
    return PositionStats(
        moves=tuple(stats),
        white=sum(m.white for m in stats),
        draws=sum(m.draws for m in stats),
        black=sum(m.black for m in stats),
        opening_name=opening_name,
    )


class FakeExplorer:
    """StatsSource keyed by position. Unknown positions get ``default``.

    Positions listed in ``failing`` raise StatsUnavailableError. Every
    call is logged in ``calls`` as (fen, rating_level). ``on_fetch`` runs
    before each lookup so tests can interleave cancel/start.
    """

    def __init__(self, stats: dict | None = None, default: PositionStats | None = None):
        self._stats = {position_key(fen): s for fen, s in (stats or {}).items()}
        self.default = default if default is not None else PositionStats()
        self.failing: set[str] = set()
        self.calls: list[tuple[str, int]] = []
        self.on_fetch = None

    def add(self, fen: str, stats: PositionStats) -> None:
        self._stats[position_key(fen)] = stats

    def fail(self, fen: str) -> None:
        self.failing.add(position_key(fen))

    def fetch(self, fen: str, rating_level: int) -> PositionStats:
        self.calls.append((fen, rating_level))
        if self.on_fetch is not None:
            self.on_fetch(fen)
        key = position_key(fen)
        if key in self.failing:
            raise StatsUnavailableError(f"no data for {fen}")
        return self._stats.get(key, self.default)


class SequenceRandom:
    """Random source returning a fixed sequence of values, repeating the last."""

    def __init__(self, *values: float):
        self._values = list(values) or [0.0]
        self._index = 0

    def random(self) -> float:
        value = self._values[min(self._index, len(self._values) - 1)]
        self._index += 1
        return value


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore(MemoryStore):
    """MemoryStore whose writes fail with OSError."""

    def set(self, key: str, value: bytes) -> None:
        raise OSError("disk full")


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def memory_store():
    return MemoryStore()


@pytest.fixture()
def session_store(memory_store):
    return SessionStore(memory_store)


@pytest.fixture()
def blunder_store(memory_store):
    return BlunderStore(memory_store)


@pytest.fixture()
def fake_clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set OPENINGBLITZ_VALIDATE=1 for the test.

    Restores the original env var value after the test.
    """
    original = os.environ.get("OPENINGBLITZ_VALIDATE")
    os.environ["OPENINGBLITZ_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("OPENINGBLITZ_VALIDATE", None)
    else:
        os.environ["OPENINGBLITZ_VALIDATE"] = original
