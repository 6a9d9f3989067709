"""Population-statistics move rating, opponent sampling and book gating.

Pure functions over PositionStats: rate a played move by how often it is
chosen and how well it scores for the side to move, pick a popularity
weighted opponent reply, and decide whether a position is still "in book".
"""

from __future__ import annotations

import random
from typing import Protocol

from openingblitz.models import (
    MoveEvaluation,
    MoveHint,
    MoveRating,
    MoveStat,
    PositionStats,
)

# Minimum recorded games for a position to count as opening theory
BOOK_MIN_GAMES = 10

_TOP_MOVES = 3
_STRONG_WIN_RATE = 0.45
_GOOD_WIN_RATE = 0.40
_OK_WIN_RATE = 0.35
_INACCURACY_WIN_RATE = 0.30
_GOOD_FREQUENCY = 0.05
_OK_FREQUENCY = 0.02


class RandomSource(Protocol):
    def random(self) -> float: ...


def win_rate(move: MoveStat, side_to_move: str) -> float:
    """Score for ``side_to_move`` after ``move``: wins plus half the draws."""
    total = move.total
    if total == 0:
        return 0.0
    wins = move.white if side_to_move == "white" else move.black
    return (wins + move.draws * 0.5) / total


def _by_popularity(moves) -> list[MoveStat]:
    # Stable sort keeps the service's order for ties
    return sorted(moves, key=lambda m: m.total, reverse=True)


def rate_move_from_stats(
    move: MoveStat,
    all_moves,
    side_to_move: str,
) -> MoveEvaluation:
    """Rate a move known to the statistics.

    Rules are checked in order, first match wins:
    most popular move, top three, popular with decent results, played
    sometimes or holding its own, rare but playable, and finally blunder.

    Args:
        move: The played move's statistics.
        all_moves: Every candidate at the position.
        side_to_move: "white" or "black".

    Returns:
        MoveEvaluation with rating, frequency and win rate.
    """
    ranked = _by_popularity(all_moves)
    total_all = sum(m.total for m in ranked)
    frequency = move.total / total_all if total_all > 0 else 0.0
    rate = win_rate(move, side_to_move)

    top_sans = [m.san for m in ranked[:_TOP_MOVES]]

    if ranked and move.san == ranked[0].san:
        rating = MoveRating.BEST if rate >= _STRONG_WIN_RATE else MoveRating.GOOD
    elif move.san in top_sans:
        rating = MoveRating.GOOD if rate >= _STRONG_WIN_RATE else MoveRating.OK
    elif frequency > _GOOD_FREQUENCY and rate >= _GOOD_WIN_RATE:
        rating = MoveRating.GOOD
    elif frequency > _OK_FREQUENCY or rate >= _OK_WIN_RATE:
        rating = MoveRating.OK
    elif rate >= _INACCURACY_WIN_RATE:
        rating = MoveRating.INACCURACY
    else:
        rating = MoveRating.BLUNDER

    return MoveEvaluation(rating=rating, frequency=frequency, win_rate=rate, stat=move)


def evaluate_move(
    san: str,
    stats: PositionStats | None,
    side_to_move: str,
) -> MoveEvaluation:
    """Rate a played move (SAN) against the statistics of the position before it.

    Missing statistics or a move absent from them rate as ``offbook``.
    """
    if stats is None:
        return MoveEvaluation(rating=MoveRating.OFFBOOK)
    stat = stats.find(san)
    if stat is None:
        return MoveEvaluation(rating=MoveRating.OFFBOOK)
    return rate_move_from_stats(stat, stats.moves, side_to_move)


def sample_opponent_move(
    stats: PositionStats,
    rng: RandomSource | None = None,
) -> MoveStat | None:
    """Pick a reply with probability proportional to its game count.

    Args:
        stats: Statistics for the position the opponent moves from.
        rng: Random source with a ``random()`` method. Defaults to the
            module-level generator.

    Returns:
        The chosen MoveStat, or None if there are no candidates.
    """
    if not stats.moves:
        return None

    rng = rng or random
    total = sum(m.total for m in stats.moves)
    draw = rng.random() * total

    cumulative = 0
    for move in stats.moves:
        cumulative += move.total
        if cumulative >= draw:
            return move

    return stats.moves[-1]


def is_in_book(stats: PositionStats) -> bool:
    """True when the position has candidates and enough recorded games."""
    return len(stats.moves) > 0 and stats.total_games >= BOOK_MIN_GAMES


def move_hints(
    stats: PositionStats | None,
    side_to_move: str,
    limit: int = 5,
) -> list[MoveHint]:
    """Most popular candidates with their frequency and win rate."""
    if stats is None or not stats.moves:
        return []
    ranked = _by_popularity(stats.moves)
    total_all = sum(m.total for m in ranked)
    hints = []
    for move in ranked[:limit]:
        hints.append(MoveHint(
            san=move.san,
            games=move.total,
            frequency=move.total / total_all if total_all > 0 else 0.0,
            win_rate=win_rate(move, side_to_move),
        ))
    return hints
