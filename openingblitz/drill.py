"""Timed opening drill controller.

A DrillSession owns one live drill: the position, turn alternation,
scoring and streak, the clock, and termination. Player moves are rated
against the statistics fetched for the position before the move; the
opponent answers with a popularity-weighted sample while the position
stays in book. The drill ends when time runs out or a reply cannot be
produced, and the finished session is handed to the session store.

Every start() or cancel() bumps a session token. Work that was started
under an older token (a reply or a statistics fetch) is dropped when it
completes instead of touching the new session.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from openingblitz.blunders import BlunderStore
from openingblitz.evaluator import (
    RandomSource,
    evaluate_move,
    is_in_book,
    move_hints,
    sample_opponent_move,
)
from openingblitz.explorer import StatsSource, StatsUnavailableError
from openingblitz.models import (
    DrillConfig,
    DrillPhase,
    DrillSummary,
    EndReason,
    MoveHint,
    MoveRating,
    MoveRecord,
    MoveResult,
    PositionStats,
    SessionRecord,
)
from openingblitz.rules import ChessRules
from openingblitz.sessions import SessionStore

logger = logging.getLogger(__name__)

STARTING_OPENING_NAME = "Starting Position"
LEFT_BOOK_SUFFIX = " (left book)"

STREAK_BONUS_EVERY = 3


def award_points(rating: MoveRating, streak: int) -> tuple[int, int]:
    """Points for a move and the streak after it.

    Args:
        rating: The move's rating.
        streak: Consecutive non-blunder moves before this one.

    Returns:
        Tuple of (points, new streak). Blunders reset the streak and get
        no bonus; offbook moves score nothing and leave the streak alone.
    """
    if rating is MoveRating.BLUNDER:
        return rating.points, 0
    if rating is MoveRating.OFFBOOK:
        return rating.points, streak
    return rating.points + streak // STREAK_BONUS_EVERY, streak + 1


@dataclass
class _Clock:
    """Drill timer that only runs while the player is to move."""

    limit: float
    now: Callable[[], float]
    used: float = 0.0
    started_at: float | None = None

    def resume(self) -> None:
        if self.started_at is None:
            self.started_at = self.now()

    def pause(self) -> None:
        if self.started_at is not None:
            self.used += self.now() - self.started_at
            self.started_at = None

    def remaining(self) -> float:
        used = self.used
        if self.started_at is not None:
            used += self.now() - self.started_at
        return max(0.0, self.limit - used)


class DrillSession:
    """One timed drill against the statistics-driven book opponent."""

    # Replays switch this off so they never touch history
    records_history = True

    def __init__(
        self,
        config: DrillConfig,
        explorer: StatsSource,
        rules: ChessRules | None = None,
        session_store: SessionStore | None = None,
        blunder_store: BlunderStore | None = None,
        rng: RandomSource | None = None,
        clock: Callable[[], float] = time.monotonic,
        reply_delay: float = 0.0,
    ) -> None:
        self._config = config
        self._explorer = explorer
        self._rules = rules or ChessRules()
        self._session_store = session_store
        self._blunder_store = blunder_store
        self._rng = rng
        self._now = clock
        self._reply_delay = reply_delay

        self._token = 0
        self._phase = DrillPhase.IDLE
        self._reset_state()

    def _reset_state(self) -> None:
        self._fen = self._rules.starting_fen
        self._score = 0
        self._streak = 0
        self._moves_played = 0
        self._opening_name = STARTING_OPENING_NAME
        self._records: list[MoveRecord] = []
        self._position_stats: PositionStats | None = None
        self._last_result: MoveResult | None = None
        self._end_reason: EndReason | None = None
        self._final_opening_name: str | None = None
        self._saved_session: SessionRecord | None = None
        self._clock = _Clock(limit=float(self._config.time_limit), now=self._now)

    # ── Read accessors ──────────────────────────────────────────────

    @property
    def config(self) -> DrillConfig:
        return self._config

    @property
    def phase(self) -> DrillPhase:
        return self._phase

    @property
    def fen(self) -> str:
        return self._fen

    @property
    def score(self) -> int:
        return self._score

    @property
    def streak(self) -> int:
        return self._streak

    @property
    def moves_played(self) -> int:
        return self._moves_played

    @property
    def opening_name(self) -> str:
        return self._final_opening_name or self._opening_name

    @property
    def last_result(self) -> MoveResult | None:
        return self._last_result

    @property
    def move_records(self) -> list[MoveRecord]:
        return list(self._records)

    @property
    def position_stats(self) -> PositionStats | None:
        return self._position_stats

    @property
    def end_reason(self) -> EndReason | None:
        return self._end_reason

    @property
    def is_running(self) -> bool:
        return self._phase in (
            DrillPhase.OPPONENT_TO_MOVE,
            DrillPhase.PLAYER_TO_MOVE,
            DrillPhase.THINKING,
        )

    @property
    def time_remaining(self) -> float:
        return self._clock.remaining()

    @property
    def summary(self) -> DrillSummary | None:
        if self._phase is not DrillPhase.ENDED or self._end_reason is None:
            return None
        return DrillSummary(
            end_reason=self._end_reason,
            score=self._score,
            moves_played=self._moves_played,
            blunder_count=self._blunder_count(),
            opening_name=self.opening_name,
            session_id=self._saved_session.id if self._saved_session else None,
            moves=list(self._records),
        )

    def hints(self, limit: int = 5) -> list[MoveHint]:
        return move_hints(self._position_stats, self._config.player_color, limit)

    def legal_destinations(self, square: str) -> set[str]:
        return self._rules.legal_destinations(self._fen, square)

    # ── Commands ────────────────────────────────────────────────────

    def start(self) -> None:
        """Begin a fresh drill, superseding anything in flight.

        When the player has black, the opening white move is resolved
        before the player gets the board.
        """
        self._token += 1
        token = self._token
        self._reset_state()
        logger.info(
            "Starting drill: level %d, %ds, %s",
            self._config.rating_level, self._config.time_limit, self._config.player_color,
        )

        if self._config.player_color == "black":
            self._phase = DrillPhase.OPPONENT_TO_MOVE
            reply = self._first_reply()
            if token != self._token:
                return
            applied = self._rules.apply_san(self._fen, reply) if reply else None
            if applied is None:
                logger.warning("Could not resolve the opening reply")
                self._end(EndReason.OUT_OF_BOOK)
                return
            self._fen = applied.fen

        self._phase = DrillPhase.THINKING
        self._prefetch(token)
        if token != self._token:
            return
        self._enter_player_turn()

    def submit_move(
        self,
        from_square: str,
        to_square: str,
        promotion: str | None = None,
    ) -> MoveResult | None:
        """Play the player's move and, if the drill continues, the reply.

        Returns:
            MoveResult for an accepted move, or None if the move was
            rejected (illegal, or not the player's turn).
        """
        if self._phase is not DrillPhase.PLAYER_TO_MOVE:
            logger.debug("Rejected %s%s during %s", from_square, to_square, self._phase.value)
            return None

        fen_before = self._fen
        applied = self._rules.apply_move(fen_before, from_square, to_square, promotion)
        if applied is None:
            logger.debug("Rejected illegal move %s%s", from_square, to_square)
            return None

        token = self._token
        self._clock.pause()
        self._phase = DrillPhase.THINKING
        self._before_player_move()

        evaluation = evaluate_move(
            applied.san, self._position_stats, self._config.player_color
        )
        points, self._streak = award_points(evaluation.rating, self._streak)
        self._score += points

        self._records.append(MoveRecord(
            move=applied.san,
            rating=evaluation.rating,
            fen=fen_before,
            opening_name=self._opening_name,
        ))
        self._moves_played += 1

        move_opening = evaluation.stat.opening_name if evaluation.stat else None
        if move_opening:
            self._opening_name = move_opening
        self._fen = applied.fen

        result = self._after_player_move(MoveResult(
            move=applied.san,
            rating=evaluation.rating,
            points=points,
            frequency=evaluation.frequency,
            win_rate=evaluation.win_rate,
            opening_name=move_opening,
        ))
        self._last_result = result
        logger.debug("%s rated %s (%+d)", applied.san, evaluation.rating.value, points)

        if self._rules.is_game_over(self._fen):
            self._end(EndReason.OUT_OF_BOOK)
            return result

        self._play_reply(token)
        return result

    def time_expired(self) -> bool:
        """End the drill on time. Returns False if the drill was not waiting on the player."""
        if self._phase not in (DrillPhase.PLAYER_TO_MOVE, DrillPhase.OPPONENT_TO_MOVE):
            return False
        self._end(EndReason.TIME_UP)
        return True

    def check_clock(self) -> bool:
        """Fire time_expired if the clock has run out. Returns True if the drill ended."""
        if self._phase is DrillPhase.PLAYER_TO_MOVE and self._clock.remaining() <= 0:
            return self.time_expired()
        return False

    def cancel(self) -> None:
        """Abandon the drill without saving anything."""
        self._token += 1
        self._clock.pause()
        self._phase = DrillPhase.IDLE

    # ── Hooks for replay ────────────────────────────────────────────

    def _before_player_move(self) -> None:
        pass

    def _after_player_move(self, result: MoveResult) -> MoveResult:
        return result

    def _first_reply(self) -> str | None:
        return self._live_reply(self._fen)

    def _choose_reply(self) -> str | None:
        return self._live_reply(self._fen)

    # ── Internals ───────────────────────────────────────────────────

    def _fetch(self, fen: str) -> PositionStats | None:
        try:
            return self._explorer.fetch(fen, self._config.rating_level)
        except StatsUnavailableError as exc:
            logger.warning("No statistics for %s: %s", fen, exc)
            return None

    def _prefetch(self, token: int) -> None:
        stats = self._fetch(self._fen)
        if token != self._token:
            return
        self._position_stats = stats
        if stats is not None and stats.opening_name:
            self._opening_name = stats.opening_name

    def _live_reply(self, fen: str) -> str | None:
        stats = self._fetch(fen)
        if stats is None or not is_in_book(stats):
            return None
        move = sample_opponent_move(stats, self._rng)
        return move.san if move is not None else None

    def _play_reply(self, token: int) -> None:
        if self._reply_delay > 0:
            time.sleep(self._reply_delay)
        if token != self._token:
            return

        reply = self._choose_reply()
        if token != self._token:
            return
        if reply is None:
            self._end(EndReason.OUT_OF_BOOK)
            return

        applied = self._rules.apply_san(self._fen, reply)
        if applied is None:
            logger.warning("Opponent reply %s is not legal in %s", reply, self._fen)
            self._end(EndReason.OUT_OF_BOOK)
            return

        self._fen = applied.fen
        self._records[-1].opponent_move = applied.san

        self._prefetch(token)
        if token != self._token:
            return
        if self._rules.is_game_over(self._fen):
            self._end(EndReason.OUT_OF_BOOK)
            return
        self._enter_player_turn()

    def _enter_player_turn(self) -> None:
        self._phase = DrillPhase.PLAYER_TO_MOVE
        self._clock.resume()

    def _blunder_count(self) -> int:
        return sum(1 for r in self._records if r.rating is MoveRating.BLUNDER)

    def _end(self, reason: EndReason) -> None:
        self._clock.pause()
        self._phase = DrillPhase.ENDED
        self._end_reason = reason
        opening = self._opening_name
        if reason is EndReason.OUT_OF_BOOK:
            opening += LEFT_BOOK_SUFFIX
        self._final_opening_name = opening
        logger.info(
            "Drill ended (%s): score %d over %d moves",
            reason.value, self._score, self._moves_played,
        )
        if self.records_history:
            self._persist(opening)

    def _persist(self, opening: str) -> None:
        if self._session_store is None:
            return
        saved = self._session_store.save_session(
            config=self._config,
            total_score=self._score,
            moves_played=self._moves_played,
            moves=self._records,
            opening_name=opening,
        )
        if saved is None:
            logger.warning("Session could not be saved; skipping blunder records")
            return
        self._saved_session = saved

        if self._blunder_store is None:
            return
        for record in self._records:
            if record.rating is MoveRating.BLUNDER:
                self._blunder_store.record_blunder(
                    fen=record.fen,
                    wrong_move=record.move,
                    opening_name=record.opening_name,
                    player_color=self._config.player_color,
                    rating_level=self._config.rating_level,
                )
