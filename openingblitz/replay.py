"""Replay of a recorded drill.

The opponent repeats the replies recorded in the original session and
only falls back to the live book once the recording runs out. Each
player move is compared with the original move at the same index so the
player can see a fixed blunder, a repeated one, or a plain deviation.
Undo is one step: it takes back the last player move together with the
reply that followed it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable

from openingblitz.blunders import BlunderStore
from openingblitz.drill import DrillSession
from openingblitz.evaluator import RandomSource
from openingblitz.explorer import StatsSource
from openingblitz.models import (
    DrillPhase,
    MoveRating,
    MoveRecord,
    MoveResult,
    ReplayAlert,
    SessionRecord,
)
from openingblitz.rules import ChessRules, position_key

logger = logging.getLogger(__name__)

_UNDOABLE = (ReplayAlert.DEVIATION, ReplayAlert.BLUNDER_REPEATED)


def classify_replay_move(original: MoveRecord, played: str) -> ReplayAlert | None:
    """Compare a replayed move with the recorded one at the same index."""
    was_blunder = original.rating is MoveRating.BLUNDER
    if played != original.move:
        return ReplayAlert.FIXED if was_blunder else ReplayAlert.DEVIATION
    if was_blunder:
        return ReplayAlert.BLUNDER_REPEATED
    return None


@dataclass(frozen=True)
class _Snapshot:
    fen: str
    score: int
    streak: int
    moves_played: int
    opening_name: str
    replay_index: int


class ReplaySession(DrillSession):
    """A drill that re-runs a recorded session and offers one-step undo."""

    records_history = False

    def __init__(
        self,
        recorded: SessionRecord,
        explorer: StatsSource,
        rules: ChessRules | None = None,
        blunder_store: BlunderStore | None = None,
        rng: RandomSource | None = None,
        clock: Callable[[], float] = time.monotonic,
        reply_delay: float = 0.0,
    ) -> None:
        self._recorded = recorded
        super().__init__(
            recorded.config,
            explorer,
            rules=rules,
            session_store=None,
            blunder_store=blunder_store,
            rng=rng,
            clock=clock,
            reply_delay=reply_delay,
        )

    def _reset_state(self) -> None:
        super()._reset_state()
        self._opening_name = self._recorded.opening_name or self._opening_name
        self._replay_index = 0
        self._pending: _Snapshot | None = None
        self._undo_snapshot: _Snapshot | None = None

    @property
    def recorded(self) -> SessionRecord:
        return self._recorded

    @property
    def replay_index(self) -> int:
        return self._replay_index

    @property
    def can_undo(self) -> bool:
        return self._undo_snapshot is not None and self._phase is DrillPhase.PLAYER_TO_MOVE

    def undo(self) -> bool:
        """Take back the last move after a deviation or repeated blunder.

        Returns:
            True if the position was restored.
        """
        if not self.can_undo:
            return False

        snapshot = self._undo_snapshot
        self._undo_snapshot = None
        self._fen = snapshot.fen
        self._score = snapshot.score
        self._streak = snapshot.streak
        self._moves_played = snapshot.moves_played
        self._opening_name = snapshot.opening_name
        self._replay_index = snapshot.replay_index
        self._records.pop()
        self._last_result = None
        logger.debug("Undid replay move %d", snapshot.replay_index)

        self._prefetch(self._token)
        return True

    # ── DrillSession hooks ──────────────────────────────────────────

    def _before_player_move(self) -> None:
        self._undo_snapshot = None
        self._pending = _Snapshot(
            fen=self._fen,
            score=self._score,
            streak=self._streak,
            moves_played=self._moves_played,
            opening_name=self._opening_name,
            replay_index=self._replay_index,
        )

    def _after_player_move(self, result: MoveResult) -> MoveResult:
        index = self._replay_index
        self._replay_index += 1
        if index >= len(self._recorded.moves):
            return result

        original = self._recorded.moves[index]
        alert = classify_replay_move(original, result.move)
        if alert is None:
            return result

        if alert in _UNDOABLE:
            self._undo_snapshot = self._pending
        if original.rating is MoveRating.BLUNDER and self._blunder_store is not None:
            self._blunder_store.record_review(
                fen=original.fen,
                player_color=self._config.player_color,
                fixed=alert is ReplayAlert.FIXED,
            )
        logger.info("Replay move %d: %s (original %s)", index, alert.value, original.move)

        return replace(
            result,
            replay_alert=alert,
            original_move=original.move,
            undo_offered=alert in _UNDOABLE,
        )

    def _first_reply(self) -> str | None:
        moves = self._recorded.moves
        if moves and position_key(moves[0].fen) != position_key(self._fen):
            san = self._rules.move_between(self._fen, moves[0].fen)
            if san is not None:
                return san
        return self._live_reply(self._fen)

    def _choose_reply(self) -> str | None:
        index = self._replay_index - 1
        moves = self._recorded.moves
        if 0 <= index < len(moves) and moves[index].opponent_move:
            return moves[index].opponent_move
        return self._live_reply(self._fen)
