"""Completed drill history.

Sessions are kept newest first and capped; the oldest fall off the end.
Read failures give an empty history and write failures are reported
through return values, so losing history never interrupts a drill.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone

from openingblitz.models import DrillConfig, MoveRating, MoveRecord, SessionRecord
from openingblitz.store import KeyValueStore, load_versioned_list, save_versioned_list

logger = logging.getLogger(__name__)

MAX_SESSIONS = 100

_KEY = "sessions"
_VERSION = 1


class SessionStore:
    """Repository for SessionRecord over a key-value store."""

    def __init__(self, store: KeyValueStore, max_sessions: int = MAX_SESSIONS) -> None:
        self._store = store
        self._max_sessions = max_sessions

    def _load(self) -> list[SessionRecord]:
        sessions = []
        for item in load_versioned_list(self._store, _KEY, _VERSION):
            try:
                sessions.append(SessionRecord.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable session record: %s", exc)
        return sessions

    def _save(self, sessions: list[SessionRecord]) -> bool:
        return save_versioned_list(
            self._store, _KEY, _VERSION, [s.to_dict() for s in sessions]
        )

    def save_session(
        self,
        config: DrillConfig,
        total_score: int,
        moves_played: int,
        moves: list[MoveRecord],
        opening_name: str,
    ) -> SessionRecord | None:
        """Create a session record, prepend it and trim the history.

        Returns:
            The stored SessionRecord, or None if it could not be written.
        """
        frozen_moves = tuple(
            MoveRecord(
                move=m.move,
                rating=m.rating,
                fen=m.fen,
                opponent_move=m.opponent_move,
                opening_name=m.opening_name,
            )
            for m in moves
        )
        session = SessionRecord(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            rating_level=config.rating_level,
            player_color=config.player_color,
            time_limit=config.time_limit,
            total_score=total_score,
            moves_played=moves_played,
            moves=frozen_moves,
            opening_name=opening_name,
            blunder_count=sum(1 for m in frozen_moves if m.rating is MoveRating.BLUNDER),
        )

        sessions = [session, *self._load()][: self._max_sessions]
        if not self._save(sessions):
            return None
        logger.info(
            "Saved session %s (%d moves, score %d)", session.id, moves_played, total_score
        )
        return session

    def get_sessions(self) -> list[SessionRecord]:
        return self._load()

    def get_session(self, session_id: str) -> SessionRecord | None:
        for session in self._load():
            if session.id == session_id:
                return session
        return None

    def get_blunder_sessions(self) -> list[SessionRecord]:
        return [s for s in self._load() if s.blunder_count > 0]

    def delete_session(self, session_id: str) -> bool:
        """Remove a session by id. Returns True if something was removed."""
        sessions = self._load()
        remaining = [s for s in sessions if s.id != session_id]
        if len(remaining) == len(sessions):
            return False
        return self._save(remaining)

    def clear(self) -> None:
        try:
            self._store.delete(_KEY)
        except OSError as exc:
            logger.warning("Could not clear sessions: %s", exc)


def _js_round(value: float) -> int:
    return math.floor(value + 0.5)


def session_stats(sessions: list[SessionRecord]) -> dict:
    """Summarise a session history.

    Returns:
        Dict with total_sessions, total_moves, avg_accuracy (percentage of
        non-blunder moves), total_blunders and per-opening stats.
    """
    if not sessions:
        return {
            "total_sessions": 0,
            "total_moves": 0,
            "avg_accuracy": 0,
            "total_blunders": 0,
            "opening_stats": {},
        }

    total_moves = sum(s.moves_played for s in sessions)
    total_blunders = sum(s.blunder_count for s in sessions)

    by_opening: dict[str, dict] = {}
    for session in sessions:
        name = session.opening_name or "Unknown"
        entry = by_opening.setdefault(name, {"played": 0, "blunders": 0, "total_score": 0})
        entry["played"] += 1
        entry["blunders"] += session.blunder_count
        entry["total_score"] += session.total_score

    opening_stats = {
        name: {
            "played": entry["played"],
            "blunders": entry["blunders"],
            "avg_score": _js_round(entry["total_score"] / entry["played"]),
        }
        for name, entry in by_opening.items()
    }

    return {
        "total_sessions": len(sessions),
        "total_moves": total_moves,
        "avg_accuracy": (
            _js_round((1 - total_blunders / total_moves) * 100) if total_moves > 0 else 0
        ),
        "total_blunders": total_blunders,
        "opening_stats": opening_stats,
    }
