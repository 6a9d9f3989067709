"""Recurring-mistake tracking for spaced-repetition practice.

Blunders are keyed by canonical position (move counters stripped) and
player colour, so the same mistake reached through different move orders
or clocks collapses into one record. Practice order puts the least
corrected mistakes first and, among equals, the most recently tested.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from openingblitz.models import COLORS, BlunderRecord
from openingblitz.rules import position_key
from openingblitz.store import KeyValueStore, load_versioned_list, save_versioned_list

logger = logging.getLogger(__name__)

MAX_BLUNDERS = 200

_KEY = "blunders"
_VERSION = 1


def canonical_position_key(fen: str) -> str:
    """Placement, side to move, castling and en passant; clocks dropped."""
    return position_key(fen)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BlunderStore:
    """Repository for BlunderRecord over a key-value store."""

    def __init__(self, store: KeyValueStore, max_blunders: int = MAX_BLUNDERS) -> None:
        self._store = store
        self._max_blunders = max_blunders

    def _load(self) -> list[BlunderRecord]:
        records = []
        for item in load_versioned_list(self._store, _KEY, _VERSION):
            try:
                records.append(BlunderRecord.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable blunder record: %s", exc)
        return records

    def _save(self, records: list[BlunderRecord]) -> bool:
        return save_versioned_list(
            self._store, _KEY, _VERSION, [r.to_dict() for r in records]
        )

    def _find(
        self, records: list[BlunderRecord], key: str, player_color: str
    ) -> BlunderRecord | None:
        for record in records:
            if record.position_key == key and record.player_color == player_color:
                return record
        return None

    def record_blunder(
        self,
        fen: str,
        wrong_move: str,
        opening_name: str | None,
        player_color: str,
        rating_level: int,
    ) -> BlunderRecord | None:
        """Create or update the record for a blunder at ``fen``.

        An existing record for the same canonical position and colour gets
        its counters bumped and its wrong move overwritten.

        Returns:
            The stored record, or None if it could not be written.
        """
        records = self._load()
        key = canonical_position_key(fen)
        now = _now()

        record = self._find(records, key, player_color)
        if record is not None:
            record.times_seen += 1
            record.times_blundered += 1
            record.wrong_move = wrong_move
            record.fen = fen
            record.last_tested = now
            if opening_name:
                record.opening_name = opening_name
        else:
            record = BlunderRecord(
                id=str(uuid.uuid4()),
                position_key=key,
                fen=fen,
                wrong_move=wrong_move,
                player_color=player_color,
                rating_level=rating_level,
                opening_name=opening_name,
                first_seen=now,
                last_tested=now,
            )
            records = [record, *records][: self._max_blunders]

        if not self._save(records):
            return None
        return record

    def record_review(
        self, fen: str, player_color: str, fixed: bool
    ) -> BlunderRecord | None:
        """Log a replay attempt at a known blunder position.

        Only existing records are touched; replays never create new ones.
        """
        records = self._load()
        record = self._find(records, canonical_position_key(fen), player_color)
        if record is None:
            return None

        record.times_seen += 1
        if fixed:
            record.times_fixed += 1
        record.last_tested = _now()

        if not self._save(records):
            return None
        return record

    def get_blunders(self) -> list[BlunderRecord]:
        return self._load()

    def get_blunders_for_practice(
        self, player_color: str | None = None
    ) -> list[BlunderRecord]:
        """Return records in practice priority order.

        Never-fixed records first, then ascending fix rate, then most
        recently tested first.

        Raises:
            ValueError: If player_color is given and not white/black.
        """
        if player_color is not None and player_color not in COLORS:
            raise ValueError(
                f"player_color must be 'white' or 'black', got {player_color!r}"
            )

        records = self._load()
        if player_color is not None:
            records = [r for r in records if r.player_color == player_color]

        records.sort(key=lambda r: r.last_tested, reverse=True)
        records.sort(key=lambda r: (r.fix_rate > 0, r.fix_rate))
        return records

    def delete_blunder(self, blunder_id: str) -> bool:
        records = self._load()
        remaining = [r for r in records if r.id != blunder_id]
        if len(remaining) == len(records):
            return False
        return self._save(remaining)

    def clear(self) -> None:
        try:
            self._store.delete(_KEY)
        except OSError as exc:
            logger.warning("Could not clear blunders: %s", exc)
