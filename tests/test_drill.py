"""Pytest tests for DrillSession.

The statistics service is a FakeExplorer keyed by position, so every
opponent reply and every rating is deterministic. Stores are in memory.
"""

from __future__ import annotations

import chess
import pytest

from conftest import FailingStore, FakeExplorer, SequenceRandom, fen_after, make_stats
from openingblitz.blunders import BlunderStore
from openingblitz.drill import (
    LEFT_BOOK_SUFFIX,
    STARTING_OPENING_NAME,
    DrillSession,
    award_points,
)
from openingblitz.models import DrillConfig, DrillPhase, EndReason, MoveRating
from openingblitz.rules import position_key
from openingblitz.sessions import SessionStore
from openingblitz.store import MemoryStore

START = chess.STARTING_FEN


def _italian_explorer() -> FakeExplorer:
    """Book for 1.e4 e5 2.Nf3 with opening names, empty everywhere else."""
    return FakeExplorer({
        START: make_stats(
            ("e4", 52, 0, 48, "King's Pawn Game"),
            ("d4", 30, 0, 30, "Queen's Pawn Game"),
        ),
        fen_after("e4"): make_stats(("e5", 40, 10, 50, "King's Pawn Game")),
        fen_after("e4", "e5"): make_stats(
            ("Nf3", 500, 100, 400, "King's Knight Opening"),
            ("Bc4", 100, 20, 80, "Bishop's Opening"),
        ),
        fen_after("e4", "e5", "Nf3"): make_stats(("Nc6", 40, 10, 50)),
    })


def _drill(explorer, color="white", time_limit=30, session_store=None,
           blunder_store=None, **kwargs) -> DrillSession:
    config = DrillConfig(rating_level=1200, time_limit=time_limit, player_color=color)
    return DrillSession(
        config,
        explorer,
        session_store=session_store,
        blunder_store=blunder_store,
        rng=SequenceRandom(0.0),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class TestAwardPoints:

    @pytest.mark.parametrize(
        "rating, streak, expected",
        [
            (MoveRating.BEST, 0, (10, 1)),
            (MoveRating.BEST, 2, (10, 3)),
            (MoveRating.BEST, 3, (11, 4)),
            (MoveRating.GOOD, 6, (9, 7)),
            (MoveRating.INACCURACY, 3, (-2, 4)),
            (MoveRating.BLUNDER, 5, (-10, 0)),
            (MoveRating.OFFBOOK, 4, (0, 4)),
        ],
    )
    def test_award_points(self, rating, streak, expected):
        assert award_points(rating, streak) == expected


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


class TestStart:

    def test_white_starts_on_move(self):
        explorer = _italian_explorer()
        drill = _drill(explorer)
        drill.start()

        assert drill.phase is DrillPhase.PLAYER_TO_MOVE
        assert drill.fen == START
        assert drill.score == 0
        assert drill.streak == 0
        assert drill.moves_played == 0
        assert drill.opening_name == STARTING_OPENING_NAME
        assert explorer.calls == [(START, 1200)]
        assert drill.position_stats.find("e4") is not None

    def test_black_gets_opponent_move_first(self):
        explorer = _italian_explorer()
        drill = _drill(explorer, color="black")
        drill.start()

        assert drill.phase is DrillPhase.PLAYER_TO_MOVE
        assert position_key(drill.fen) == position_key(fen_after("e4"))
        assert drill.position_stats.find("e5") is not None
        assert drill.move_records == []

    def test_black_without_opening_reply_ends(self, session_store):
        explorer = FakeExplorer()
        explorer.fail(START)
        drill = _drill(explorer, color="black", session_store=session_store)
        drill.start()

        assert drill.phase is DrillPhase.ENDED
        assert drill.end_reason is EndReason.OUT_OF_BOOK
        saved = session_store.get_sessions()
        assert len(saved) == 1
        assert saved[0].moves_played == 0
        assert saved[0].opening_name == STARTING_OPENING_NAME + LEFT_BOOK_SUFFIX

    def test_restart_resets_everything(self):
        drill = _drill(_italian_explorer())
        drill.start()
        drill.submit_move("e2", "e4")
        drill.start()

        assert drill.fen == START
        assert drill.score == 0
        assert drill.moves_played == 0
        assert drill.move_records == []
        assert drill.last_result is None


# ---------------------------------------------------------------------------
# Submitting moves
# ---------------------------------------------------------------------------


class TestSubmitMove:

    def test_best_then_offbook_keeps_streak(self, session_store):
        explorer = _italian_explorer()
        drill = _drill(explorer, session_store=session_store)
        drill.start()

        first = drill.submit_move("e2", "e4")
        assert first.rating is MoveRating.BEST
        assert first.points == 10
        assert first.win_rate == pytest.approx(0.52)
        assert drill.streak == 1
        assert drill.phase is DrillPhase.PLAYER_TO_MOVE
        assert position_key(drill.fen) == position_key(fen_after("e4", "e5"))
        assert drill.move_records[0].opponent_move == "e5"

        second = drill.submit_move("a2", "a3")
        assert second.rating is MoveRating.OFFBOOK
        assert second.points == 0
        assert drill.streak == 1
        assert drill.score == 10
        # No statistics after a3, so the book opponent has nothing to play
        assert drill.end_reason is EndReason.OUT_OF_BOOK

    def test_move_rated_against_position_before_move(self):
        explorer = _italian_explorer()
        drill = _drill(explorer)
        drill.start()
        drill.submit_move("e2", "e4")

        result = drill.submit_move("g1", "f3")
        assert result.rating is MoveRating.BEST
        assert result.frequency == pytest.approx(1000 / 1200)
        assert position_key(drill.move_records[1].fen) == position_key(fen_after("e4", "e5"))
        assert drill.move_records[1].opponent_move == "Nc6"

    def test_streak_bonus_every_third_move(self):
        # Knights shuffle back to the starting position, so the book repeats
        explorer = FakeExplorer({
            START: make_stats(("Nf3", 60, 0, 40)),
            fen_after("Nf3"): make_stats(("Nf6", 40, 0, 60)),
            fen_after("Nf3", "Nf6"): make_stats(("Ng1", 60, 0, 40)),
            fen_after("Nf3", "Nf6", "Ng1"): make_stats(("Ng8", 40, 0, 60)),
        })
        drill = _drill(explorer)
        drill.start()

        points = []
        for from_sq, to_sq in (("g1", "f3"), ("f3", "g1"), ("g1", "f3"), ("f3", "g1")):
            points.append(drill.submit_move(from_sq, to_sq).points)
        assert points == [10, 10, 10, 11]
        assert drill.streak == 4
        assert drill.score == 41

    def test_opening_name_follows_book(self):
        drill = _drill(_italian_explorer())
        drill.start()
        result = drill.submit_move("e2", "e4")
        assert result.opening_name == "King's Pawn Game"
        assert drill.opening_name == "King's Pawn Game"
        drill.submit_move("g1", "f3")
        assert drill.opening_name == "King's Knight Opening"
        assert drill.move_records[1].opening_name == "King's Pawn Game"

    def test_illegal_move_rejected_without_change(self):
        drill = _drill(_italian_explorer())
        drill.start()
        assert drill.submit_move("e2", "e5") is None
        assert drill.phase is DrillPhase.PLAYER_TO_MOVE
        assert drill.fen == START
        assert drill.moves_played == 0

    def test_rejected_before_start(self):
        drill = _drill(_italian_explorer())
        assert drill.submit_move("e2", "e4") is None
        assert drill.phase is DrillPhase.IDLE

    def test_rejected_after_end(self):
        drill = _drill(_italian_explorer())
        drill.start()
        drill.time_expired()
        assert drill.submit_move("e2", "e4") is None

    def test_reentrant_move_rejected_while_thinking(self):
        explorer = _italian_explorer()
        drill = _drill(explorer)
        drill.start()
        nested = []

        def _try_move(fen):
            if drill.phase is DrillPhase.THINKING and not nested:
                nested.append(drill.submit_move("d2", "d4"))

        explorer.on_fetch = _try_move
        drill.submit_move("e2", "e4")

        assert nested == [None]
        assert drill.moves_played == 1
        assert drill.phase is DrillPhase.PLAYER_TO_MOVE

    def test_hints_and_destinations(self):
        drill = _drill(_italian_explorer())
        drill.start()
        assert [h.san for h in drill.hints()] == ["e4", "d4"]
        assert drill.legal_destinations("b1") == {"a3", "c3"}


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------


class TestTermination:

    def test_stats_failure_after_move_ends_out_of_book(self, session_store):
        explorer = _italian_explorer()
        explorer.fail(fen_after("e4"))
        drill = _drill(explorer, session_store=session_store)
        drill.start()

        result = drill.submit_move("e2", "e4")

        assert result.rating is MoveRating.BEST
        assert drill.phase is DrillPhase.ENDED
        assert drill.end_reason is EndReason.OUT_OF_BOOK
        assert drill.move_records[0].rating is MoveRating.BEST
        assert drill.move_records[0].opponent_move is None

        saved = session_store.get_sessions()[0]
        assert saved.opening_name == "King's Pawn Game" + LEFT_BOOK_SUFFIX
        assert saved.moves[0].rating is MoveRating.BEST
        assert drill.summary.session_id == saved.id
        assert drill.summary.opening_name.endswith(LEFT_BOOK_SUFFIX)

    def test_thin_position_is_out_of_book(self):
        explorer = _italian_explorer()
        explorer.add(fen_after("e4"), make_stats(("e5", 5, 0, 4)))
        drill = _drill(explorer)
        drill.start()
        drill.submit_move("e2", "e4")
        assert drill.end_reason is EndReason.OUT_OF_BOOK

    def test_unplayable_sample_is_out_of_book(self):
        explorer = _italian_explorer()
        explorer.add(fen_after("e4"), make_stats(("Qxh7", 50, 0, 50)))
        drill = _drill(explorer)
        drill.start()
        drill.submit_move("e2", "e4")
        assert drill.end_reason is EndReason.OUT_OF_BOOK

    def test_checkmate_ends_drill(self):
        explorer = FakeExplorer({
            START: make_stats(("f3", 50, 0, 50)),
            fen_after("f3"): make_stats(("e5", 10, 0, 90)),
            fen_after("f3", "e5"): make_stats(("g4", 50, 0, 50)),
            fen_after("f3", "e5", "g4"): make_stats(("Qh4#", 0, 0, 100)),
        })
        drill = _drill(explorer, color="black")
        drill.start()
        drill.submit_move("e7", "e5")
        result = drill.submit_move("d8", "h4")

        assert result.move == "Qh4#"
        assert result.rating is MoveRating.BEST
        assert drill.end_reason is EndReason.OUT_OF_BOOK
        assert drill.move_records[-1].opponent_move is None

    def test_time_expired_saves_without_suffix(self, session_store):
        drill = _drill(_italian_explorer(), session_store=session_store)
        drill.start()
        drill.submit_move("e2", "e4")

        assert drill.time_expired() is True
        assert drill.end_reason is EndReason.TIME_UP
        assert drill.time_expired() is False
        saved = session_store.get_sessions()
        assert len(saved) == 1
        assert saved[0].opening_name == "King's Pawn Game"
        assert saved[0].total_score == 10

    def test_time_expired_when_idle(self):
        assert _drill(_italian_explorer()).time_expired() is False


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class TestClock:

    def test_check_clock_ends_on_time(self, fake_clock):
        drill = _drill(_italian_explorer(), clock=fake_clock)
        drill.start()
        fake_clock.advance(29)
        assert drill.check_clock() is False
        assert drill.time_remaining == pytest.approx(1)
        fake_clock.advance(2)
        assert drill.check_clock() is True
        assert drill.end_reason is EndReason.TIME_UP
        assert drill.time_remaining == 0.0

    def test_clock_paused_while_opponent_thinks(self, fake_clock):
        explorer = _italian_explorer()
        drill = _drill(explorer, clock=fake_clock)
        drill.start()
        fake_clock.advance(5)

        explorer.on_fetch = lambda fen: fake_clock.advance(100)
        drill.submit_move("e2", "e4")

        assert drill.phase is DrillPhase.PLAYER_TO_MOVE
        assert drill.time_remaining == pytest.approx(25)


# ---------------------------------------------------------------------------
# Cancellation and supersession
# ---------------------------------------------------------------------------


class TestCancellation:

    def test_cancel_during_reply_drops_it(self, session_store):
        explorer = _italian_explorer()
        drill = _drill(explorer, session_store=session_store)
        drill.start()

        def _cancel(fen):
            if drill.phase is DrillPhase.THINKING:
                drill.cancel()

        explorer.on_fetch = _cancel
        drill.submit_move("e2", "e4")

        assert drill.phase is DrillPhase.IDLE
        assert drill.move_records[0].opponent_move is None
        assert session_store.get_sessions() == []

    def test_restart_during_fetch_supersedes(self, session_store):
        explorer = _italian_explorer()
        drill = _drill(explorer, session_store=session_store)
        drill.start()
        restarted = []

        def _restart(fen):
            if not restarted:
                restarted.append(True)
                drill.start()

        explorer.on_fetch = _restart
        drill.submit_move("e2", "e4")

        assert drill.phase is DrillPhase.PLAYER_TO_MOVE
        assert drill.fen == START
        assert drill.moves_played == 0
        assert drill.move_records == []
        assert session_store.get_sessions() == []

    def test_cancel_then_time_expired_does_nothing(self, session_store):
        drill = _drill(_italian_explorer(), session_store=session_store)
        drill.start()
        drill.cancel()
        assert drill.time_expired() is False
        assert drill.summary is None
        assert session_store.get_sessions() == []


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def _blunder_explorer() -> FakeExplorer:
    return FakeExplorer({
        START: make_stats(
            ("e4", 1000, 0, 0), ("d4", 1000, 0, 0), ("c4", 1000, 0, 0),
            ("g4", 1, 0, 9),
        ),
    })


class TestPersistence:

    def test_blunders_recorded_after_session_save(self, session_store, blunder_store):
        drill = _drill(
            _blunder_explorer(), session_store=session_store, blunder_store=blunder_store
        )
        drill.start()
        result = drill.submit_move("g2", "g4")

        assert result.rating is MoveRating.BLUNDER
        assert result.points == -10
        assert drill.end_reason is EndReason.OUT_OF_BOOK
        assert drill.summary.blunder_count == 1

        saved = session_store.get_sessions()[0]
        assert saved.blunder_count == 1
        blunders = blunder_store.get_blunders()
        assert len(blunders) == 1
        assert blunders[0].wrong_move == "g4"
        assert blunders[0].fen == START
        assert blunders[0].player_color == "white"
        assert blunders[0].rating_level == 1200

    def test_failed_session_save_skips_blunders(self, blunder_store):
        drill = _drill(
            _blunder_explorer(),
            session_store=SessionStore(FailingStore()),
            blunder_store=blunder_store,
        )
        drill.start()
        drill.submit_move("g2", "g4")

        assert drill.phase is DrillPhase.ENDED
        assert drill.summary.session_id is None
        assert blunder_store.get_blunders() == []

    def test_failed_blunder_write_keeps_session(self, session_store):
        drill = _drill(
            _blunder_explorer(),
            session_store=session_store,
            blunder_store=BlunderStore(FailingStore()),
        )
        drill.start()
        drill.submit_move("g2", "g4")

        assert len(session_store.get_sessions()) == 1
        assert drill.summary.session_id is not None

    def test_no_stores_configured(self):
        drill = _drill(_blunder_explorer())
        drill.start()
        drill.submit_move("g2", "g4")
        assert drill.summary.session_id is None

    def test_shared_store_holds_both_documents(self):
        memory = MemoryStore()
        drill = _drill(
            _blunder_explorer(),
            session_store=SessionStore(memory),
            blunder_store=BlunderStore(memory),
        )
        drill.start()
        drill.submit_move("g2", "g4")
        assert memory.get("sessions") is not None
        assert memory.get("blunders") is not None
