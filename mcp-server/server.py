"""MCP server for the Opening Blitz drill.

Exposes drill, replay and history tools via FastMCP. Live drills are
kept in memory keyed by UUID; finished sessions and blunder records are
persisted under the configured data directory.
"""

from __future__ import annotations

import sys
import uuid
from dataclasses import asdict
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP

from openingblitz.blunders import BlunderStore
from openingblitz.drill import DrillSession
from openingblitz.explorer import OpeningExplorer
from openingblitz.logging_setup import setup_logging
from openingblitz.models import COLORS, DrillConfig
from openingblitz.replay import ReplaySession
from openingblitz.sessions import SessionStore, session_stats
from openingblitz.settings import Settings
from openingblitz.store import FileStore

from response_schemas import (  # noqa: E402
    minify_blunder,
    minify_drill_state,
    minify_move_result,
    minify_session,
)

mcp = FastMCP("opening-blitz")

_settings = Settings.from_env()
setup_logging(_settings.log_level)

_DATA_DIR = _settings.data_dir

# In-memory drill store: drill_id -> DrillSession
_drills: dict[str, DrillSession] = {}

_store = FileStore(_DATA_DIR)
_session_store = SessionStore(_store)
_blunder_store = BlunderStore(_store)
_explorer = OpeningExplorer(
    url=_settings.explorer_url,
    timeout=_settings.explorer_timeout,
    token=_settings.lichess_token,
)


def _get_drill(drill_id: str) -> DrillSession | None:
    """Look up a drill by ID."""
    return _drills.get(drill_id)


def _not_found(drill_id: str) -> dict:
    return {"error": f"Drill not found: {drill_id}"}


def _build_drill_state(drill_id: str, drill: DrillSession) -> dict:
    """Build the full state dict for a drill.

    Args:
        drill_id: UUID of the drill.
        drill: The live DrillSession.

    Returns:
        Dict with position, scoring, clock and history fields.
    """
    last_result = drill.last_result
    summary = drill.summary
    return {
        "drill_id": drill_id,
        "mode": "replay" if isinstance(drill, ReplaySession) else "drill",
        "phase": drill.phase.value,
        "fen": drill.fen,
        "player_color": drill.config.player_color,
        "rating_level": drill.config.rating_level,
        "time_limit": drill.config.time_limit,
        "time_remaining": drill.time_remaining,
        "score": drill.score,
        "streak": drill.streak,
        "moves_played": drill.moves_played,
        "opening_name": drill.opening_name,
        "end_reason": drill.end_reason.value if drill.end_reason else None,
        "can_undo": isinstance(drill, ReplaySession) and drill.can_undo,
        "moves": [r.to_dict() for r in drill.move_records],
        "last_result": _move_result_dict(last_result) if last_result else None,
        "session_id": summary.session_id if summary else None,
    }


def _move_result_dict(move_result) -> dict:
    data = asdict(move_result)
    data["rating"] = move_result.rating.value
    if move_result.replay_alert is not None:
        data["replay_alert"] = move_result.replay_alert.value
    return data


def _state_response(drill_id: str, drill: DrillSession) -> dict:
    return minify_drill_state(_build_drill_state(drill_id, drill))


# ---------------------------------------------------------------------------
# Drill tools
# ---------------------------------------------------------------------------


@mcp.tool()
def start_drill(
    rating_level: int = 1200,
    time_limit: int = 60,
    player_color: str = "white",
) -> dict:
    """Start a timed opening drill against the statistics-driven book.

    Args:
        rating_level: Difficulty band (800, 1000, 1200, 1400 or 1600).
        time_limit: Seconds on the clock (10-120 recommended).
        player_color: 'white' or 'black'.

    Returns:
        Drill state dict for the new drill.
    """
    try:
        config = DrillConfig(
            rating_level=rating_level,
            time_limit=time_limit,
            player_color=player_color,
        )
    except ValueError as exc:
        return {"error": str(exc)}

    drill_id = str(uuid.uuid4())
    drill = DrillSession(
        config,
        _explorer,
        session_store=_session_store,
        blunder_store=_blunder_store,
        reply_delay=_settings.reply_delay,
    )
    _drills[drill_id] = drill
    drill.start()
    return _state_response(drill_id, drill)


@mcp.tool()
def submit_move(
    drill_id: str,
    from_square: str,
    to_square: str,
    promotion: str | None = None,
) -> dict:
    """Play a move in a running drill; the book opponent replies.

    Args:
        drill_id: UUID of the drill.
        from_square: Origin square, e.g. 'e2'.
        to_square: Destination square, e.g. 'e4'.
        promotion: Optional promotion piece ('q', 'r', 'b', 'n').

    Returns:
        Drill state with ``accepted`` flag and the move's feedback.
    """
    drill = _get_drill(drill_id)
    if drill is None:
        return _not_found(drill_id)

    if drill.check_clock():
        state = _state_response(drill_id, drill)
        state["accepted"] = False
        return state

    move_result = drill.submit_move(from_square, to_square, promotion)
    state = _state_response(drill_id, drill)
    state["accepted"] = move_result is not None
    if move_result is not None:
        state["move_result"] = minify_move_result(_move_result_dict(move_result))
    return state


@mcp.tool()
def time_expired(drill_id: str) -> dict:
    """Tell the drill its clock ran out; ends and saves the session.

    Args:
        drill_id: UUID of the drill.

    Returns:
        Final drill state.
    """
    drill = _get_drill(drill_id)
    if drill is None:
        return _not_found(drill_id)

    drill.time_expired()
    return _state_response(drill_id, drill)


@mcp.tool()
def undo_move(drill_id: str) -> dict:
    """Undo the last move of a replay after a deviation or repeated blunder.

    Args:
        drill_id: UUID of a replay drill.

    Returns:
        Drill state after the undo, or an error if undo is not available.
    """
    drill = _get_drill(drill_id)
    if drill is None:
        return _not_found(drill_id)
    if not isinstance(drill, ReplaySession):
        return {"error": "Undo is only available in replay mode"}
    if not drill.undo():
        return {"error": "Nothing to undo"}
    return _state_response(drill_id, drill)


@mcp.tool()
def cancel_drill(drill_id: str) -> dict:
    """Abandon a drill without saving it.

    Args:
        drill_id: UUID of the drill.

    Returns:
        Confirmation dict.
    """
    drill = _drills.pop(drill_id, None)
    if drill is None:
        return _not_found(drill_id)
    drill.cancel()
    return {"drill_id": drill_id, "message": "Drill cancelled"}


@mcp.tool()
def get_drill_state(drill_id: str) -> dict:
    """Get the current state of a drill, ending it if the clock ran out.

    Args:
        drill_id: UUID of the drill.

    Returns:
        Drill state dict.
    """
    drill = _get_drill(drill_id)
    if drill is None:
        return _not_found(drill_id)
    drill.check_clock()
    return _state_response(drill_id, drill)


@mcp.tool()
def get_move_hints(drill_id: str, limit: int = 5) -> dict:
    """List the most popular book moves in the current position.

    Args:
        drill_id: UUID of the drill.
        limit: Maximum number of moves (default 5).

    Returns:
        Dict with hints (san, games, frequency, win_rate).
    """
    drill = _get_drill(drill_id)
    if drill is None:
        return _not_found(drill_id)

    hints = [
        {
            "san": h.san,
            "games": h.games,
            "frequency": round(h.frequency, 3),
            "win_rate": round(h.win_rate, 3),
        }
        for h in drill.hints(limit)
    ]
    return {"drill_id": drill_id, "hints": hints}


@mcp.tool()
def get_legal_destinations(drill_id: str, square: str) -> dict:
    """List squares the piece on ``square`` can move to.

    Args:
        drill_id: UUID of the drill.
        square: Square name, e.g. 'g1'.

    Returns:
        Dict with sorted destination squares.
    """
    drill = _get_drill(drill_id)
    if drill is None:
        return _not_found(drill_id)
    return {
        "drill_id": drill_id,
        "square": square,
        "destinations": sorted(drill.legal_destinations(square)),
    }


# ---------------------------------------------------------------------------
# Replay and history tools
# ---------------------------------------------------------------------------


@mcp.tool()
def start_replay(session_id: str) -> dict:
    """Replay a saved session; recorded opponent replies are repeated.

    Args:
        session_id: ID of a saved session.

    Returns:
        Drill state for the replay (mode 'replay').
    """
    recorded = _session_store.get_session(session_id)
    if recorded is None:
        return {"error": f"Session not found: {session_id}"}

    drill_id = str(uuid.uuid4())
    drill = ReplaySession(
        recorded,
        _explorer,
        blunder_store=_blunder_store,
        reply_delay=_settings.reply_delay,
    )
    _drills[drill_id] = drill
    drill.start()
    return _state_response(drill_id, drill)


@mcp.tool()
def list_sessions(blunders_only: bool = False, limit: int = 20) -> dict:
    """List saved sessions, newest first.

    Args:
        blunders_only: Only sessions with at least one blunder.
        limit: Maximum sessions to return (default 20).

    Returns:
        Dict with sessions list and total count.
    """
    if blunders_only:
        sessions = _session_store.get_blunder_sessions()
    else:
        sessions = _session_store.get_sessions()
    return {
        "sessions": [minify_session(s.to_dict()) for s in sessions[:limit]],
        "total": len(sessions),
    }


@mcp.tool()
def get_session(session_id: str) -> dict:
    """Get one saved session including its move line.

    Args:
        session_id: ID of the session.

    Returns:
        Minified session dict with move_list.
    """
    session = _session_store.get_session(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}
    return minify_session(session.to_dict(), include_moves=True)


@mcp.tool()
def delete_session(session_id: str) -> dict:
    """Delete a saved session.

    Args:
        session_id: ID of the session.

    Returns:
        Confirmation dict.
    """
    if not _session_store.delete_session(session_id):
        return {"error": f"Session not found: {session_id}"}
    return {"session_id": session_id, "message": "Session deleted"}


@mcp.tool()
def get_session_stats() -> dict:
    """Summarise saved sessions: totals, accuracy and per-opening results.

    Returns:
        Stats dict.
    """
    return session_stats(_session_store.get_sessions())


@mcp.tool()
def get_blunders_for_practice(
    player_color: str | None = None,
    limit: int = 20,
) -> dict:
    """List recorded blunders in practice priority order.

    Args:
        player_color: Optional 'white' or 'black' filter.
        limit: Maximum records to return (default 20).

    Returns:
        Dict with blunders list and total count.
    """
    if player_color is not None and player_color not in COLORS:
        return {"error": f"Invalid player_color: {player_color}"}

    records = _blunder_store.get_blunders_for_practice(player_color)
    return {
        "blunders": [minify_blunder(r.to_dict()) for r in records[:limit]],
        "total": len(records),
    }


@mcp.tool()
def delete_blunder(blunder_id: str) -> dict:
    """Delete a blunder record.

    Args:
        blunder_id: ID of the record.

    Returns:
        Confirmation dict.
    """
    if not _blunder_store.delete_blunder(blunder_id):
        return {"error": f"Blunder not found: {blunder_id}"}
    return {"blunder_id": blunder_id, "message": "Blunder deleted"}


if __name__ == "__main__":
    mcp.run()
