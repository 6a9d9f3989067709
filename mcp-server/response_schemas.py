"""Response schemas and minification for MCP tool responses.

Minifies drill state and history records before they are returned to the
LLM client. Move records are compacted to a single line of the form
``e4[best] e5, Bc4[good] Nc6`` which reads naturally and costs far fewer
tokens than the JSON list.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_drill_state(state: dict) -> dict:
    """Minify a drill state dict for MCP response.

    Compacts the move records to a line, rounds the clock, and adds the
    saved session id once the drill has been persisted.

    Args:
        state: Full drill state (as produced by _build_drill_state).

    Returns:
        Minified dict.
    """
    result = {}

    for key in (
        "drill_id", "mode", "phase", "fen", "player_color", "rating_level",
        "score", "streak", "moves_played", "opening_name", "end_reason",
        "can_undo",
    ):
        if key in state:
            result[key] = state[key]

    result["time_remaining"] = round(float(state.get("time_remaining", 0.0)), 1)

    moves = state.get("moves", [])
    if isinstance(moves, list):
        result["move_list"] = _records_to_line(moves)
    else:
        result["move_list"] = moves

    last_result = state.get("last_result")
    result["last_result"] = (
        minify_move_result(last_result) if isinstance(last_result, dict) else None
    )

    if state.get("session_id"):
        result["session_id"] = state["session_id"]

    return result


def minify_move_result(move_result: dict) -> dict:
    """Minify a MoveResult dict: rounds rates, drops empty replay fields."""
    result = {
        "move": move_result.get("move"),
        "rating": move_result.get("rating"),
        "points": move_result.get("points"),
        "frequency": round(float(move_result.get("frequency") or 0.0), 3),
        "win_rate": round(float(move_result.get("win_rate") or 0.0), 3),
    }
    if move_result.get("opening_name"):
        result["opening_name"] = move_result["opening_name"]
    if move_result.get("replay_alert"):
        result["replay_alert"] = move_result["replay_alert"]
        result["original_move"] = move_result.get("original_move")
        result["undo_offered"] = bool(move_result.get("undo_offered"))
    return result


def minify_session(session: dict, include_moves: bool = False) -> dict:
    """Minify a SessionRecord dict for listings.

    Args:
        session: Full SessionRecord dict (from SessionRecord.to_dict).
        include_moves: Keep the compacted move line.

    Returns:
        Minified dict.
    """
    result = {}
    for key in (
        "id", "timestamp", "rating_level", "player_color", "time_limit",
        "total_score", "moves_played", "opening_name", "blunder_count",
    ):
        if key in session:
            result[key] = session[key]
    if include_moves:
        result["move_list"] = _records_to_line(session.get("moves", []))
    return result


def minify_blunder(record: dict) -> dict:
    """Minify a BlunderRecord dict; drops the raw FEN in favour of the key."""
    result = {}
    for key in (
        "id", "position_key", "wrong_move", "player_color", "rating_level",
        "opening_name", "times_seen", "times_blundered", "times_fixed",
        "last_tested",
    ):
        if key in record:
            result[key] = record[key]
    return result


# ---------------------------------------------------------------------------
# Helper: move records to a single line
# ---------------------------------------------------------------------------


def _records_to_line(moves: list[dict]) -> str:
    """Convert move record dicts to a compact line.

    E.g., [{"move": "e4", "rating": "best", "opponent_move": "e5"}]
    -> 'e4[best] e5'
    """
    if not moves:
        return ""

    parts = []
    for record in moves:
        rating = record.get("rating")
        rating = getattr(rating, "value", rating)
        part = f"{record.get('move')}[{rating}]"
        if record.get("opponent_move"):
            part += f" {record['opponent_move']}"
        parts.append(part)

    return ", ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

DRILL_STATE_SCHEMA = {
    "drill_id": str,
    "mode": str,
    "phase": str,
    "fen": str,
    "player_color": str,
    "rating_level": int,
    "score": int,
    "streak": int,
    "moves_played": int,
    "opening_name": str,
    "end_reason": (str, type(None)),
    "can_undo": bool,
    "time_remaining": (int, float),
    "move_list": str,
    "last_result": (dict, type(None)),
}

MOVE_RESULT_SCHEMA = {
    "move": str,
    "rating": str,
    "points": int,
    "frequency": (int, float),
    "win_rate": (int, float),
}

SESSION_SCHEMA = {
    "id": str,
    "timestamp": str,
    "rating_level": int,
    "player_color": str,
    "total_score": int,
    "moves_played": int,
    "opening_name": str,
    "blunder_count": int,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when OPENINGBLITZ_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("OPENINGBLITZ_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        else:
            if not isinstance(value, expected_types):
                errors.append(
                    f"Key '{key}': expected {expected_types.__name__}, "
                    f"got {type(value).__name__}"
                )

    return errors
