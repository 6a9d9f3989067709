"""Shared data models for the Opening Blitz drill.

PositionStats and MoveStat describe what the statistics service knows
about a position. MoveRecord, SessionRecord and BlunderRecord are the
persisted contract between the drill controller, the stores and the
presentation layers (MCP server and CLI).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum

COLORS = ("white", "black")


class MoveRating(str, Enum):
    """Quality tag for a played move, ordered best > ... > blunder.

    ``OFFBOOK`` means the move is missing from the statistics. It scores
    zero points, so it sits between ``OK`` and ``INACCURACY`` in the order.
    """

    BEST = "best"
    GOOD = "good"
    OK = "ok"
    OFFBOOK = "offbook"
    INACCURACY = "inaccuracy"
    BLUNDER = "blunder"

    @property
    def points(self) -> int:
        return _POINTS[self]

    @property
    def quality(self) -> int:
        return _QUALITY[self]

    def __lt__(self, other):
        if not isinstance(other, MoveRating):
            return NotImplemented
        return self.quality < other.quality

    def __le__(self, other):
        if not isinstance(other, MoveRating):
            return NotImplemented
        return self.quality <= other.quality

    def __gt__(self, other):
        if not isinstance(other, MoveRating):
            return NotImplemented
        return self.quality > other.quality

    def __ge__(self, other):
        if not isinstance(other, MoveRating):
            return NotImplemented
        return self.quality >= other.quality


_POINTS = {
    MoveRating.BEST: 10,
    MoveRating.GOOD: 7,
    MoveRating.OK: 3,
    MoveRating.OFFBOOK: 0,
    MoveRating.INACCURACY: -3,
    MoveRating.BLUNDER: -10,
}

_QUALITY = {
    MoveRating.BEST: 5,
    MoveRating.GOOD: 4,
    MoveRating.OK: 3,
    MoveRating.OFFBOOK: 2,
    MoveRating.INACCURACY: 1,
    MoveRating.BLUNDER: 0,
}


class DrillPhase(str, Enum):
    IDLE = "idle"
    OPPONENT_TO_MOVE = "opponent_to_move"
    PLAYER_TO_MOVE = "player_to_move"
    THINKING = "thinking"
    ENDED = "ended"


class EndReason(str, Enum):
    TIME_UP = "time_up"
    OUT_OF_BOOK = "out_of_book"


class ReplayAlert(str, Enum):
    FIXED = "fixed"
    BLUNDER_REPEATED = "blunder-repeated"
    DEVIATION = "deviation"


@dataclass(frozen=True)
class MoveStat:
    """Game counts for one candidate move at a position."""

    san: str
    white: int
    draws: int
    black: int
    uci: str = ""
    average_rating: int | None = None
    opening_name: str | None = None
    opening_eco: str | None = None

    @property
    def total(self) -> int:
        return self.white + self.draws + self.black


@dataclass(frozen=True)
class PositionStats:
    """All candidate moves for a position plus the position's own totals."""

    moves: tuple[MoveStat, ...] = ()
    white: int = 0
    draws: int = 0
    black: int = 0
    opening_name: str | None = None
    opening_eco: str | None = None

    @property
    def total_games(self) -> int:
        return self.white + self.draws + self.black

    def find(self, san: str) -> MoveStat | None:
        for move in self.moves:
            if move.san == san:
                return move
        return None


@dataclass(frozen=True)
class MoveEvaluation:
    """Result of rating a move against population statistics."""

    rating: MoveRating
    frequency: float = 0.0
    win_rate: float = 0.0
    stat: MoveStat | None = None


@dataclass(frozen=True)
class MoveHint:
    san: str
    games: int
    frequency: float
    win_rate: float


@dataclass(frozen=True)
class DrillConfig:
    """Caller-supplied drill settings, fixed for the session's duration."""

    rating_level: int = 1200
    time_limit: int = 60
    player_color: str = "white"

    def __post_init__(self) -> None:
        if self.player_color not in COLORS:
            raise ValueError(
                f"player_color must be 'white' or 'black', got {self.player_color!r}"
            )
        if self.time_limit <= 0:
            raise ValueError(f"time_limit must be positive, got {self.time_limit}")


@dataclass
class MoveRecord:
    """One player half-move. ``opponent_move`` is filled in once the reply lands."""

    move: str
    rating: MoveRating
    fen: str
    opponent_move: str | None = None
    opening_name: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> MoveRecord:
        return cls(
            move=data["move"],
            rating=MoveRating(data["rating"]),
            fen=data["fen"],
            opponent_move=data.get("opponent_move"),
            opening_name=data.get("opening_name"),
        )


@dataclass(frozen=True)
class MoveResult:
    """Feedback for one accepted player move."""

    move: str
    rating: MoveRating
    points: int
    frequency: float = 0.0
    win_rate: float = 0.0
    opening_name: str | None = None
    replay_alert: ReplayAlert | None = None
    original_move: str | None = None
    undo_offered: bool = False


@dataclass(frozen=True)
class SessionRecord:
    """A completed drill. Never mutated after the store creates it."""

    id: str
    timestamp: str
    rating_level: int
    player_color: str
    time_limit: int
    total_score: int
    moves_played: int
    moves: tuple[MoveRecord, ...] = ()
    opening_name: str = ""
    blunder_count: int = 0

    @property
    def config(self) -> DrillConfig:
        return DrillConfig(
            rating_level=self.rating_level,
            time_limit=self.time_limit,
            player_color=self.player_color,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["moves"] = [m.to_dict() for m in self.moves]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> SessionRecord:
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            rating_level=int(data["rating_level"]),
            player_color=data["player_color"],
            time_limit=int(data["time_limit"]),
            total_score=int(data["total_score"]),
            moves_played=int(data["moves_played"]),
            moves=tuple(MoveRecord.from_dict(m) for m in data.get("moves", [])),
            opening_name=data.get("opening_name", ""),
            blunder_count=int(data.get("blunder_count", 0)),
        )


@dataclass
class BlunderRecord:
    """A recurring mistake at a canonical position for one player colour."""

    id: str
    position_key: str
    fen: str
    wrong_move: str
    player_color: str
    rating_level: int
    opening_name: str | None = None
    times_seen: int = 1
    times_blundered: int = 1
    times_fixed: int = 0
    first_seen: str = ""
    last_tested: str = ""

    @property
    def fix_rate(self) -> float:
        if self.times_seen <= 0:
            return 0.0
        return self.times_fixed / self.times_seen

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> BlunderRecord:
        return cls(
            id=str(data["id"]),
            position_key=str(data["position_key"]),
            fen=str(data["fen"]),
            wrong_move=str(data["wrong_move"]),
            player_color=str(data["player_color"]),
            rating_level=int(data["rating_level"]),
            opening_name=data.get("opening_name") or None,
            times_seen=int(data.get("times_seen", 1)),
            times_blundered=int(data.get("times_blundered", 1)),
            times_fixed=int(data.get("times_fixed", 0)),
            first_seen=str(data.get("first_seen") or ""),
            last_tested=str(data.get("last_tested") or ""),
        )


@dataclass(frozen=True)
class DrillSummary:
    """What the presentation layer shows once a drill has ended."""

    end_reason: EndReason
    score: int
    moves_played: int
    blunder_count: int
    opening_name: str
    session_id: str | None = None
    moves: list[MoveRecord] = field(default_factory=list)
