"""Lichess opening explorer client.

Fetches move-level game counts for a position, filtered to a rating band
chosen from the drill's difficulty level. Every failure mode (network,
HTTP status, malformed payload) surfaces as StatsUnavailableError so the
drill can treat it as "no data for this position".
"""

from __future__ import annotations

import logging
from typing import Protocol

import requests

from openingblitz.models import MoveStat, PositionStats

logger = logging.getLogger(__name__)

LICHESS_EXPLORER_URL = "https://explorer.lichess.ovh/lichess"

_SPEEDS = "bullet,blitz,rapid,classical"

# Difficulty level -> Lichess rating groups
_RATING_BANDS = {
    800: "0,1000",
    1000: "1000,1200",
    1200: "1200,1400",
    1400: "1400,1600",
    1600: "1600,1800",
}

_DEFAULT_LEVEL = 1200


class StatsUnavailableError(Exception):
    """The statistics service could not produce data for a position."""


class StatsSource(Protocol):
    def fetch(self, fen: str, rating_level: int) -> PositionStats: ...


def rating_band(rating_level) -> str:
    """Map a difficulty level to the nearest configured rating band.

    Non-numeric input falls back to the middle band.
    """
    try:
        level = int(rating_level)
    except (TypeError, ValueError):
        return _RATING_BANDS[_DEFAULT_LEVEL]
    nearest = min(_RATING_BANDS, key=lambda lv: (abs(lv - level), lv))
    return _RATING_BANDS[nearest]


def _opening_fields(data) -> tuple[str | None, str | None]:
    if not isinstance(data, dict):
        return None, None
    return data.get("name"), data.get("eco")


def parse_explorer_response(data) -> PositionStats:
    """Convert an explorer JSON payload into PositionStats.

    Raises:
        StatsUnavailableError: If the payload is not shaped like an
            explorer response.
    """
    if not isinstance(data, dict):
        raise StatsUnavailableError("Explorer response is not a JSON object")

    try:
        moves = []
        for raw in data.get("moves", []):
            name, eco = _opening_fields(raw.get("opening"))
            moves.append(MoveStat(
                san=str(raw["san"]),
                white=int(raw["white"]),
                draws=int(raw["draws"]),
                black=int(raw["black"]),
                uci=str(raw.get("uci", "")),
                average_rating=raw.get("averageRating"),
                opening_name=name,
                opening_eco=eco,
            ))
        name, eco = _opening_fields(data.get("opening"))
        return PositionStats(
            moves=tuple(moves),
            white=int(data.get("white", 0)),
            draws=int(data.get("draws", 0)),
            black=int(data.get("black", 0)),
            opening_name=name,
            opening_eco=eco,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise StatsUnavailableError(f"Malformed explorer response: {exc}") from exc


class OpeningExplorer:
    """HTTP client for the Lichess opening explorer."""

    def __init__(
        self,
        url: str = LICHESS_EXPLORER_URL,
        timeout: float = 10.0,
        token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def fetch(self, fen: str, rating_level: int) -> PositionStats:
        """Fetch statistics for ``fen`` in the band for ``rating_level``.

        Raises:
            StatsUnavailableError: On any network, HTTP or payload error.
        """
        params = {
            "variant": "standard",
            "speeds": _SPEEDS,
            "ratings": rating_band(rating_level),
            "fen": fen,
        }
        try:
            response = self._session.get(self._url, params=params, timeout=self._timeout)
        except requests.exceptions.Timeout as exc:
            raise StatsUnavailableError("Explorer request timed out") from exc
        except requests.exceptions.RequestException as exc:
            raise StatsUnavailableError(f"Explorer request failed: {exc}") from exc

        if response.status_code != 200:
            raise StatsUnavailableError(
                f"Lichess explorer error: {response.status_code} {response.reason}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise StatsUnavailableError("Explorer returned invalid JSON") from exc

        stats = parse_explorer_response(data)
        logger.debug(
            "Fetched %d candidate moves (%d games) for %s",
            len(stats.moves), stats.total_games, fen,
        )
        return stats
