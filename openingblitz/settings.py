"""Runtime settings resolved from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from openingblitz.explorer import LICHESS_EXPLORER_URL

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ[name])
    except (KeyError, ValueError):
        return default


@dataclass(frozen=True)
class Settings:
    data_dir: Path = _DEFAULT_DATA_DIR
    explorer_url: str = LICHESS_EXPLORER_URL
    explorer_timeout: float = 10.0
    lichess_token: str | None = None
    reply_delay: float = 0.0
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, reply_delay: float = 0.0) -> Settings:
        """Build settings from OPENINGBLITZ_* variables and LICHESS_TOKEN.

        Args:
            reply_delay: Default opponent delay when OPENINGBLITZ_REPLY_DELAY
                is not set.
        """
        return cls(
            data_dir=Path(os.environ.get("OPENINGBLITZ_DATA_DIR", _DEFAULT_DATA_DIR)),
            explorer_url=os.environ.get("OPENINGBLITZ_EXPLORER_URL", LICHESS_EXPLORER_URL),
            explorer_timeout=_float_env("OPENINGBLITZ_EXPLORER_TIMEOUT", 10.0),
            lichess_token=os.environ.get("LICHESS_TOKEN") or None,
            reply_delay=_float_env("OPENINGBLITZ_REPLY_DELAY", reply_delay),
            log_level=os.environ.get("OPENINGBLITZ_LOG_LEVEL", "WARNING").upper(),
        )
