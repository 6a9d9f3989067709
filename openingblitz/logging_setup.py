from __future__ import annotations

import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | int = logging.WARNING) -> None:
    """Configure root logging to stderr once per process.

    Later calls only adjust the level.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    root_logger = logging.getLogger()
    if getattr(root_logger, "_ob_logging_configured", False):
        root_logger.setLevel(level)
        return

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    root_logger._ob_logging_configured = True  # type: ignore[attr-defined]

    logging.captureWarnings(True)
    # requests/urllib3 log every connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
