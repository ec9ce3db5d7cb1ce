"""Logging bootstrap for the CLI and the API server."""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Install one stream handler on the ``agentcrm`` logger.

    Safe to call more than once; later calls only adjust the level.
    """
    logger = logging.getLogger("agentcrm")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    if not any(getattr(h, "_agentcrm", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._agentcrm = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
