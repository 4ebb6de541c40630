"""Logging setup for the plan engine package."""

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Attach one stream handler to the ``plan_engine`` logger.

    ``level`` accepts a logging constant or a level name such as ``"DEBUG"``;
    repeated calls only adjust the level.
    """
    if isinstance(level, str):
        level = level.upper()
    logger = logging.getLogger("plan_engine")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False
