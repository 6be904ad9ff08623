"""Logging configuration helpers."""

import logging

_FORMAT = "%(asctime)s %(levelname)s: %(name)s: %(message)s"


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure the ``picsift`` logger once; later calls only change the level.

    httpx logs every request line at INFO, which is noise next to triage events,
    so it is raised to WARNING.
    """
    logger = logging.getLogger("picsift")
    logger.setLevel(level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
