"""Logging setup for applications embedding the client."""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None) -> None:
    """
    Configure root logging.

    Args:
        level: Level name (e.g. "DEBUG"); defaults to ``Settings.log_level``
    """
    if level is None:
        from qbo_client.config import get_settings

        level = get_settings().log_level

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO; keep it quiet unless debugging
    if level.upper() != "DEBUG":
        logging.getLogger("httpx").setLevel(logging.WARNING)
