"""Logging setup."""
import logging
import sys

from samharvest.config import config

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger for CLI and server processes."""
    logging.basicConfig(
        level=(level or config.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    # httpx logs full request URLs at INFO, api_key included
    logging.getLogger("httpx").setLevel(logging.WARNING)
