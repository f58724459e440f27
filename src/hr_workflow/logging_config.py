"""Logging setup for the hr_workflow package."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Set the package log level and attach a stream handler if none exists.

    Uvicorn installs its own handlers; when running under it the package
    logger only needs a level and propagates to the root.
    """
    normalized = level.upper()
    package_logger = logging.getLogger("hr_workflow")
    package_logger.setLevel(normalized)
    package_logger.propagate = True

    if not logging.getLogger().handlers:
        logging.basicConfig(level=normalized, format=LOG_FORMAT)
