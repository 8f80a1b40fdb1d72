"""Handling of health server failures."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class HealthServerError(RuntimeError):
    """The health server failed for a reason other than shutdown."""


def default_health_server_err_handler(err: BaseException) -> None:
    """Log a shutdown quietly; raise HealthServerError for any other failure."""
    if "server closed" in str(err).lower():
        logger.warning("health server was shut down: %s", err)
        return
    logger.critical("health server failed: %s", err)
    raise HealthServerError("health server failed") from err