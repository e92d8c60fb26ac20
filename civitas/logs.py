"""Civitas — logging setup shared by the engine and the audit CLI."""

from __future__ import annotations

import logging

import structlog

from civitas.config import GovernanceSettings, settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _processors(log_format: str) -> list:
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "console":
        return [*shared, structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer()]
    return [*shared, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def configure_logging(config: GovernanceSettings | None = None) -> None:
    """
    Send component logs and engine events through one stdlib handler.

    Components log with ``logging.getLogger(__name__)``; the engine and the
    audit CLI emit structlog events, rendered as JSON or console lines per
    ``config.log_format`` and filtered at ``config.log_level``.
    """
    config = config or settings
    level = logging.getLevelName(config.log_level)

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("civitas").setLevel(level)

    structlog.configure(
        processors=_processors(config.log_format),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
