"""
miraiclient/observability/logger.py — Structured Logger

Sets up structlog with:
  - JSON output to a rotating log file (optional)
  - Human-readable output to console (dev mode) or JSON (prod mode)
  - Session context (account_id, session) bound through contextvars

Usage:
    from miraiclient.observability.logger import get_logger, setup_logging
    from miraiclient.config.settings import get_settings

    setup_logging(**get_settings().logging.as_kwargs())   # once at startup
    log = get_logger(__name__)
    log.info("session.connected", account_id=10001)
    log.warning("ingestion.disconnected", stream="events", error="...")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str | Path] = None,
    json_format: bool = True,
    console_output: bool = True,
    max_bytes: int = 20 * 1024 * 1024,   # 20 MB
    backup_count: int = 3,
) -> None:
    """
    Configure structlog and stdlib logging. Call once at application startup.

    Libraries embedding the client usually skip this and let their own
    logging setup pick up the stdlib records.

    Args:
        level:          DEBUG | INFO | WARNING | ERROR | CRITICAL
        log_dir:        Directory for the rotating log file. None disables it.
        json_format:    True → JSON console lines, False → coloured dev output.
        console_output: Whether to emit logs to stdout at all.
        max_bytes:      Max size of each log file before rotation.
        backup_count:   Number of rotated log files to keep.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    handlers: list[logging.Handler] = []

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_path / "miraiclient.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        handlers.append(console_handler)

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=handlers,
        force=True,
    )

    if json_format:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    for handler in handlers:
        handler.setFormatter(formatter)


def get_logger(name: str = "miraiclient", **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """
    Get a bound logger with optional initial context values.

    Example:
        log = get_logger(__name__, stream="events")
        log.info("ingestion.started")
        # → {"event": "ingestion.started", "stream": "events",
        #    "logger": "miraiclient.gateway.ingestion", ...}
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger


def bind_session(account_id: int, session_key: str) -> None:
    """
    Bind session context to all subsequent log calls in this async context.

    Background tasks created after this call inherit a copy of the context,
    so the ingestion loops log with the account they belong to.
    """
    structlog.contextvars.bind_contextvars(
        account_id=account_id,
        session=_mask(session_key),
    )


def clear_session() -> None:
    """Drop the session context vars bound by bind_session()."""
    structlog.contextvars.unbind_contextvars("account_id", "session")


def _mask(secret: str) -> str:
    if len(secret) <= 4:
        return "****"
    return secret[:2] + "…" + secret[-2:]
