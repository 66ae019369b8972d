"""Structured logging configuration using structlog.

JSON lines in production (LOG_FORMAT=json), colored console output in
development (LOG_FORMAT=console). Transcripts and replies are often in
Devanagari, Gujarati or Urdu script, so JSON output keeps them as UTF-8
rather than escaping them. The active conversation id is carried on
every line through structlog.contextvars.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from bolonyay.core.config import Settings

_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "sqlalchemy.engine")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging(settings: Settings) -> None:
    """Route structlog and stdlib logging through one stdout handler."""
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_format == "json":
        pre_chain.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.log_format),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(settings.log_level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_conversation(conversation_id: str) -> None:
    """Attach the active conversation id to every subsequent log line."""
    structlog.contextvars.bind_contextvars(conversation_id=conversation_id)


def clear_conversation() -> None:
    structlog.contextvars.unbind_contextvars("conversation_id")
