"""structlog setup for the execution engine.

Every record, ours or a library's, leaves through one stdout handler whose
ProcessorFormatter renders JSON (or console lines locally). Campaign-scoped
work wraps itself in campaign_context so its records carry campaign_id.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

# Libraries that log every statement or request at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "httpx", "anthropic")


@contextmanager
def campaign_context(campaign_id: str, **extra: str) -> Iterator[None]:
    """Tag records logged inside the block with campaign_id (and extra keys).

    Keys bound before entering are restored on exit.
    """
    with structlog.contextvars.bound_contextvars(campaign_id=campaign_id, **extra):
        yield


def configure_structlog(log_level: str = "INFO", json_logs: bool = True) -> None:
    """Route structlog and stdlib logging through one formatter.

    Run once at process start, before loggers are first used: structlog
    caches each logger's processor chain on first use.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
