"""
structlog setup for the scheduler, API and CLI.

Scheduler events carry keyword fields (link_id, url, outcome, to_status)
and, while a cycle runs, a bound cycle_id so every line of one batch can be
grouped. The scraper, GitHub and storage modules log through stdlib
logging; both end up on stdout.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from linkvault.config.settings import get_settings


def build_processors(*, json_output: bool, trace_context: bool = False) -> list[Processor]:
    """Processor chain: JSON lines for production, colored console otherwise."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if trace_context:
        from linkvault.observability.tracing import add_trace_context

        processors.append(add_trace_context)

    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def setup_logging() -> None:
    """Configure structlog and stdlib logging from Settings. Called once per process."""
    settings = get_settings()

    structlog.configure(
        processors=build_processors(
            json_output=settings.is_production,
            trace_context=settings.tracing_enabled,
        ),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    # One line per HTTP request otherwise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Attach fields (e.g. cycle_id) to every event logged from this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
