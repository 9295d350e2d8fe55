"""Structured logging for the agent: structlog events, rich console output."""

import logging
from typing import Any, Dict, Optional

import structlog
from rich.logging import RichHandler

from jobnick_agent.config import settings

# Third-party loggers that drown the loop's own output at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "playwright", "uvicorn.access")


def _level(name: Optional[str] = None) -> int:
    return logging.getLevelName((name or settings.log_level).upper())


def configure_logging(level: Optional[str] = None) -> None:
    """Route stdlib logging through rich and configure structlog on top of it."""
    log_level = _level(level)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[RichHandler(rich_tracebacks=True, markup=False, show_path=settings.debug)],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def log_function_call(func_name: str, **kwargs: Any) -> Dict[str, Any]:
    """Log context for a call; underscore-prefixed arguments are left out."""
    return {
        "function": func_name,
        "parameters": {k: v for k, v in kwargs.items() if not k.startswith("_")},
    }


def log_run_context(context: Any) -> Dict[str, Any]:
    """Log context for one loop iteration. Profile contents are never logged."""
    page_type = getattr(context, "page_type", None)
    preferences = getattr(context, "user_preferences", None)
    return {
        "run_context": {
            "page_type": getattr(page_type, "value", page_type),
            "url": getattr(context, "url", ""),
            "jobs_found": getattr(context, "jobs_found_count", 0),
            "has_search_query": bool(getattr(context, "search_query", "")),
            "has_preferences": bool(preferences and getattr(preferences, "job_titles", "")),
            "has_user_profile": getattr(context, "user_profile", None) is not None,
        }
    }
