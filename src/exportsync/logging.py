"""Structured logging configuration using structlog.

Call ``configure_logging()`` once at CLI startup to set up the processor
pipeline and bind a ``run_id`` to every log event emitted during that run.

Processor pipeline (applied in order to every log event):

  1. merge_contextvars   - pulls run_id (and any other bound vars) into the event
  2. add_log_level       - adds  level="info" / "error" / …
  3. TimeStamper         - adds  timestamp="2026-03-01T02:41:55Z"
  4. format_exc_info     - renders tracebacks from log.exception(...)
  5. JSONRenderer        - renders as a single JSON line  (format=json)
     ConsoleRenderer     - renders as coloured key=value  (format=text)

The sync engine never reaches for a module-level logger of its own: the
CLI hands a logger to :class:`~exportsync.scheduler.Scheduler`, which binds
``stream=`` / ``destination=`` onto it for every drain task.

Typical usage:

    from exportsync.logging import configure_logging, get_logger

    run_id = configure_logging()         # call once, at CLI startup
    log = get_logger(__name__)
    log.info("file synced", stream="am-signinlogs", ingested=1200)
"""

import logging as _stdlib
import sys
import uuid

import structlog

from exportsync.config import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> str:
    """Configure structlog for this process and return the run_id.

    Calling again reconfigures the pipeline and binds a fresh run_id.

    Args:
        settings: Pre-loaded settings; loads from ``get_settings()`` if None.

    Returns:
        run_id - 8-character hex string present on every log event this run.
    """
    if settings is None:
        settings = get_settings()

    level_int = getattr(_stdlib, settings.logging.level, _stdlib.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # ConsoleRenderer pretty-prints exc_info itself.
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_int),
        context_class=dict,
        # Logs go to stderr; stdout is reserved for command output.
        # cache_logger_on_first_use stays False so CLI test runners that
        # redirect stderr per-invocation see the redirected stream.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    run_id = uuid.uuid4().hex[:8]
    structlog.contextvars.bind_contextvars(run_id=run_id)

    return run_id


def get_logger(name: str = "exportsync") -> structlog.BoundLogger:
    """Return a structlog logger.

    Pass ``__name__`` to associate the logger with the calling module::

        log = get_logger(__name__)
        log.info("listing streams")
    """
    return structlog.get_logger(name)
