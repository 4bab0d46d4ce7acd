"""structlog configuration shared by the API, the CLI and the test suite.

One processor chain serves both outputs: a coloured console in development
and one JSON object per line when ``APP_ENV=production`` (or
``json_output=True``).  The stdlib root logger is routed through the same
chain, so uvicorn, httpx and chromadb records look like our own events.

Event values whose key names a credential (``api_key``, ``token``,
``authorization``, ...) are masked before rendering.
"""

import logging
import os
import sys

import structlog

# Third-party loggers that are chatty at INFO during ingestion.
_QUIET_LOGGERS = ("httpx", "httpcore", "chromadb", "trafilatura", "urllib3")

_SECRET_KEY_PARTS = ("api_key", "token", "secret", "authorization", "password")


def redact_secrets(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Mask the value of any event key that names a credential."""
    for key, value in event_dict.items():
        name = key.lower()
        if value and any(name == part or name.endswith("_" + part) for part in _SECRET_KEY_PARTS):
            event_dict[key] = "***"
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    # contextvars first so request bindings (owner_id, path) reach every event.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Install the MindLens processor chain for structlog and stdlib logging.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Render JSON even outside production.

    Returns:
        The root structlog logger.
    """
    level = log_level.upper()
    as_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if as_json
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    quiet_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound to *name*, configuring defaults on first use."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
