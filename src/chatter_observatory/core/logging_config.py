"""Structured logging configuration using structlog.

Each service calls ``configure_logging()`` once at startup (the web apps in
their ``create_app()`` factory, the worker in ``worker/__main__.py``).  Modules
then use either the stdlib logging API or structlog directly:

Stdlib usage::

    import logging
    logger = logging.getLogger(__name__)
    logger.info("message", extra={"key": "value"})

Structlog usage (richer context binding)::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("capture_stored", capture_id=12, chatters_count=340)

A ``request_id`` context variable is populated by the request-logging
middleware in ``core/http.py`` and merged into every log record emitted during
that request.  The worker binds ``job_id`` / ``job_type`` through
``structlog.contextvars`` for the duration of each job instead.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

# ---------------------------------------------------------------------------
# Context variable set by the HTTP middleware and read by the log processor
# ---------------------------------------------------------------------------

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
"""Per-request ID propagated from the HTTP middleware to log processors."""


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


_SECRET_SUBSTRINGS: frozenset[str] = frozenset({
    "access_token",
    "refresh_token",
    "token",
    "secret",
    "password",
    "authorization",
    "bearer",
    "cookie",
    "code_verifier",
})
"""Lower-cased substrings that identify log event-dict keys whose values
must be redacted before the record reaches any renderer.

OAuth access tokens travel through the worker payload lookup, the proxy
query string and the gateway session table, so they are the main concern."""

_REDACTED = "[REDACTED]"


def _is_secret_key(key: str) -> bool:
    key_lower = key.lower()
    return any(secret in key_lower for secret in _SECRET_SUBSTRINGS)


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Replace values of secret-bearing keys with a redaction marker.

    Scans both top-level keys and any nested ``dict`` values one level deep
    (e.g. ``params={...}`` or ``headers={...}``).

    Args:
        logger: The wrapped logger instance (unused).
        method_name: The log method name (unused).
        event_dict: Mutable event dictionary being assembled.

    Returns:
        The event dict with sensitive values replaced by ``"[REDACTED]"``.
    """
    for key in list(event_dict.keys()):
        if _is_secret_key(key):
            event_dict[key] = _REDACTED
            continue
        val = event_dict[key]
        if isinstance(val, dict):
            event_dict[key] = {
                nested_key: _REDACTED if _is_secret_key(str(nested_key)) else nested_val
                for nested_key, nested_val in val.items()
            }
    return event_dict


def _inject_request_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Inject the current request ID into the log event dict if set.

    Runs after ``merge_contextvars`` and acts as a fallback for code paths
    that set the ``ContextVar`` directly rather than binding it in structlog.
    """
    rid = request_id_var.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    return event_dict


def _service_tagger(service: str | None) -> structlog.types.Processor:
    """Build a processor that stamps every record with the service name."""

    def _add_service(
        logger: WrappedLogger,  # noqa: ARG001
        method_name: str,  # noqa: ARG001
        event_dict: EventDict,
    ) -> EventDict:
        if service is not None:
            event_dict.setdefault("service", service)
        return event_dict

    return _add_service


# ---------------------------------------------------------------------------
# Public configuration entry-point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO", service: str | None = None) -> None:
    """Configure structlog and stdlib logging for one service process.

    With a level other than ``"DEBUG"`` the output is newline-delimited JSON
    suitable for log aggregators.  At ``"DEBUG"`` structlog's
    ``ConsoleRenderer`` is used for human-readable output.

    Standard fields added to every log record: ``timestamp``, ``level``,
    ``logger``, ``event``, ``service`` (when given) and ``request_id`` (inside
    an HTTP request).

    Calling this function more than once is safe: the root handler list is
    reset and structlog replaces its own configuration.

    Args:
        log_level: Logging verbosity string.  Case-insensitive.
        service: Short service name (``"gateway"``, ``"worker"``, ...).
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_request_id,
        _service_tagger(service),
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_development:
        final_renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=True,
        )
    else:
        final_renderer = structlog.processors.JSONRenderer()

    # Route ``logging.getLogger(__name__)`` records through the same chain.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    if not is_development:
        for noisy_logger in ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
