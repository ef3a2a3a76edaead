"""
Structured logging for the Switchboard service.

structlog renders every record, including those emitted through plain
``logging`` by websockets/aiohttp, as JSON (or a console layout with
LOG_FORMAT=console). Records carry ``service``, ``component`` and, while a
call is being handled, ``correlation_id``. Credential-like keys are redacted
before rendering.
"""

import contextvars
import logging
import os
import sys
import uuid

import structlog
from structlog import dev as structlog_dev

SERVICE_NAME = "switchboard"

QUIET_LOGGERS = ("websockets", "aiohttp", "aiohttp.access", "asyncio")

# Compared after lower-casing and removing "_" and "-"
_SENSITIVE = frozenset({
    "apikey", "apikeys", "servicekey",
    "token", "accesstoken", "refreshtoken", "authtoken", "bearer",
    "password", "passwd", "pwd", "pass",
    "authorization", "auth",
    "credential", "credentials", "secret", "secrets", "clientsecret",
})

REDACTED = "***REDACTED***"

correlation_id_var = contextvars.ContextVar("correlation_id", default=None)


def get_correlation_id():
    return correlation_id_var.get()


def set_correlation_id(value=None):
    """Bind a correlation id to the current task; a uuid4 is generated when none is given."""
    value = value or str(uuid.uuid4())
    correlation_id_var.set(value)
    return value


def add_correlation_id(logger, method_name, event_dict):
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict.setdefault("correlation_id", correlation_id)
    return event_dict


def add_service_context(logger, method_name, event_dict):
    event_dict["service"] = SERVICE_NAME
    event_dict["component"] = (
        event_dict.get("logger")
        or getattr(getattr(logger, "logger", None), "name", None)
        or getattr(logger, "name", None)
        or "unknown"
    )
    return event_dict


def _is_sensitive(key) -> bool:
    # Suffix match catches "supabase_service_key" without flagging "passthrough"
    flat = str(key).lower().replace("_", "").replace("-", "")
    return any(flat.endswith(word) for word in _SENSITIVE)


def _mask(value):
    if value is None or isinstance(value, bool) or value == "":
        return value
    if isinstance(value, str):
        return f"{value[:2]}{REDACTED}" if len(value) > 4 else REDACTED
    if isinstance(value, (list, tuple)):
        return [_mask(item) for item in value]
    if isinstance(value, dict):
        return {k: _mask(v) for k, v in value.items()}
    return REDACTED


def _scrub(value):
    if isinstance(value, dict):
        return {k: _mask(v) if _is_sensitive(k) else _scrub(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    return value


def sanitize_secrets(logger, method_name, event_dict):
    """
    Redact credentials anywhere in the event, including nested dicts.

    Strings longer than four characters keep their first two (e.g. "sk") so
    a redacted key can still be told apart from a missing one.
    """
    return _scrub(event_dict)


def _show_tracebacks(level_name: str) -> bool:
    mode = os.getenv("LOG_SHOW_TRACEBACKS", "auto").strip().lower()
    if mode in ("always", "never"):
        return mode == "always"
    return level_name == "DEBUG"


def configure_logging(log_level="INFO"):
    """
    Install structlog and the root handler.

    Environment overrides: LOG_LEVEL, LOG_FORMAT (json|console),
    LOG_COLOR (console only), LOG_SHOW_TRACEBACKS (auto|always|never).
    """
    level_name = str(os.getenv("LOG_LEVEL") or log_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    tracebacks = _show_tracebacks(level_name)

    def drop_exc_info(logger, method_name, event_dict):
        if not tracebacks:
            event_dict.pop("exc_info", None)
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_context,
            add_correlation_id,
            sanitize_secrets,
            drop_exc_info,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if os.getenv("LOG_FORMAT", "json").strip().lower() == "console":
        colors = os.getenv("LOG_COLOR", "1").strip().lower() not in ("0", "false")
        renderer = structlog_dev.ConsoleRenderer(colors=colors)
    else:
        renderer = structlog.processors.JSONRenderer()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_context,
            add_correlation_id,
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
