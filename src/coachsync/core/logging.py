"""Structured logging for coachsync — context-aware, configurable per process.

Uses structlog's ProcessorFormatter to upgrade every
``logging.getLogger(__name__)`` call site without touching it.

Two output formats:
- ``text``: Colored, human-readable console output (dev default)
- ``json``: Machine-parseable JSON lines (production / log aggregation)

The service name and OTel trace context are injected by processors that read
from a ContextVar and the current OTel span. Credential values (calendar API
keys, database passwords, Authorization headers) are masked before
rendering.
"""

from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from pathlib import Path

import structlog
from opentelemetry import trace

REDACTION_MARKER = "[REDACTED]"

# ---------------------------------------------------------------------------
# Service context (asyncio-safe via ContextVar)
# ---------------------------------------------------------------------------

_service_context: ContextVar[str | None] = ContextVar("service_name", default=None)


def set_service_context(name: str) -> None:
    """Set the service name for the current async context."""
    _service_context.set(name)


def get_service_context() -> str | None:
    return _service_context.get()


# ---------------------------------------------------------------------------
# Structlog processors
# ---------------------------------------------------------------------------


def add_service_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``service`` key from the ContextVar into the event dict."""
    event_dict["service"] = _service_context.get()
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``trace_id`` and ``span_id`` from the current OTel span."""
    span = trace.get_current_span()
    ctx = span.get_span_context()
    if ctx and ctx.trace_id:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    else:
        event_dict["trace_id"] = "0" * 32
        event_dict["span_id"] = "0" * 16
    return event_dict


_SENSITIVE_KEYS = frozenset({"api_key", "password", "authorization", "token"})
_KEY_VALUE_PATTERN = re.compile(
    r"(?i)\b(api_key|password|token)\s*[=:]\s*(['\"]?)[^\s,;'\"]+\2"
)
_AUTH_HEADER_PATTERN = re.compile(r"(?i)\b(authorization\s*[:=]\s*)(basic|bearer)\s+\S+")
_URL_PASSWORD_PATTERN = re.compile(r"(\w+://[^:/@\s]+:)[^@\s]+@")


def redact_text(message: str) -> str:
    """Mask credential values embedded in a free-form log message."""
    redacted = _AUTH_HEADER_PATTERN.sub(rf"\1\2 {REDACTION_MARKER}", message)
    redacted = _KEY_VALUE_PATTERN.sub(rf"\1={REDACTION_MARKER}", redacted)
    return _URL_PASSWORD_PATTERN.sub(rf"\1{REDACTION_MARKER}@", redacted)


def redact_credentials(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Mask sensitive keys and credential values in the rendered event."""
    for key in list(event_dict):
        if key.lower() in _SENSITIVE_KEYS and event_dict[key] is not None:
            event_dict[key] = REDACTION_MARKER
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = redact_text(event)
    return event_dict


# ---------------------------------------------------------------------------
# Noise suppression
# ---------------------------------------------------------------------------

_NOISE_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "asyncpg",
)


def _build_processors(
    time_fmt: str,
) -> list[structlog.types.Processor]:
    """Build the pre-chain processor list with the given timestamp format."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=time_fmt),
        add_service_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def _formatter(
    processors: list[structlog.types.Processor],
    renderer: structlog.types.Processor,
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            redact_credentials,
            renderer,
        ],
        foreign_pre_chain=processors,
    )


# ---------------------------------------------------------------------------
# configure_logging()
# ---------------------------------------------------------------------------


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_file: Path | None = None,
    service_name: str | None = "coachsync",
) -> None:
    """Configure structured logging for the process.

    Parameters
    ----------
    level:
        Root log level (e.g. "DEBUG", "INFO", "WARNING").
    fmt:
        Output format: ``"text"`` for colored console, ``"json"`` for JSON lines.
    log_file:
        Optional path that additionally receives every record as JSON lines.
    service_name:
        Service identity stored in the ContextVar.
    """
    if service_name:
        set_service_context(service_name)

    if fmt == "json":
        console_processors = _build_processors(time_fmt="iso")
        renderer = structlog.processors.JSONRenderer()
    else:
        # Console: compact HH:MM:SS, no microseconds
        console_processors = _build_processors(time_fmt="%H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_formatter(console_processors, renderer))

    root = logging.getLogger()
    # Remove existing handlers to avoid duplicate output on reconfiguration
    root.handlers.clear()
    root.addHandler(console_handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISE_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            _formatter(_build_processors(time_fmt="iso"), structlog.processors.JSONRenderer())
        )
        file_handler.setLevel(logging.DEBUG)
        root.addHandler(file_handler)

    # Configure structlog itself (for direct structlog.get_logger() usage)
    structlog.configure(
        processors=[
            *console_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
