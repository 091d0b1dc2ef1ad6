"""
Structured logging with run-scoped trace context.

Every log line emitted while a run is active carries the run's context
without callers passing ids around:

    Run.start()       → sets run_id (and the default model)
        ↓ (ContextVar propagation into every task the run spawns)
    Run._run_object() → adds object_id for the executing work item
        ↓
    Item code         → logger.info("message") gets run_id + object_id

Two output modes: JSON lines for production, colorized text for development.
"""

import json
import logging
import os
import re
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import IO, Any

# Copied into each asyncio task at creation, so an item task sees the run
# context that existed when it was spawned and its own additions stay local.
trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Record attributes (set through ``extra=``) copied into JSON entries
EXTRA_FIELDS = ("event", "object_id", "model", "tokens_used", "latency_ms", "status")

# Provider client libraries whose records should go through our handler
THIRD_PARTY_LOGGERS = ("LiteLLM", "LiteLLM Router", "httpx", "httpcore", "openai")


def strip_ansi_codes(text: str) -> str:
    return ANSI_ESCAPE_PATTERN.sub("", text)


def _clean(value: Any) -> Any:
    return strip_ansi_codes(value) if isinstance(value, str) else value


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Keys: timestamp, level, logger, message, then the trace context
    (run_id, object_id, model), then any of ``EXTRA_FIELDS`` present on
    the record, then the formatted exception if there is one.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **(trace_context.get() or {}),
        }
        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = _clean(value)
        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    ``[LEVEL   ] [run:1a2b3c4d | obj:node-1] message (status, 12ms) [event]``

    The run id is shortened to eight characters. Status and latency appear
    only on records that carry them.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def _context_prefix(self) -> str:
        context = trace_context.get() or {}
        parts = []
        if context.get("run_id"):
            parts.append(f"run:{context['run_id'][:8]}")
        if context.get("object_id"):
            parts.append(f"obj:{context['object_id']}")
        return f"[{' | '.join(parts)}] " if parts else ""

    @staticmethod
    def _details(record: logging.LogRecord) -> str:
        details = [
            str(value)
            for value in (getattr(record, "status", None), getattr(record, "latency_ms", None))
            if value is not None
        ]
        if getattr(record, "latency_ms", None) is not None:
            details[-1] = f"{details[-1]}ms"
        return f" ({', '.join(details)})" if details else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        line = (
            f"{color}[{record.levelname:<8}]{self.RESET} "
            f"{self._context_prefix()}{record.getMessage()}{self._details(record)}"
        )
        event = getattr(record, "event", None)
        if event is not None:
            line += f" [{event}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "development").lower() == "production" else "human"


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
    stream: IO[str] | None = None,
) -> None:
    """
    Install one handler on the root logger. Call once at startup.

    Args:
        level: Root log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "json", "human", or "auto" (JSON when LOG_FORMAT=json or
            ENV=production)
        stream: Where records go; stderr by default
    """
    format = _resolve_format(format)
    as_json = format == "json"

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter() if as_json else HumanReadableFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    if as_json:
        _disable_third_party_colors()
        # LiteLLM installs its own colorized handler; send its records to ours
        for name in THIRD_PARTY_LOGGERS:
            third_party = logging.getLogger(name)
            third_party.handlers.clear()
            third_party.propagate = True


def _disable_third_party_colors() -> None:
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"

    import litellm

    litellm.suppress_debug_info = True


def set_trace_context(**fields: Any) -> None:
    """
    Merge ``fields`` into the current trace context.

    ``Run.start()`` sets ``run_id`` and ``model``; each item task adds
    ``object_id``. Item code does not need to call this.
    """
    trace_context.set({**(trace_context.get() or {}), **fields})


def get_trace_context() -> dict[str, Any]:
    """A copy of the current trace context (empty dict if unset)."""
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)
