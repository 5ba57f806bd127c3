"""Structured logging for the CSR Draft Engine.

Records are rendered as ``key=value`` pairs. Pipeline code attaches run and
section context through ``log_with_context`` so a single drafting run can be
followed across mapping, drafting and placement.
"""

import logging
import sys
from typing import Any

# Context keys promoted ahead of free-form extra fields
_PROMOTED_KEYS = ("run_id", "session_id", "section_id", "mode")

# Long values (corpus excerpts, raw LLM output) are clipped in log lines
_MAX_VALUE_CHARS = 300


def _clip(value: Any) -> Any:
    if isinstance(value, str) and len(value) > _MAX_VALUE_CHARS:
        return value[:_MAX_VALUE_CHARS] + "..."
    return value


class StructuredFormatter(logging.Formatter):
    """Key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        context = dict(getattr(record, "context", {}) or {})
        for key in _PROMOTED_KEYS:
            if key in context:
                log_data[key] = context.pop(key)
        log_data.update(context)

        parts = [f"{k}={_clip(v)}" for k, v in log_data.items()]
        line = " ".join(parts)

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _level_for_env(env: str) -> int:
    if env == "dev":
        return logging.DEBUG
    if env == "test":
        return logging.WARNING
    return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger writing structured lines to stdout
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from app.core.config import get_settings

            logger.setLevel(_level_for_env(get_settings().DRAFT_ENGINE_ENV))
        except Exception:
            # Settings unavailable (e.g. invalid env) - fall back to INFO
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    """
    Log with run/section context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **context: Context fields such as run_id, section_id, mode
    """
    logger.log(level, msg, extra={"context": context})
