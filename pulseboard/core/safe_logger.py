# pulseboard/core/safe_logger.py
"""
Logging setup for Pulseboard.

Call init_logging() once at application startup. Modules keep using
logging.getLogger(__name__) as usual.

Two output modes:
- text: '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
- json: one JSON object per line, so multi-line tracebacks stay a single
  entry in hosted log collectors

USAGE:
    from pulseboard.core.safe_logger import init_logging, log_summary

    init_logging(level="INFO", structured=False)
    log_summary("Google sync", {"tenant": tenant_id, "analytics_rows": 30}, logger_name=__name__)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Union

__all__ = [
    'init_logging',
    'log_summary',
    'redact_token',
    'StructuredFormatter',
]

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ('asyncio', 'aiohttp.access', 'google.auth.transport.requests', 'urllib3')

_initialized = False


class StructuredFormatter(logging.Formatter):
    """JSON formatter that keeps multi-line content in a single record"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage()
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_entry["data"] = record.extra_data

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def init_logging(level: Union[int, str] = logging.INFO, structured: bool = False) -> logging.Logger:
    """
    Configure the root logger with a single stdout handler.

    Safe to call more than once; only the first call has effect.
    """
    global _initialized

    root_logger = logging.getLogger()
    if _initialized:
        return root_logger

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _initialized = True
    root_logger.info(f"Logging initialized (level={logging.getLevelName(level)}, structured={structured})")
    return root_logger


def log_summary(
    title: str,
    stats: Dict[str, Any],
    logger_name: str = None,
    level: str = "info"
) -> None:
    """
    Log a one-line summary instead of the full content.

    log_summary("Google sync", {"analytics_rows": 30, "search_console_rows": 28})
    → "Google sync | analytics_rows: 30 | search_console_rows: 28"
    """
    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()
    log_func = getattr(logger, level.lower(), logger.info)

    stats_str = " | ".join(f"{k}: {v}" for k, v in stats.items())
    log_func(f"{title} | {stats_str}")


def redact_token(token: str) -> str:
    """Session tokens only ever appear in logs as an 8-character prefix"""
    if not token:
        return '<none>'
    return token[:8] + '...'
