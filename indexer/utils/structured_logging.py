"""Structured (JSON line) logging for the indexer and batch jobs."""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict


class StructuredLogger:
    """
    JSON-structured logger for long-running loops.

    Each call emits one JSON object per line:
    {
        "time": "2025-01-13T14:00:00.000000Z",
        "level": "INFO",
        "message": "block_range_indexed",
        "from_block": 1200,
        "to_block": 1250,
        "trades": 14
    }
    """

    def __init__(self, name: str, level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)

        # get_logger() may be called repeatedly for the same name
        if not any(getattr(h, '_structured', False) for h in self.logger.handlers):
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter('%(message)s'))
            handler._structured = True
            self.logger.addHandler(handler)
        self.logger.propagate = False

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        entry = {
            'time': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ'),
            'level': level,
            'message': message,
        }
        entry.update(kwargs)
        line = json.dumps(entry, default=str)

        if level == 'ERROR':
            self.logger.error(line)
        elif level == 'WARN':
            self.logger.warning(line)
        elif level == 'DEBUG':
            self.logger.debug(line)
        else:
            self.logger.info(line)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log('INFO', message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log('ERROR', message, **kwargs)

    def warn(self, message: str, **kwargs: Any) -> None:
        self._log('WARN', message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log('DEBUG', message, **kwargs)

    def bind(self, **kwargs: Any) -> 'BoundLogger':
        """Return a logger that adds `kwargs` to every entry."""
        return BoundLogger(self, kwargs)


class BoundLogger:
    """Logger with bound context fields."""

    def __init__(self, logger: StructuredLogger, context: Dict[str, Any]):
        self.logger = logger
        self.context = context

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, **{**self.context, **kwargs})

    def error(self, message: str, **kwargs: Any) -> None:
        self.logger.error(message, **{**self.context, **kwargs})

    def warn(self, message: str, **kwargs: Any) -> None:
        self.logger.warn(message, **{**self.context, **kwargs})

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, **{**self.context, **kwargs})

    def bind(self, **kwargs: Any) -> 'BoundLogger':
        return BoundLogger(self.logger, {**self.context, **kwargs})


def get_logger(name: str, level: int = logging.INFO) -> StructuredLogger:
    """
    Get or create a structured logger.

    Args:
        name: Logger name
        level: Log level
    """
    return StructuredLogger(name, level)
