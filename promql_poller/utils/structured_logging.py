"""
Diagnostic logging with per-query context.

Query results are written to stdout by the result logger; everything here
goes to stderr (and optionally a rotating log file).
"""

import json
import logging
import logging.handlers
import sys
import threading
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

# Name of the query whose poll task is currently running
query_name: ContextVar[Optional[str]] = ContextVar('query_name', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'query', 'taskName', 'message'
}


class QueryContextFilter(logging.Filter):
    """Logging filter that adds the current query name to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.query = query_name.get() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log record.
    """

    def __init__(
        self,
        include_extra_fields: bool = True,
        timestamp_format: str = "%Y-%m-%dT%H:%M:%S.%f%z"
    ):
        super().__init__()
        self.include_extra_fields = include_extra_fields
        self.timestamp_format = timestamp_format

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).astimezone().strftime(self.timestamp_format),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "thread": threading.current_thread().name,
            "query": getattr(record, 'query', '-'),
        }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        if self.include_extra_fields:
            extra_fields = {}
            for key, value in record.__dict__.items():
                if key in _RESERVED_ATTRS:
                    continue
                try:
                    json.dumps(value)
                    extra_fields[key] = value
                except (TypeError, ValueError):
                    extra_fields[key] = str(value)

            if extra_fields:
                log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class LoggingManager:
    """
    Centralized logging configuration.

    Sets up a stderr console handler, an optional rotating file handler and
    either plain text or structured JSON output.
    """

    def __init__(self):
        self._configured = False
        self._log_handlers: Dict[str, logging.Handler] = {}

    @property
    def configured(self) -> bool:
        return self._configured

    def setup_logging(
        self,
        log_level: str = "INFO",
        log_file: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        console_output: bool = True,
        structured_format: bool = False,
        stream=None
    ) -> None:
        """
        Set up logging configuration.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_file: Path to log file (optional)
            max_file_size: Maximum size of log file before rotation
            backup_count: Number of backup files to keep
            console_output: Whether to output logs to stderr
            structured_format: Whether to use structured JSON format
            stream: Console stream, defaults to sys.stderr
        """
        root_logger = logging.getLogger()
        self.shutdown()
        root_logger.setLevel(getattr(logging, log_level.upper()))

        if structured_format:
            formatter = StructuredFormatter()
        else:
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - [%(query)s] %(message)s'
            )

        if console_output:
            console_handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
            console_handler.setFormatter(formatter)
            console_handler.addFilter(QueryContextFilter())
            root_logger.addHandler(console_handler)
            self._log_handlers['console'] = console_handler

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            file_handler.addFilter(QueryContextFilter())
            root_logger.addHandler(file_handler)
            self._log_handlers['file'] = file_handler

        self._configure_logger_levels()
        self._configured = True

        logging.getLogger(__name__).debug(
            "Logging configuration completed",
            extra={
                "log_level": log_level,
                "log_file": log_file,
                "structured_format": structured_format,
            }
        )

    def _configure_logger_levels(self) -> None:
        """Reduce noise from third-party libraries."""
        logging.getLogger('asyncio').setLevel(logging.WARNING)
        logging.getLogger('aiohttp').setLevel(logging.WARNING)

    def shutdown(self) -> None:
        """Remove and close the handlers installed by ``setup_logging``."""
        root_logger = logging.getLogger()
        for handler in self._log_handlers.values():
            root_logger.removeHandler(handler)
            handler.close()
        self._log_handlers.clear()
        self._configured = False

    def get_log_stats(self) -> Dict[str, Any]:
        """Get logging configuration details."""
        return {
            "configured": self._configured,
            "handlers": list(self._log_handlers.keys()),
            "root_level": logging.getLogger().level,
        }


# Global logging manager instance
logging_manager = LoggingManager()


def bind_query_name(name: Optional[str]) -> None:
    """
    Set the query name for log records in the current context.

    Each asyncio task runs in its own copy of the context, so binding inside
    a poll task only affects that task and the cycles it spawns.
    """
    query_name.set(name)
