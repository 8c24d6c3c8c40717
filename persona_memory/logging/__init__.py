"""
Centralized logging configuration for Persona Memory
====================================================

Provides standardized logging with:
- Consistent logger instances across all modules
- Structured JSON logging for production
- Per-turn correlation IDs
- Configurable log levels and formats
"""

import logging
import json
import sys
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Optional
from contextvars import ContextVar
from pathlib import Path

from ..config import get_config

# Context variable for correlation ID tracking
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'message', 'exc_info',
    'exc_text', 'stack_info', 'correlation_id'
}


class CorrelationFilter(logging.Filter):
    """Add correlation ID to log records for turn tracing"""

    def filter(self, record):
        record.correlation_id = correlation_id.get() or 'none'
        return True


class StructuredFormatter(logging.Formatter):
    """JSON structured logging formatter for production monitoring"""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'correlation_id': getattr(record, 'correlation_id', 'none')
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Extra fields passed via logger.info(..., extra={...})
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable console formatter for development"""

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        corr_id = getattr(record, 'correlation_id', 'none')
        corr_display = f"[{corr_id[:8]}]" if corr_id != 'none' else ""

        color = self.COLORS.get(record.levelname, '')
        reset = self.COLORS['RESET']
        colored_level = f"{color}{record.levelname:8s}{reset}"

        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S.%f')[:-3]

        return f"{timestamp} {colored_level} {record.name:30s} {corr_display} {record.getMessage()}"


class LoggingManager:
    """
    Centralized logging configuration manager

    Handles:
    - Logger creation with consistent naming
    - Configuration from environment settings
    - Correlation ID management for turn tracing
    - Structured vs console output selection
    """

    def __init__(self):
        self.config = get_config()
        self.loggers: Dict[str, logging.Logger] = {}
        self._setup_package_logging()

    def _setup_package_logging(self):
        """Configure the package logger with appropriate handlers and formatters"""
        log_config = self.config.logging
        log_level = getattr(logging, log_config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger('persona_memory')
        package_logger.handlers.clear()
        package_logger.setLevel(log_level)

        correlation_filter = CorrelationFilter()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        if log_config.debug_mode:
            console_handler.setFormatter(ConsoleFormatter())
        else:
            console_handler.setFormatter(StructuredFormatter())
        console_handler.addFilter(correlation_filter)
        package_logger.addHandler(console_handler)

        if log_config.log_file:
            log_path = Path(log_config.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            # Files always get structured output
            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(StructuredFormatter())
            file_handler.addFilter(correlation_filter)
            package_logger.addHandler(file_handler)

        self._configure_third_party_loggers()

    def _configure_third_party_loggers(self):
        """Suppress verbose third-party logging"""
        suppressed_loggers = [
            'chromadb',
            'httpcore',
            'httpx',
            'aiosqlite',
            'asyncio'
        ]

        for logger_name in suppressed_loggers:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get a standardized logger instance

        Args:
            name: Logger name (typically __name__ from calling module)

        Returns:
            Configured logger instance
        """
        if name not in self.loggers:
            self.loggers[name] = logging.getLogger(name)

        return self.loggers[name]

    def set_correlation_id(self, corr_id: Optional[str] = None) -> str:
        """Set correlation ID, generating a UUID when none is given"""
        if corr_id is None:
            corr_id = str(uuid.uuid4())

        correlation_id.set(corr_id)
        return corr_id

    def clear_correlation_id(self):
        correlation_id.set(None)

    def get_correlation_id(self) -> Optional[str]:
        return correlation_id.get()


# Global logging manager instance
_logging_manager: Optional[LoggingManager] = None


def _get_manager() -> LoggingManager:
    global _logging_manager
    if _logging_manager is None:
        _logging_manager = LoggingManager()
    return _logging_manager


def get_logger(name: str) -> logging.Logger:
    """
    Get a standardized logger instance

    Usage:
        from persona_memory.logging import get_logger
        logger = get_logger(__name__)
        logger.info("This is a test message")
    """
    return _get_manager().get_logger(name)


def set_correlation_id(corr_id: Optional[str] = None) -> str:
    """
    Set correlation ID for turn tracing

    Args:
        corr_id: Optional correlation ID. If None, generates a new UUID

    Returns:
        The correlation ID that was set
    """
    return _get_manager().set_correlation_id(corr_id)


def clear_correlation_id():
    """Clear the current correlation ID"""
    correlation_id.set(None)


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID"""
    return correlation_id.get()


@contextmanager
def correlation_context(corr_id: Optional[str] = None):
    """
    Context manager scoping a correlation ID to one conversation turn

    Usage:
        with correlation_context() as turn_id:
            logger.info("Processing turn")
    """
    token = correlation_id.set(corr_id or str(uuid.uuid4()))
    try:
        yield correlation_id.get()
    finally:
        correlation_id.reset(token)
