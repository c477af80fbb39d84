"""Logging configuration for storemigration.

This module provides the centralized logging manager used across the package:
- Configurable log level
- Console output and optional rotating file output
- A bounded memory buffer of recent records for the status API

Only the ``storemigration`` logger hierarchy is configured. The root logger is
never touched so a host application keeps full control of its own output.
"""

from __future__ import annotations

import logging
import logging.handlers
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT_LOGGER_NAME = "storemigration"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


class StoreMigrationLogger:
    """Singleton owning the handlers of the ``storemigration`` logger."""

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if hasattr(self, "_initialized"):
            return

        self._initialized = True
        self.config: Dict[str, Any] = {
            "level": "INFO",
            "console_logging": True,
            "file": None,
            "max_file_size": 10 * 1024 * 1024,  # 10MB
            "backup_count": 5,
            "buffer_size": 1000,
        }
        self._log_buffer: List[Dict[str, Any]] = []
        self._buffer_lock = threading.Lock()
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        self._setup_loggers()

    def _setup_loggers(self) -> None:
        """(Re)build the handlers of the package logger from ``self.config``."""
        self.logger.setLevel(getattr(logging, str(self.config["level"]).upper(), logging.INFO))
        self.logger.propagate = True

        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATEFMT)

        if self.config["console_logging"]:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        log_file = self.config["file"]
        if log_file:
            try:
                Path(log_file).parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    log_file,
                    maxBytes=self.config["max_file_size"],
                    backupCount=self.config["backup_count"],
                    encoding="utf-8",
                    errors="replace",
                )
                file_handler.setFormatter(formatter)
                self.logger.addHandler(file_handler)
            except OSError as exc:
                self.logger.warning(
                    "File logging disabled; failed to access %s: %s",
                    log_file,
                    exc,
                )

        memory_handler = MemoryBufferHandler(self)
        memory_handler.setFormatter(formatter)
        self.logger.addHandler(memory_handler)

    def get_logger(self, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        return logging.getLogger(name)

    def update_config(self, new_config: Dict[str, Any]) -> None:
        """Apply configuration updates and rebuild the handlers."""
        self.config.update({key: value for key, value in new_config.items() if value is not None})
        self._setup_loggers()

    def get_config(self) -> Dict[str, Any]:
        return self.config.copy()

    def add_to_buffer(self, record: logging.LogRecord, formatted_message: str) -> None:
        with self._buffer_lock:
            self._log_buffer.append({
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "formatted": formatted_message,
            })
            if len(self._log_buffer) > self.config["buffer_size"]:
                self._log_buffer = self._log_buffer[-self.config["buffer_size"]:]

    def get_recent_logs(self, limit: int = 100, level: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get recent log entries from the memory buffer, most recent first.

        Args:
            limit: Maximum number of entries to return
            level: Optional minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        with self._buffer_lock:
            logs = self._log_buffer[:]

        if level:
            level_num = getattr(logging, level.upper(), None)
            if isinstance(level_num, int):
                logs = [log for log in logs if getattr(logging, log["level"]) >= level_num]

        return list(reversed(logs[-limit:])) if limit > 0 else []

    def clear_buffer(self) -> None:
        with self._buffer_lock:
            self._log_buffer.clear()


class MemoryBufferHandler(logging.Handler):
    """Logging handler that stores records in the manager's memory buffer."""

    def __init__(self, logger_manager: StoreMigrationLogger):
        super().__init__()
        self.logger_manager = logger_manager

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.logger_manager.add_to_buffer(record, self.format(record))
        except Exception:  # noqa: BLE001 - logging must never break the caller
            self.handleError(record)


_logger_manager: Optional[StoreMigrationLogger] = None


def get_logger_manager() -> StoreMigrationLogger:
    global _logger_manager
    if _logger_manager is None:
        _logger_manager = StoreMigrationLogger()
    return _logger_manager


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Return a logger under the ``storemigration`` hierarchy."""
    return get_logger_manager().get_logger(name)


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    console: Optional[bool] = None,
) -> logging.Logger:
    """Configure the package logger and return it."""
    manager = get_logger_manager()
    manager.update_config({"level": level, "file": log_file, "console_logging": console})
    return manager.get_logger()


def get_recent_logs(limit: int = 100, level: Optional[str] = None) -> List[Dict[str, Any]]:
    return get_logger_manager().get_recent_logs(limit=limit, level=level)
