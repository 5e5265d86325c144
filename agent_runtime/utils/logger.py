"""
Runtime logger built on loguru.

The runtime is embedded in other applications, so the manager only touches
loguru's handlers the first time a logger is requested, and every record
carries two extras:

- name: the module that logged it
- session: the agent session id (``-`` outside of a run)

Configuration via environment (or .env):
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL
- LOG_MODE: development (stderr) or production (rotating files)
- LOG_DIR: log directory for production (default: logs)
- LOG_ROTATION: rotation size or interval (e.g. "10 MB", "1 day")
- LOG_RETENTION: retention time (e.g. "7 days")
- LOG_COMPRESSION: compression format (e.g. "zip", "gz")
"""

import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_MODE = "development"
DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_ROTATION = "10 MB"
DEFAULT_LOG_RETENTION = "7 days"
DEFAULT_LOG_COMPRESSION = "zip"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[session]}</magenta> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[session]} | "
    "{extra[name]}:{function}:{line} - {message}"
)


class LoggerManager:
    """Process-wide singleton that owns the loguru sinks."""

    _instance: Optional["LoggerManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "LoggerManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if LoggerManager._initialized:
            return
        LoggerManager._initialized = True

        self.log_level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
        self.log_mode = os.getenv("LOG_MODE", DEFAULT_LOG_MODE).lower()
        self.log_dir = Path(os.getenv("LOG_DIR", DEFAULT_LOG_DIR))
        self.log_rotation = os.getenv("LOG_ROTATION", DEFAULT_LOG_ROTATION)
        self.log_retention = os.getenv("LOG_RETENTION", DEFAULT_LOG_RETENTION)
        self.log_compression = os.getenv("LOG_COMPRESSION", DEFAULT_LOG_COMPRESSION)
        self._handler_ids: list[int] = []

        # Records logged through plain `loguru.logger` still need the extras
        logger.configure(extra={"name": "root", "session": "-"})
        logger.remove()
        self._install_handlers()

    def _install_handlers(self) -> None:
        if self.log_mode == "production":
            self._configure_production()
        else:
            self._configure_development()

    def _configure_development(self) -> None:
        self._handler_ids.append(
            logger.add(
                sys.stderr,
                format=CONSOLE_FORMAT,
                level=self.log_level,
                colorize=True,
                backtrace=True,
                diagnose=True,
            )
        )

    def _configure_production(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

        for filename, level in (
            ("app_{time:YYYY-MM-DD}.log", self.log_level),
            ("error_{time:YYYY-MM-DD}.log", "ERROR"),
        ):
            self._handler_ids.append(
                logger.add(
                    self.log_dir / filename,
                    format=FILE_FORMAT,
                    level=level,
                    rotation=self.log_rotation,
                    retention=self.log_retention,
                    compression=self.log_compression,
                    encoding="utf-8",
                    enqueue=True,
                )
            )

    def get_logger(self, name: Optional[str] = None, session_id: Optional[str] = None):
        """
        Get a logger bound to a module name and, optionally, a session.

        Example:
            log = LoggerManager().get_logger(__name__)
            log.info("runtime ready")
        """
        return logger.bind(name=name or "root", session=session_id or "-")

    def set_level(self, level: str) -> None:
        """Change the log level of the sinks installed by this manager."""
        self.log_level = level.upper()
        for handler_id in self._handler_ids:
            logger.remove(handler_id)
        self._handler_ids.clear()
        self._install_handlers()


# ======================================================================
## Convenience Functions
# ======================================================================


def get_logger(name: Optional[str] = None, session_id: Optional[str] = None):
    """
    Get a logger instance. This is the recommended way to log in the runtime.

    Example:
        from agent_runtime.utils.logger import get_logger

        log = get_logger(__name__)
        log.info("starting")

        run_log = get_logger(__name__, session_id="abc")
        run_log.debug("inside a run")
    """
    return LoggerManager().get_logger(name, session_id)


def set_log_level(level: str) -> None:
    """Change log level at runtime (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""
    LoggerManager().set_level(level)


__all__ = ["LoggerManager", "get_logger", "set_log_level", "logger"]
