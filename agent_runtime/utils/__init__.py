"""
Utility modules for the runtime.

- logger: structured logging with loguru
- session: JSONL session persistence (agent_runtime.utils.session)
"""

from agent_runtime.utils.logger import get_logger, set_log_level, LoggerManager

__all__ = [
    "get_logger",
    "set_log_level",
    "LoggerManager",
]
