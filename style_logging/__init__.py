"""
风格检查日志模块
"""

from .logger import StyleLogger, LogLevel
from .log_manager import LogManager

__all__ = ["StyleLogger", "LogLevel", "LogManager"]
