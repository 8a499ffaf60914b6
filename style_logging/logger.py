"""
风格检查日志器
"""

import os
import threading
from datetime import datetime
from enum import Enum
from typing import Optional


class LogLevel(Enum):
    """日志级别"""

    DEBUG = 1
    INFO = 2
    WARNING = 3
    ERROR = 4
    CRITICAL = 5


class StyleLogger:
    """按行追加写入的文件日志器；log_dir 为 None 时不写任何文件"""

    def __init__(self, run_name: str, log_dir: Optional[str] = "logs"):
        self.run_name = run_name
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, f"{run_name}.log") if log_dir else None
        self.min_level = LogLevel.INFO
        # 工作线程并发写日志
        self._lock = threading.Lock()

        if self.log_dir:
            # 确保日志目录存在
            os.makedirs(self.log_dir, exist_ok=True)
            self._write_startup_info()

    def _write_startup_info(self):
        """写入启动信息"""
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self._append(f"[{timestamp}] [INFO] [SYSTEM] 风格检查 {self.run_name} 启动\n")

    def _append(self, line: str):
        if not self.log_file:
            return
        with self._lock:
            try:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as e:
                print(f"写入日志失败: {e}")

    def _write_log(self, level: LogLevel, message: str, component: str = "SYSTEM"):
        """写入日志"""
        if level.value < self.min_level.value:
            return

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self._append(f"[{timestamp}] [{level.name}] [{component}] {message}\n")

    def debug(self, message: str, component: str = "SYSTEM"):
        self._write_log(LogLevel.DEBUG, message, component)

    def info(self, message: str, component: str = "SYSTEM"):
        self._write_log(LogLevel.INFO, message, component)

    def warning(self, message: str, component: str = "SYSTEM"):
        self._write_log(LogLevel.WARNING, message, component)

    def error(self, message: str, component: str = "SYSTEM"):
        self._write_log(LogLevel.ERROR, message, component)

    def critical(self, message: str, component: str = "SYSTEM"):
        self._write_log(LogLevel.CRITICAL, message, component)

    def set_log_level(self, level: LogLevel):
        self.min_level = level

    def close(self):
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self._append(f"[{timestamp}] [INFO] [SYSTEM] 风格检查 {self.run_name} 结束\n")
