"""
日志管理器 - 为不同组件提供统一的日志接口
"""

from typing import Dict, Optional

from .logger import LogLevel, StyleLogger


class LogManager:
    """日志管理器"""

    def __init__(self, run_name: str = "sqlstyle", log_dir: Optional[str] = None):
        self.logger = StyleLogger(run_name, log_dir)

    def log_file_checked(self, path: str, statement_count: int, violation_count: int, elapsed_ms: float):
        """记录单个文件的检查结果"""
        message = (
            f"检查完成: {path} (语句: {statement_count}, 违规: {violation_count}, "
            f"耗时: {elapsed_ms:.3f}ms)"
        )
        self.logger.info(message, "ANALYZER")

    def log_rule_failure(self, rule_id: str, statement_preview: str, error: Exception):
        """记录规则内部异常（该规则对该语句视为无违规）"""
        preview = statement_preview[:100] + "..." if len(statement_preview) > 100 else statement_preview
        message = f"规则 {rule_id} 执行失败，已忽略: {type(error).__name__}: {error} - 语句: {preview}"
        self.logger.warning(message, "RULE_ENGINE")

    def log_lex_error(self, path: str, error: Exception):
        self.logger.warning(f"词法错误: {path} - {error}", "LEXER")

    def log_format_result(self, path: str, changed: bool, written: bool = False):
        """记录格式化结果"""
        status = "已改写" if written else ("有变化" if changed else "无变化")
        self.logger.info(f"格式化{status}: {path}", "FORMATTER")

    def log_run_summary(self, file_count: int, counts: Dict[str, int], cancelled: int = 0):
        """记录整次运行的汇总"""
        message = (
            f"运行结束 - 文件: {file_count}, error: {counts.get('error', 0)}, "
            f"warning: {counts.get('warning', 0)}, info: {counts.get('info', 0)}"
        )
        if cancelled:
            message += f", 超时取消语句: {cancelled}"
        self.logger.info(message, "ANALYZER")

    def log_error(self, component: str, error_message: str, details: str = ""):
        """记录错误"""
        message = f"{error_message}"
        if details:
            message += f" - {details}"
        self.logger.error(message, component)

    def set_log_level(self, level: LogLevel):
        """设置日志级别"""
        self.logger.set_log_level(level)

    def close(self):
        self.logger.close()
