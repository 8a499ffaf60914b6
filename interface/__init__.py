"""
用户接口层模块
"""

from .analyzer import StyleAnalyzer, NoInputError, FormatOutcome
from .shell import interactive_style_shell
from .formatter import format_report, format_rule_table, render_report

__all__ = [
    "StyleAnalyzer",
    "NoInputError",
    "FormatOutcome",
    "interactive_style_shell",
    "format_report",
    "format_rule_table",
    "render_report",
]
