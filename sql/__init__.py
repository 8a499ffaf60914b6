"""
SQL处理层模块
"""

from .lexer import SQLLexer, Token, TokenType, LexError, UnterminatedLiteral, UnterminatedComment
from .structure import Clause, Statement
from .segmenter import StatementSegmenter, SegmentationAmbiguity, segment, split_sql
from .diagnostics import DiagnosticReport, RuleViolation, Severity
from .style_config import ConfigError, StyleConfig, config_from_dict, load_config
from .rules import RuleEngine, get_rules, list_rule_ids
from .formatter import SQLFormatter, format_sql

__all__ = [
    "SQLLexer",
    "Token",
    "TokenType",
    "LexError",
    "UnterminatedLiteral",
    "UnterminatedComment",
    "Clause",
    "Statement",
    "StatementSegmenter",
    "SegmentationAmbiguity",
    "segment",
    "split_sql",
    "DiagnosticReport",
    "RuleViolation",
    "Severity",
    "ConfigError",
    "StyleConfig",
    "config_from_dict",
    "load_config",
    "RuleEngine",
    "get_rules",
    "list_rule_ids",
    "SQLFormatter",
    "format_sql",
]
