"""
关键字与数据类型目录模块
"""

from .data_types import DataType, TypeCategory, parse_data_type, type_category
from .keywords import DEFAULT_KEYWORDS, FUNCTION_KEYWORDS, KeywordTable

__all__ = [
    "DataType",
    "TypeCategory",
    "parse_data_type",
    "type_category",
    "KeywordTable",
    "DEFAULT_KEYWORDS",
    "FUNCTION_KEYWORDS",
]
