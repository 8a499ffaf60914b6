"""
数据类型定义：后缀约定检查按类型类别判断列名后缀
"""

from enum import Enum
from typing import Optional


class DataType(Enum):
    """识别的列数据类型"""

    INT = "INT"
    INTEGER = "INTEGER"
    SMALLINT = "SMALLINT"
    BIGINT = "BIGINT"      # 64位整数
    TINYINT = "TINYINT"    # 8位整数
    DECIMAL = "DECIMAL"    # 精确小数
    NUMERIC = "NUMERIC"
    FLOAT = "FLOAT"
    REAL = "REAL"
    DOUBLE = "DOUBLE"
    CHAR = "CHAR"          # 固定长度字符串
    VARCHAR = "VARCHAR"
    TEXT = "TEXT"          # 长文本
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"          # 日期类型
    TIME = "TIME"          # 时间类型
    DATETIME = "DATETIME"  # 日期时间类型
    TIMESTAMP = "TIMESTAMP"


class TypeCategory(Enum):
    NUMERIC = "NUMERIC"
    TEMPORAL = "TEMPORAL"
    TEXT = "TEXT"
    OTHER = "OTHER"


NUMERIC_TYPES = frozenset(
    {
        DataType.INT,
        DataType.INTEGER,
        DataType.SMALLINT,
        DataType.BIGINT,
        DataType.TINYINT,
        DataType.DECIMAL,
        DataType.NUMERIC,
        DataType.FLOAT,
        DataType.REAL,
        DataType.DOUBLE,
    }
)

TEMPORAL_TYPES = frozenset(
    {DataType.DATE, DataType.TIME, DataType.DATETIME, DataType.TIMESTAMP}
)

TEXT_TYPES = frozenset({DataType.CHAR, DataType.VARCHAR, DataType.TEXT})

# 各类别列名可接受的后缀
NUMERIC_SUFFIXES = ("_id", "_num", "_tally", "_total", "_size", "_seq")
TEMPORAL_SUFFIXES = ("_date", "_at", "_time")


def parse_data_type(name: str) -> Optional[DataType]:
    """把类型名（忽略大小写）映射为DataType，未知类型返回None"""
    try:
        return DataType(name.upper())
    except ValueError:
        return None


def type_category(name: str) -> TypeCategory:
    data_type = parse_data_type(name)
    if data_type is None:
        return TypeCategory.OTHER
    if data_type in NUMERIC_TYPES:
        return TypeCategory.NUMERIC
    if data_type in TEMPORAL_TYPES:
        return TypeCategory.TEMPORAL
    if data_type in TEXT_TYPES:
        return TypeCategory.TEXT
    return TypeCategory.OTHER


def is_type_name(name: str) -> bool:
    return parse_data_type(name) is not None
