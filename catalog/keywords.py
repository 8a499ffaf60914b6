"""
保留字表：大小写检查与标识符冲突检查共用的只读关键字集合
"""

from typing import FrozenSet, Iterable, Iterator


RESERVED_WORDS = (
    # 查询
    "SELECT", "FROM", "WHERE", "GROUP", "BY", "HAVING", "ORDER", "ASC", "DESC",
    "LIMIT", "OFFSET", "FETCH", "DISTINCT", "ALL", "AS", "WITH", "RECURSIVE",
    "UNION", "INTERSECT", "EXCEPT", "RETURNING", "OVER", "PARTITION", "WINDOW",
    "ROWS", "RANGE", "FILTER",
    # 连接
    "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "OUTER", "CROSS", "NATURAL",
    "ON", "USING",
    # 谓词与表达式
    "AND", "OR", "NOT", "NULL", "IS", "IN", "BETWEEN", "LIKE", "ILIKE",
    "ESCAPE", "EXISTS", "ANY", "SOME", "CASE", "WHEN", "THEN", "ELSE", "END",
    "TRUE", "FALSE", "COLLATE",
    # DML
    "INSERT", "INTO", "VALUES", "UPDATE", "SET", "DELETE", "MERGE", "TRUNCATE",
    # DDL
    "CREATE", "ALTER", "DROP", "ADD", "TABLE", "VIEW", "INDEX", "COLUMN",
    "CONSTRAINT", "PRIMARY", "FOREIGN", "KEY", "REFERENCES", "UNIQUE", "CHECK",
    "DEFAULT", "IF", "REPLACE", "TEMPORARY", "CASCADE", "RESTRICT",
    "AUTO_INCREMENT", "IDENTITY", "GENERATED", "TRIGGER", "PROCEDURE",
    "FUNCTION", "RETURNS", "DECLARE", "CURSOR",
    # 事务与权限
    "BEGIN", "COMMIT", "ROLLBACK", "TRANSACTION", "GRANT", "REVOKE", "TO",
    # 数据类型
    "INT", "INTEGER", "SMALLINT", "BIGINT", "TINYINT", "DECIMAL", "NUMERIC",
    "FLOAT", "REAL", "DOUBLE", "PRECISION", "CHAR", "CHARACTER", "VARCHAR",
    "VARYING", "TEXT", "DATE", "TIME", "TIMESTAMP", "DATETIME", "INTERVAL",
    "BOOLEAN", "BLOB", "CLOB", "BINARY", "VARBINARY",
    # 内置函数
    "COUNT", "SUM", "AVG", "MIN", "MAX", "COALESCE", "NULLIF", "CAST",
    "EXTRACT", "SUBSTRING", "TRIM", "UPPER", "LOWER", "CURRENT_DATE",
    "CURRENT_TIME", "CURRENT_TIMESTAMP",
)

# 紧跟左括号时不加空格的关键字（函数调用形式）
FUNCTION_KEYWORDS = frozenset(
    {
        "COUNT", "SUM", "AVG", "MIN", "MAX", "COALESCE", "NULLIF", "CAST",
        "EXTRACT", "SUBSTRING", "TRIM", "UPPER", "LOWER",
    }
)


class KeywordTable:
    """不可变的保留字表，按大写规范形式存储"""

    def __init__(self, words: Iterable[str]):
        self._words: FrozenSet[str] = frozenset(w.upper() for w in words)

    def __contains__(self, word: str) -> bool:
        return word.upper() in self._words

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._words))

    def __len__(self) -> int:
        return len(self._words)

    def is_keyword(self, word: str) -> bool:
        return word.upper() in self._words

    def canonical(self, word: str) -> str:
        """返回关键字的规范（大写）形式"""
        return word.upper()


DEFAULT_KEYWORDS = KeywordTable(RESERVED_WORDS)
