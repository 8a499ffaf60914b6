"""
语句结构：Statement 由有序的 Clause 组成，子查询作为子 Statement 挂在所属 Clause 下
"""

from typing import Iterator, List, Optional, Tuple, Union

from .lexer import LexError, Token, TokenType


# 子句名称
SELECT = "SELECT"
FROM = "FROM"
WHERE = "WHERE"
HAVING = "HAVING"
INSERT_INTO = "INSERT INTO"
UPDATE = "UPDATE"
CREATE_TABLE = "CREATE TABLE"
UNCLASSIFIED = "UNCLASSIFIED"

JOIN_CLAUSES = frozenset(
    {
        "JOIN",
        "INNER JOIN",
        "LEFT JOIN",
        "LEFT OUTER JOIN",
        "RIGHT JOIN",
        "RIGHT OUTER JOIN",
        "FULL JOIN",
        "FULL OUTER JOIN",
        "CROSS JOIN",
        "NATURAL JOIN",
    }
)

# 按单词序列识别子句起始关键字，较长的形式排在前面
CLAUSE_PATTERNS = sorted(
    [tuple(name.split()) for name in JOIN_CLAUSES]
    + [
        ("CREATE", "TABLE"),
        ("INSERT", "INTO"),
        ("GROUP", "BY"),
        ("ORDER", "BY"),
        ("UNION", "ALL"),
        ("SELECT",),
        ("FROM",),
        ("WHERE",),
        ("HAVING",),
        ("VALUES",),
        ("UPDATE",),
        ("SET",),
        ("DELETE",),
        ("WITH",),
        ("UNION",),
        ("INTERSECT",),
        ("EXCEPT",),
        ("LIMIT",),
        ("OFFSET",),
        ("RETURNING",),
    ],
    key=len,
    reverse=True,
)

# 其中 AND/OR 作为根关键字参与对齐
CONDITION_CLAUSES = frozenset({WHERE, HAVING})


class Clause:
    """子句：以关键字开头的一段 Token（以及子查询）"""

    def __init__(self, name: str, keyword_tokens: Optional[List[Token]] = None):
        self.name = name
        self.keyword_tokens: List[Token] = keyword_tokens or []
        self.items: List[Union[Token, "Statement"]] = []

    def __repr__(self):
        return f"Clause({self.name!r}, items={len(self.items)})"

    @property
    def tokens(self) -> List[Token]:
        """子句自身拥有的Token（不含子查询内部）"""
        return [item for item in self.items if isinstance(item, Token)]

    @property
    def subqueries(self) -> List["Statement"]:
        return [item for item in self.items if isinstance(item, Statement)]

    @property
    def body(self) -> List[Union[Token, "Statement"]]:
        """关键字之后的内容"""
        if not self.keyword_tokens:
            return list(self.items)
        last_keyword = self.keyword_tokens[-1]
        for index, item in enumerate(self.items):
            if item is last_keyword:
                return self.items[index + 1:]
        return list(self.items)

    @property
    def is_join(self) -> bool:
        return self.name in JOIN_CLAUSES

    @property
    def is_root(self) -> bool:
        """是否参与河道（river）对齐"""
        return self.name not in JOIN_CLAUSES and self.name not in (UNCLASSIFIED, CREATE_TABLE)

    def keyword_text(self, case: str = "upper") -> str:
        words = [t.value for t in self.keyword_tokens]
        text = " ".join(words)
        return text.lower() if case == "lower" else text.upper()

    def all_tokens(self) -> Iterator[Token]:
        for item in self.items:
            if isinstance(item, Statement):
                yield from item.all_tokens()
            else:
                yield item

    def condition_operators(self) -> List[Token]:
        """深度0处的 AND/OR（不含 BETWEEN ... AND 中的 AND）"""
        operators = []
        depth = 0
        pending_between = 0
        for item in self.body:
            if isinstance(item, Statement):
                continue
            if item.is_punct("("):
                depth += 1
            elif item.is_punct(")"):
                depth = max(0, depth - 1)
            elif depth == 0 and item.is_keyword("BETWEEN"):
                pending_between += 1
            elif depth == 0 and item.is_keyword("AND") and pending_between:
                pending_between -= 1
            elif depth == 0 and item.is_keyword("AND", "OR"):
                operators.append(item)
        return operators


class Statement:
    """语句：以顶层分号或输入结束为界"""

    def __init__(self, opener: Optional[Token] = None):
        self.clauses: List[Clause] = []
        self.terminator: Optional[Token] = None
        # 子查询的左括号（属于父子句）；顶层语句为None
        self.opener = opener
        self.errors: List[LexError] = []
        self.ambiguous = False

    def __repr__(self):
        names = ", ".join(c.name for c in self.clauses)
        return f"Statement([{names}])"

    @property
    def tokens(self) -> List[Token]:
        result: List[Token] = []
        for clause in self.clauses:
            result.extend(clause.tokens)
        return result

    def all_tokens(self) -> Iterator[Token]:
        """按源码顺序遍历全部Token，包括子查询"""
        for clause in self.clauses:
            yield from clause.all_tokens()

    def walk(self) -> Iterator["Statement"]:
        """先序遍历自身及全部子查询"""
        yield self
        for clause in self.clauses:
            for child in clause.subqueries:
                yield from child.walk()

    @property
    def start(self) -> int:
        for token in self.all_tokens():
            return token.offset
        return 0

    @property
    def end(self) -> int:
        last = None
        for token in self.all_tokens():
            last = token
        return last.end if last is not None else 0

    @property
    def first_token(self) -> Optional[Token]:
        for token in self.all_tokens():
            if not token.is_trivia:
                return token
        return None

    @property
    def is_empty(self) -> bool:
        return self.first_token is None

    @property
    def has_comments(self) -> bool:
        return any(t.type == TokenType.COMMENT for t in self.all_tokens())

    @property
    def analyzable(self) -> bool:
        """有词法错误或分段歧义的语句不参与规则检查与格式化"""
        return not self.errors and not self.ambiguous and not self.is_empty

    @property
    def base_column(self) -> int:
        """语句的起始列（0起）：顶层为0，子查询为左括号之后"""
        if self.opener is None:
            return 0
        return self.opener.column

    def text(self) -> str:
        return "".join(t.value for t in self.all_tokens())

    def find_clauses(self, *names: str) -> List[Clause]:
        return [c for c in self.clauses if c.name in names]

    def root_keywords(self) -> List[Tuple[str, Token, Token]]:
        """参与对齐的根关键字：(规范文本, 首Token, 尾Token)，按出现顺序"""
        result = []
        for clause in self.clauses:
            if clause.is_root and clause.keyword_tokens:
                result.append((clause.keyword_text(), clause.keyword_tokens[0], clause.keyword_tokens[-1]))
            if clause.name in CONDITION_CLAUSES:
                for operator in clause.condition_operators():
                    result.append((operator.value.upper(), operator, operator))
        return result
