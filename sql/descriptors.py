"""
标识符描述：在不修改Token的前提下，为语句中的标识符标注种类（表、列、别名、约束、过程），
并提取表引用、SELECT别名以及 CREATE TABLE 的列定义。
"""

from enum import Enum
from typing import List, NamedTuple, Optional, Union

from .lexer import IDENTIFIER_TYPES, Token, TokenType
from .structure import CREATE_TABLE, FROM, INSERT_INTO, JOIN_CLAUSES, SELECT, UPDATE, Clause, Statement

Item = Union[Token, Statement]

TABLE_CLAUSES = frozenset({FROM, UPDATE, INSERT_INTO, CREATE_TABLE}) | JOIN_CLAUSES

# 列定义中类型之后、约束开始的关键字
COLUMN_CONSTRAINT_KEYWORDS = frozenset(
    {
        "NOT", "NULL", "DEFAULT", "PRIMARY", "UNIQUE", "CHECK", "REFERENCES",
        "CONSTRAINT", "AUTO_INCREMENT", "IDENTITY", "GENERATED", "COLLATE",
    }
)

# 表级约束的起始关键字
TABLE_CONSTRAINT_KEYWORDS = frozenset(
    {"CONSTRAINT", "PRIMARY", "FOREIGN", "UNIQUE", "CHECK", "KEY", "INDEX"}
)


class IdentifierKind(Enum):
    TABLE = "table"
    COLUMN = "column"
    ALIAS = "alias"
    CONSTRAINT = "constraint"
    PROCEDURE = "procedure"


class Identifier(NamedTuple):
    name: str
    kind: IdentifierKind
    token: Token

    @property
    def byte_length(self) -> int:
        return len(self.name.encode("utf-8"))


def identifier_name(token: Token) -> str:
    """去掉双引号并还原成对的转义引号"""
    if token.type == TokenType.QUOTED_IDENTIFIER:
        return token.value[1:-1].replace('""', '"')
    return token.value


def is_identifier(item: Item) -> bool:
    return isinstance(item, Token) and item.type in IDENTIFIER_TYPES


def significant_items(items: List[Item]) -> List[Item]:
    return [item for item in items if not (isinstance(item, Token) and item.is_trivia)]


def split_top_level(items: List[Item], separator: str = ",") -> List[List[Item]]:
    """按深度0的分隔符切分；分隔符本身不包含在结果中"""
    parts: List[List[Item]] = [[]]
    depth = 0
    for item in items:
        if isinstance(item, Token):
            if item.is_punct("("):
                depth += 1
            elif item.is_punct(")"):
                depth = max(0, depth - 1)
            elif depth == 0 and item.is_punct(separator):
                parts.append([])
                continue
        parts[-1].append(item)
    return parts


def _is_punct(item: Optional[Item], char: str) -> bool:
    return isinstance(item, Token) and item.is_punct(char)


def _is_keyword(item: Optional[Item], *words: str) -> bool:
    return isinstance(item, Token) and item.is_keyword(*words)


class AliasedItem(NamedTuple):
    """带别名的对象：FROM/JOIN 中的表引用，或 SELECT 列表中的表达式"""

    clause: Clause
    base: List[Item]
    alias: Optional[Token]
    as_token: Optional[Token]

    @property
    def name_token(self) -> Optional[Token]:
        """被引用对象的名称（schema.table 取最后一段）；子查询或表达式为None"""
        if not self.base or any(isinstance(item, Statement) for item in self.base):
            return None
        for index, item in enumerate(self.base):
            if index % 2 == 0 and not is_identifier(item):
                return None
            if index % 2 == 1 and not _is_punct(item, "."):
                return None
        return self.base[-1] if len(self.base) % 2 == 1 else None

    @property
    def is_bare_alias(self) -> bool:
        return self.alias is not None and self.as_token is None


def _split_alias(clause: Clause, segment: List[Item]) -> Optional[AliasedItem]:
    sig = significant_items(segment)
    # 语句结束的分号归在最后一个子句中
    if sig and _is_punct(sig[-1], ";"):
        sig = sig[:-1]
    if not sig:
        return None
    last = sig[-1]
    if len(sig) >= 2 and is_identifier(last):
        prev = sig[-2]
        if _is_keyword(prev, "AS"):
            return AliasedItem(clause, sig[:-2], last, prev)
        if (
            is_identifier(prev)
            or isinstance(prev, Statement)
            or _is_punct(prev, ")")
            or (isinstance(prev, Token) and prev.type in (TokenType.NUMBER, TokenType.STRING))
            or _is_keyword(prev, "END")
        ):
            return AliasedItem(clause, sig[:-1], last, None)
    return AliasedItem(clause, sig, None, None)


def table_references(statement: Statement) -> List[AliasedItem]:
    """FROM 与 JOIN 子句中的表引用"""
    references = []
    for clause in statement.clauses:
        if clause.name == FROM:
            segments = split_top_level(clause.body)
        elif clause.is_join:
            body = clause.body
            for index, item in enumerate(body):
                if _is_keyword(item, "ON", "USING"):
                    body = body[:index]
                    break
            segments = [body]
        else:
            continue
        for segment in segments:
            reference = _split_alias(clause, segment)
            if reference is not None:
                references.append(reference)
    return references


def select_items(statement: Statement) -> List[AliasedItem]:
    """SELECT 列表中的各个表达式及其别名"""
    result = []
    for clause in statement.find_clauses(SELECT):
        body = significant_items(clause.body)
        while body and _is_keyword(body[0], "DISTINCT", "ALL"):
            body = body[1:]
        for segment in split_top_level(body):
            item = _split_alias(clause, segment)
            if item is not None:
                result.append(item)
    return result


class TableElement(NamedTuple):
    """CREATE TABLE 括号内的一个元素（列定义或表级约束）"""

    items: List[Item]
    kind: str  # "column" / "primary_key" / "constraint"
    name_token: Optional[Token]
    type_items: List[Item]
    referenced_columns: List[str]

    @property
    def significant(self) -> List[Item]:
        return significant_items(self.items)

    @property
    def type_name(self) -> Optional[str]:
        for item in self.type_items:
            if isinstance(item, Token) and not item.is_trivia:
                return item.value
        return None


class TableDefinition(NamedTuple):
    clause: Clause
    table_token: Optional[Token]
    prefix: List[Item]
    open_paren: Token
    elements: List[TableElement]
    close_paren: Optional[Token]
    suffix: List[Item]

    @property
    def columns(self) -> List[TableElement]:
        return [e for e in self.elements if e.kind == "column"]


def _classify_element(items: List[Item]) -> TableElement:
    sig = significant_items(items)
    first = sig[0] if sig else None
    if first is None:
        return TableElement(items, "constraint", None, [], [])

    if _is_keyword(first, *TABLE_CONSTRAINT_KEYWORDS):
        kind = "constraint"
        for index, item in enumerate(sig):
            if _is_keyword(item, "PRIMARY") and _is_keyword(sig[index + 1] if index + 1 < len(sig) else None, "KEY"):
                kind = "primary_key"
                break
            if _is_keyword(item, "FOREIGN", "UNIQUE", "CHECK"):
                break
        return TableElement(items, kind, None, [], _referenced_names(sig))

    # 列定义：名称 + 类型 + 约束
    type_items: List[Item] = []
    depth = 0
    for item in sig[1:]:
        if isinstance(item, Token):
            if item.is_punct("("):
                depth += 1
            elif item.is_punct(")"):
                depth -= 1
            elif depth == 0 and item.is_keyword(*COLUMN_CONSTRAINT_KEYWORDS):
                break
        type_items.append(item)
    name_token = first if isinstance(first, Token) else None
    return TableElement(items, "column", name_token, type_items, [])


def _referenced_names(sig: List[Item]) -> List[str]:
    """约束中出现的标识符（跳过约束名与 REFERENCES 之后的内容）"""
    names: List[str] = []
    skip_next = False
    for item in sig:
        if _is_keyword(item, "REFERENCES"):
            break
        if _is_keyword(item, "CONSTRAINT"):
            skip_next = True
            continue
        if is_identifier(item):
            if skip_next:
                skip_next = False
                continue
            name = identifier_name(item).lower()
            if name not in names:
                names.append(name)
        skip_next = False
    return names


def parse_create_table(statement: Statement) -> Optional[TableDefinition]:
    """解析 CREATE TABLE 子句的列表；没有括号列表（如 CREATE TABLE ... AS）时返回None"""
    clauses = statement.find_clauses(CREATE_TABLE)
    if not clauses:
        return None
    clause = clauses[0]
    body = clause.body

    open_index = None
    for index, item in enumerate(body):
        if _is_punct(item, "("):
            open_index = index
            break
    if open_index is None:
        return None

    depth = 0
    close_index = None
    for index in range(open_index, len(body)):
        item = body[index]
        if _is_punct(item, "("):
            depth += 1
        elif _is_punct(item, ")"):
            depth -= 1
            if depth == 0:
                close_index = index
                break

    prefix = body[:open_index]
    table_token = None
    for item in prefix:
        if is_identifier(item):
            table_token = item

    inner = body[open_index + 1:close_index] if close_index is not None else body[open_index + 1:]
    elements = [_classify_element(part) for part in split_top_level(inner)]
    elements = [e for e in elements if e.significant or e.items]

    column_names = {
        identifier_name(e.name_token).lower() for e in elements if e.kind == "column" and e.name_token
    }
    elements = [
        e._replace(referenced_columns=[n for n in e.referenced_columns if n in column_names])
        for e in elements
    ]

    return TableDefinition(
        clause=clause,
        table_token=table_token,
        prefix=prefix,
        open_paren=body[open_index],
        elements=elements,
        close_paren=body[close_index] if close_index is not None else None,
        suffix=body[close_index + 1:] if close_index is not None else [],
    )


def describe_identifiers(statement: Statement) -> List[Identifier]:
    """为语句（不含子查询）中的每个标识符Token标注种类"""
    aliases = {id(item.alias) for item in table_references(statement) + select_items(statement) if item.alias}
    tables = {
        id(item.name_token) for item in table_references(statement) if item.name_token is not None
    }
    definition = parse_create_table(statement)
    if definition is not None:
        if definition.table_token is not None:
            tables.add(id(definition.table_token))

    result: List[Identifier] = []
    previous: Optional[Token] = None
    for clause in statement.clauses:
        for item in clause.items:
            if isinstance(item, Statement):
                previous = None
                continue
            if item.is_trivia:
                continue
            if is_identifier(item):
                result.append(Identifier(identifier_name(item), _kind_of(item, previous, clause, aliases, tables), item))
            previous = item
    return result


def _kind_of(token: Token, previous: Optional[Token], clause: Clause, aliases, tables) -> IdentifierKind:
    if id(token) in aliases:
        return IdentifierKind.ALIAS
    if id(token) in tables:
        return IdentifierKind.TABLE
    if previous is not None:
        if previous.is_keyword("CONSTRAINT"):
            return IdentifierKind.CONSTRAINT
        if previous.is_keyword("PROCEDURE", "FUNCTION", "TRIGGER"):
            return IdentifierKind.PROCEDURE
        if previous.is_keyword("REFERENCES"):
            return IdentifierKind.TABLE
    if clause.name in TABLE_CLAUSES and previous is not None and previous is clause.keyword_tokens[-1]:
        return IdentifierKind.TABLE
    return IdentifierKind.COLUMN
