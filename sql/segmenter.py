"""
语句分段器：把Token序列按顶层分号划分为语句，并在语句内部识别子句

字符串、带引号的标识符和注释在词法阶段已是完整Token，因此在Token层面只需跟踪括号深度；
split_sql() 则在原始文本上用显式状态机完成同样的边界判断（供交互式Shell判断输入是否完整）。
"""

from enum import Enum
from typing import List, Optional, Tuple

from .lexer import LexError, Token, TokenType
from .structure import CLAUSE_PATTERNS, UNCLASSIFIED, Clause, Statement


class SegmentationAmbiguity(Exception):
    """输入结束时括号未闭合"""

    def __init__(self, reason: str, line: Optional[int] = None, column: Optional[int] = None,
                 offset: Optional[int] = None):
        self.reason = reason
        self.line = line
        self.column = column
        self.offset = offset
        super().__init__(reason)


SUBQUERY_STARTERS = ("SELECT", "WITH")


class StatementSegmenter:
    """语句分段器"""

    def __init__(self, tokens: List[Token], errors: Optional[List[LexError]] = None):
        self.tokens = tokens
        self.lex_errors = list(errors or [])
        self.ambiguities: List[SegmentationAmbiguity] = []

    def segment(self) -> List[Statement]:
        statements: List[Statement] = []
        position = 0
        while position < len(self.tokens):
            if self._only_whitespace_from(position) and statements:
                # 末尾的纯空白归入上一条语句
                statements[-1].clauses[-1].items.extend(self.tokens[position:])
                break
            statement, position = self._read_statement(position, opener=None)
            statements.append(statement)

        self._attach_lex_errors(statements)
        return statements

    def _only_whitespace_from(self, position: int) -> bool:
        return all(
            t.type in (TokenType.WHITESPACE, TokenType.NEWLINE) for t in self.tokens[position:]
        )

    def _read_statement(self, position: int, opener: Optional[Token]) -> Tuple[Statement, int]:
        """读取一条语句；opener不为None时读取子查询，遇到匹配的右括号即停止（不消耗）"""
        statement = Statement(opener=opener)
        nested = opener is not None
        clause: Optional[Clause] = None
        leading: List[Token] = []
        depth = 0
        unbalanced = False

        def current() -> Clause:
            nonlocal clause
            if clause is None:
                clause = Clause(UNCLASSIFIED)
                clause.items.extend(leading)
                leading.clear()
                statement.clauses.append(clause)
            return clause

        while position < len(self.tokens):
            token = self.tokens[position]

            resync = token.is_punct(";") and self._follows_invalid(position)

            if nested and (resync or (depth == 0 and token.is_punct(")"))):
                return statement, position

            if (depth == 0 or resync) and token.is_punct(";") and not nested:
                current().items.append(token)
                statement.terminator = token
                return statement, position + 1

            if clause is None and token.is_trivia:
                leading.append(token)
                position += 1
                continue

            if token.is_punct("("):
                if self._next_significant_is(position + 1, SUBQUERY_STARTERS):
                    current().items.append(token)
                    child, position = self._read_statement(position + 1, opener=token)
                    clause.items.append(child)
                    if child.ambiguous:
                        unbalanced = True
                    if position < len(self.tokens) and self.tokens[position].is_punct(")"):
                        clause.items.append(self.tokens[position])
                        position += 1
                    continue
                depth += 1
            elif token.is_punct(")"):
                depth = max(0, depth - 1)
            elif depth == 0 and token.type == TokenType.KEYWORD:
                matched = self._match_clause(position)
                if matched is not None:
                    name, end = matched
                    keyword_tokens = [t for t in self.tokens[position:end] if not t.is_trivia]
                    clause = Clause(name, keyword_tokens)
                    clause.items.extend(leading)
                    leading.clear()
                    clause.items.extend(self.tokens[position:end])
                    statement.clauses.append(clause)
                    position = end
                    continue

            current().items.append(token)
            position += 1

        if leading:
            current()
        if depth > 0 or nested or unbalanced:
            statement.ambiguous = True
            if not nested:
                self._report_ambiguity(statement)
        return statement, position

    def _follows_invalid(self, position: int) -> bool:
        """词法错误恢复产生的INVALID Token止于分号，该分号总是结束当前语句"""
        return position > 0 and self.tokens[position - 1].type == TokenType.INVALID

    def _next_significant_is(self, position: int, words: Tuple[str, ...]) -> bool:
        while position < len(self.tokens) and self.tokens[position].is_trivia:
            position += 1
        return position < len(self.tokens) and self.tokens[position].is_keyword(*words)

    def _match_clause(self, position: int) -> Optional[Tuple[str, int]]:
        """尝试在position处匹配子句关键字，返回(子句名, 结束位置)"""
        for pattern in CLAUSE_PATTERNS:
            cursor = position
            matched = True
            for index, word in enumerate(pattern):
                if index > 0:
                    while cursor < len(self.tokens) and self.tokens[cursor].type in (
                        TokenType.WHITESPACE,
                        TokenType.NEWLINE,
                    ):
                        cursor += 1
                if cursor >= len(self.tokens) or not self.tokens[cursor].is_keyword(word):
                    matched = False
                    break
                cursor += 1
            if matched:
                return " ".join(pattern), cursor
        return None

    def _report_ambiguity(self, statement: Statement):
        first = statement.first_token
        line = first.line if first else None
        column = first.column if first else None
        offset = first.offset if first else None
        self.ambiguities.append(
            SegmentationAmbiguity("输入结束时括号未闭合，其后内容不参与检查与格式化", line, column, offset)
        )

    def _attach_lex_errors(self, statements: List[Statement]):
        for error in self.lex_errors:
            for statement in statements:
                if statement.start <= (error.offset or 0) < max(statement.end, statement.start + 1):
                    statement.errors.append(error)
                    break


def segment(tokens: List[Token], errors: Optional[List[LexError]] = None) -> List[Statement]:
    return StatementSegmenter(tokens, errors).segment()


class ScanState(Enum):
    NORMAL = "NORMAL"
    IN_SINGLE_QUOTE = "IN_SINGLE_QUOTE"
    IN_DOUBLE_QUOTE = "IN_DOUBLE_QUOTE"
    IN_LINE_COMMENT = "IN_LINE_COMMENT"
    IN_BLOCK_COMMENT = "IN_BLOCK_COMMENT"


def split_sql(text: str) -> Tuple[List[str], str]:
    """按顶层分号切分原始文本

    返回 (已完整结束的语句列表, 尚未结束的剩余文本)。
    分号只有在 NORMAL 状态且括号深度为0时才结束语句。
    """
    statements: List[str] = []
    state = ScanState.NORMAL
    depth = 0
    start = 0
    index = 0

    while index < len(text):
        char = text[index]
        pair = text[index:index + 2]

        if state == ScanState.NORMAL:
            if char == "'":
                state = ScanState.IN_SINGLE_QUOTE
            elif char == '"':
                state = ScanState.IN_DOUBLE_QUOTE
            elif pair == "--":
                state = ScanState.IN_LINE_COMMENT
                index += 1
            elif pair == "/*":
                state = ScanState.IN_BLOCK_COMMENT
                index += 1
            elif char == "(":
                depth += 1
            elif char == ")":
                depth = max(0, depth - 1)
            elif char == ";" and depth == 0:
                statements.append(text[start:index + 1])
                start = index + 1
        elif state == ScanState.IN_SINGLE_QUOTE:
            if char == "'":
                if text[index + 1:index + 2] == "'":
                    index += 1
                else:
                    state = ScanState.NORMAL
        elif state == ScanState.IN_DOUBLE_QUOTE:
            if char == '"':
                if text[index + 1:index + 2] == '"':
                    index += 1
                else:
                    state = ScanState.NORMAL
        elif state == ScanState.IN_LINE_COMMENT:
            if char in "\r\n":
                state = ScanState.NORMAL
        elif state == ScanState.IN_BLOCK_COMMENT:
            if pair == "*/":
                state = ScanState.NORMAL
                index += 1
        index += 1

    return statements, text[start:]
