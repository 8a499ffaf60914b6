"""
SQL词法分析器

与执行型词法分析不同，这里保留所有字符（空白、换行、注释）作为Token，
拼接全部Token的原文即可还原输入文本。
"""

from enum import Enum
from typing import Iterator, List, NamedTuple, Optional

from catalog.keywords import DEFAULT_KEYWORDS, KeywordTable


class TokenType(Enum):
    KEYWORD = "KEYWORD"
    IDENTIFIER = "IDENTIFIER"
    QUOTED_IDENTIFIER = "QUOTED_IDENTIFIER"
    STRING = "STRING"
    NUMBER = "NUMBER"
    OPERATOR = "OPERATOR"
    PUNCTUATION = "PUNCTUATION"
    COMMENT = "COMMENT"
    WHITESPACE = "WHITESPACE"
    NEWLINE = "NEWLINE"

    # 词法错误后跳过的片段，直到下一个分号
    INVALID = "INVALID"
    # 无法归类的单个字符（如 @ # ?）
    UNKNOWN = "UNKNOWN"


TRIVIA_TYPES = frozenset({TokenType.WHITESPACE, TokenType.NEWLINE, TokenType.COMMENT})
IDENTIFIER_TYPES = frozenset({TokenType.IDENTIFIER, TokenType.QUOTED_IDENTIFIER})

TWO_CHAR_OPERATORS = ("<=", ">=", "<>", "!=", "||", "::")
SINGLE_CHAR_OPERATORS = "=<>+-*/%!~^&|"
PUNCTUATION_CHARS = "(),;."


class Token(NamedTuple):
    type: TokenType
    value: str
    line: int
    column: int
    offset: int

    @property
    def end(self) -> int:
        return self.offset + len(self.value)

    @property
    def upper(self) -> str:
        return self.value.upper()

    @property
    def is_trivia(self) -> bool:
        return self.type in TRIVIA_TYPES

    def is_keyword(self, *words: str) -> bool:
        if self.type != TokenType.KEYWORD:
            return False
        return not words or self.value.upper() in words

    def is_punct(self, char: str) -> bool:
        return self.type == TokenType.PUNCTUATION and self.value == char


class LexError(Exception):
    """词法错误：可恢复，在下一个语句边界重新同步"""

    error_type = "LexError"

    def __init__(self, reason: str, line: Optional[int] = None, column: Optional[int] = None,
                 offset: Optional[int] = None):
        self.reason = reason
        self.line = line
        self.column = column
        self.offset = offset
        position = f"行{line},列{column}" if line is not None and column is not None else "未知位置"
        super().__init__(f"{self.error_type}: {reason} ({position})")


class UnterminatedLiteral(LexError):
    error_type = "UnterminatedLiteral"


class UnterminatedComment(LexError):
    error_type = "UnterminatedComment"


class SQLLexer:
    """SQL词法分析器"""

    def __init__(self, sql: str, keywords: KeywordTable = DEFAULT_KEYWORDS):
        self.sql = sql
        self.keywords = keywords
        self.position = 0
        self.line = 1
        self.column = 1
        self.errors: List[LexError] = []

    def tokenize(self) -> List[Token]:
        """将SQL文本分解为Token列表"""
        return list(self.iter_tokens())

    def iter_tokens(self) -> Iterator[Token]:
        """惰性产生Token；每次调用都从头重新扫描"""
        self.position = 0
        self.line = 1
        self.column = 1
        self.errors = []

        while self.position < len(self.sql):
            char = self.sql[self.position]
            two = self.sql[self.position:self.position + 2]

            if char in "\r\n":
                yield self._read_newline()
            elif char.isspace():
                yield self._read_whitespace()
            elif two == "--":
                yield self._read_line_comment()
            elif two == "/*":
                yield self._read_block_comment()
            elif char == "'":
                yield self._read_quoted(char, TokenType.STRING)
            elif char == '"':
                yield self._read_quoted(char, TokenType.QUOTED_IDENTIFIER)
            elif char.isalpha() or char == "_":
                yield self._read_identifier_or_keyword()
            elif char.isdigit() or (char == "." and self._lookahead_is_digit()):
                yield self._read_number()
            elif two in TWO_CHAR_OPERATORS:
                yield self._make_token(TokenType.OPERATOR, self.position + 2)
            elif char in SINGLE_CHAR_OPERATORS:
                yield self._make_token(TokenType.OPERATOR, self.position + 1)
            elif char in PUNCTUATION_CHARS:
                yield self._make_token(TokenType.PUNCTUATION, self.position + 1)
            else:
                yield self._make_token(TokenType.UNKNOWN, self.position + 1)

    def _make_token(self, token_type: TokenType, end: int) -> Token:
        """生成 [position, end) 区间的Token并推进行列号"""
        value = self.sql[self.position:end]
        token = Token(token_type, value, self.line, self.column, self.position)
        for char_index, char in enumerate(value):
            if char == "\n" or (char == "\r" and value[char_index + 1:char_index + 2] != "\n"):
                self.line += 1
                self.column = 1
            elif char != "\r":
                self.column += 1
        self.position = end
        return token

    def _lookahead_is_digit(self) -> bool:
        return (self.position + 1 < len(self.sql)) and self.sql[self.position + 1].isdigit()

    def _read_newline(self) -> Token:
        end = self.position + 1
        if self.sql[self.position] == "\r" and self.sql[end:end + 1] == "\n":
            end += 1
        return self._make_token(TokenType.NEWLINE, end)

    def _read_whitespace(self) -> Token:
        end = self.position
        while end < len(self.sql) and self.sql[end].isspace() and self.sql[end] not in "\r\n":
            end += 1
        return self._make_token(TokenType.WHITESPACE, end)

    def _read_line_comment(self) -> Token:
        """-- 注释到行尾（不含换行符）"""
        end = self.position
        while end < len(self.sql) and self.sql[end] not in "\r\n":
            end += 1
        return self._make_token(TokenType.COMMENT, end)

    def _read_block_comment(self) -> Token:
        close = self.sql.find("*/", self.position + 2)
        if close == -1:
            error = UnterminatedComment("块注释缺少结束标记 */", self.line, self.column, self.position)
            return self._recover(error)
        return self._make_token(TokenType.COMMENT, close + 2)

    def _read_quoted(self, quote_char: str, token_type: TokenType) -> Token:
        """读取引号包围的字面量，成对的引号表示转义"""
        end = self.position + 1
        while end < len(self.sql):
            if self.sql[end] == quote_char:
                if self.sql[end + 1:end + 2] == quote_char:
                    end += 2
                    continue
                return self._make_token(token_type, end + 1)
            end += 1

        kind = "字符串" if token_type == TokenType.STRING else "带引号的标识符"
        error = UnterminatedLiteral(f"未闭合的{kind}", self.line, self.column, self.position)
        return self._recover(error)

    def _recover(self, error: LexError) -> Token:
        """记录错误，并把到下一个分号（或输入结束）为止的文本作为INVALID Token"""
        self.errors.append(error)
        semicolon = self.sql.find(";", self.position + 1)
        end = semicolon if semicolon != -1 else len(self.sql)
        return self._make_token(TokenType.INVALID, end)

    def _read_identifier_or_keyword(self) -> Token:
        """读取标识符或关键字"""
        end = self.position
        while end < len(self.sql) and (
            self.sql[end].isalnum() or self.sql[end] in "_$"
        ):
            end += 1

        value = self.sql[self.position:end]
        token_type = TokenType.KEYWORD if self.keywords.is_keyword(value) else TokenType.IDENTIFIER
        return self._make_token(token_type, end)

    def _read_number(self) -> Token:
        """读取数字（整数、小数或科学计数法）"""
        end = self.position
        has_dot = False
        while end < len(self.sql):
            char = self.sql[end]
            if char.isdigit():
                end += 1
            elif char == "." and not has_dot:
                has_dot = True
                end += 1
            else:
                break

        # 指数部分：e10 / E-3
        if end < len(self.sql) and self.sql[end] in "eE":
            exponent = end + 1
            if exponent < len(self.sql) and self.sql[exponent] in "+-":
                exponent += 1
            if exponent < len(self.sql) and self.sql[exponent].isdigit():
                end = exponent
                while end < len(self.sql) and self.sql[end].isdigit():
                    end += 1

        return self._make_token(TokenType.NUMBER, end)


def significant(tokens: List[Token]) -> List[Token]:
    """过滤掉空白、换行和注释"""
    return [t for t in tokens if not t.is_trivia]
