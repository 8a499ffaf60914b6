"""
/tests/test_lexer.py

词法分析器单元测试
"""
import sys
import os

# 将上级目录（项目根目录）添加到 sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from catalog.keywords import KeywordTable
from sql.lexer import SQLLexer, TokenType, UnterminatedComment, UnterminatedLiteral, significant


def _types(sql):
    return [(t.type, t.value) for t in significant(SQLLexer(sql).tokenize())]


def test_keywords_and_identifiers():
    tokens = _types("SELECT id, user_name FROM users_table WHERE id = 1;")
    assert tokens == [
        (TokenType.KEYWORD, "SELECT"),
        (TokenType.IDENTIFIER, "id"),
        (TokenType.PUNCTUATION, ","),
        (TokenType.IDENTIFIER, "user_name"),
        (TokenType.KEYWORD, "FROM"),
        (TokenType.IDENTIFIER, "users_table"),
        (TokenType.KEYWORD, "WHERE"),
        (TokenType.IDENTIFIER, "id"),
        (TokenType.OPERATOR, "="),
        (TokenType.NUMBER, "1"),
        (TokenType.PUNCTUATION, ";"),
    ]


def test_keyword_matching_keeps_raw_casing():
    tokens = _types("select Name from T")
    assert tokens[0] == (TokenType.KEYWORD, "select")
    assert tokens[2] == (TokenType.KEYWORD, "from")
    assert tokens[1] == (TokenType.IDENTIFIER, "Name")


def test_custom_keyword_table():
    table = KeywordTable(["FETCH"])
    tokens = [(t.type, t.value) for t in significant(SQLLexer("fetch select", table).tokenize())]
    assert tokens == [(TokenType.KEYWORD, "fetch"), (TokenType.IDENTIFIER, "select")]


def test_string_and_quoted_identifier_escapes():
    tokens = _types("SELECT 'it''s', \"odd\"\"name\" FROM t")
    assert (TokenType.STRING, "'it''s'") in tokens
    assert (TokenType.QUOTED_IDENTIFIER, '"odd""name"') in tokens


def test_comments_and_trivia():
    sql = "SELECT a -- trailing\n/* block\ncomment */ FROM t"
    tokens = SQLLexer(sql).tokenize()
    comments = [t.value for t in tokens if t.type == TokenType.COMMENT]
    assert comments == ["-- trailing", "/* block\ncomment */"]
    assert any(t.type == TokenType.NEWLINE for t in tokens)


def test_operators_and_numbers():
    tokens = _types("a <= 1.5e3 AND b <> .5 OR c || d != e")
    values = [value for _, value in tokens]
    assert "<=" in values and "<>" in values and "||" in values and "!=" in values
    assert (TokenType.NUMBER, "1.5e3") in tokens
    assert (TokenType.NUMBER, ".5") in tokens


def test_round_trip_reproduces_input():
    samples = [
        "SELECT a, b FROM t WHERE a = 'x';\r\nSELECT 2;",
        "  -- only a comment\n",
        "CREATE TABLE \"Weird\" (a INT /* c */, b VARCHAR(10));",
        "SELECT 'unterminated FROM t; SELECT 1;",
        "SELECT @var, ?, $1 FROM t",
        "",
    ]
    for sql in samples:
        tokens = SQLLexer(sql).tokenize()
        assert "".join(t.value for t in tokens) == sql


def test_line_and_column_positions():
    tokens = significant(SQLLexer("SELECT a\n  FROM t").tokenize())
    from_token = tokens[2]
    assert (from_token.line, from_token.column, from_token.offset) == (2, 3, 11)
    assert from_token.end == 15


def test_crlf_is_single_newline():
    tokens = SQLLexer("a\r\nb").tokenize()
    assert [t.type for t in tokens] == [TokenType.IDENTIFIER, TokenType.NEWLINE, TokenType.IDENTIFIER]
    assert tokens[2].line == 2 and tokens[2].column == 1


def test_unterminated_literal_recovers_at_semicolon():
    lexer = SQLLexer("SELECT 'abc FROM t; SELECT 1;")
    tokens = lexer.tokenize()
    assert len(lexer.errors) == 1
    error = lexer.errors[0]
    assert isinstance(error, UnterminatedLiteral)
    assert (error.line, error.column, error.offset) == (1, 8, 7)

    invalid = [t for t in tokens if t.type == TokenType.INVALID]
    assert [t.value for t in invalid] == ["'abc FROM t"]
    # 恢复之后继续正常分词
    assert [t.value for t in significant(tokens)][-4:] == [";", "SELECT", "1", ";"]


def test_unterminated_block_comment():
    lexer = SQLLexer("SELECT 1 /* never closed")
    tokens = lexer.tokenize()
    assert isinstance(lexer.errors[0], UnterminatedComment)
    assert tokens[-1].type == TokenType.INVALID
    assert tokens[-1].value == "/* never closed"


def test_iter_tokens_is_restartable():
    lexer = SQLLexer("SELECT 'x")
    first = list(lexer.iter_tokens())
    second = list(lexer.iter_tokens())
    assert first == second
    assert len(lexer.errors) == 1


def test_unknown_characters():
    tokens = _types("SELECT @x")
    assert tokens[1] == (TokenType.UNKNOWN, "@")
    assert tokens[2] == (TokenType.IDENTIFIER, "x")
