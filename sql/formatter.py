"""
SQL格式化器

把分段后的语句树改写为规范文本：
- 根关键字右对齐到同一列（河道），子句内容从河道右侧一列开始；
- 顶层 AND/OR 之前换行，顶层逗号之后换行；行注释之后的逗号移到注释之前；
- JOIN 放在河道右侧，ON 另起一行；
- 子查询以左括号之后的列为基准递归排版，多行时右括号独占一行并与左括号对齐；
- CREATE TABLE 使用固定缩进，主键约束在前，单列约束放在所属列的下方；
- 注释全部保留，行注释之后强制换行。

格式化只依赖Token序列与语句结构，不读取原文中的空白，因此对自身输出是幂等的。
有词法错误或分段歧义的语句按原文输出。
"""

from typing import Dict, List, Optional

from catalog.data_types import is_type_name
from catalog.keywords import DEFAULT_KEYWORDS, FUNCTION_KEYWORDS, KeywordTable

from .descriptors import TableDefinition, TableElement, identifier_name, parse_create_table
from .lexer import IDENTIFIER_TYPES, SQLLexer, Token, TokenType
from .segmenter import segment
from .structure import CONDITION_CLAUSES, CREATE_TABLE, UNCLASSIFIED, Clause, Statement
from .style_config import StyleConfig

# 这些关键字之后的标识符是对象名，其后的括号前保留空格：INSERT INTO t (a, b)
NAME_CONTEXT_KEYWORDS = frozenset({"INTO", "REFERENCES", "TABLE"})

# 位于这些关键字之后的 +/- 是二元运算符
VALUE_KEYWORDS = frozenset(
    {"END", "NULL", "TRUE", "FALSE", "CURRENT_DATE", "CURRENT_TIME", "CURRENT_TIMESTAMP"}
)

# 拼接两个Token时不能产生注释标记
_COMMENT_MARKERS = ("--", "/*", "*/")


def _joins_into_number(previous: Token, token: Token) -> bool:
    """紧邻输出后会被重新切分成数字字面量，如 t. 5 写成 t.5 会得到 .5"""
    if previous.is_punct(".") and token.type == TokenType.NUMBER:
        return True
    return (
        token.is_punct(".")
        and previous.type == TokenType.NUMBER
        and not any(char in previous.value for char in ".eE")
    )


def _hoist_commas(items):
    """行注释之后的逗号移到注释之前，避免逗号独占一行"""
    result = []
    for item in items:
        if isinstance(item, Token) and item.is_punct(","):
            index = len(result)
            while index > 0 and isinstance(result[index - 1], Token) and result[index - 1].is_trivia:
                index -= 1
            if any(
                t.type == TokenType.COMMENT and t.value.startswith("--") for t in result[index:]
            ):
                result.insert(index, item)
                continue
        result.append(item)
    return result


class _Writer:
    """按行累积输出，记录当前列与待处理的换行"""

    def __init__(self):
        self.lines: List[str] = [""]
        # 行尾位于多行字面量/注释内部的行，不能去掉行尾空白
        self.protected = set()
        self.pending: Optional[int] = None
        self.last: Optional[Token] = None
        self.unary = False
        self.name_context = False
        self.index_context = False

    @property
    def column(self) -> int:
        return len(self.lines[-1])

    @property
    def line_blank(self) -> bool:
        return not self.lines[-1].strip()

    def write(self, text: str):
        parts = text.split("\n")
        self.lines[-1] += parts[0]
        for part in parts[1:]:
            self.protected.add(len(self.lines) - 1)
            self.lines.append(part)

    def break_line(self, column: int):
        """换到新行的指定列；当前行为空白时直接复用"""
        if self.line_blank:
            self.lines[-1] = " " * column
        else:
            self.lines.append(" " * column)
        self.pending = None

    def pad_to(self, column: int):
        if self.column < column:
            self.write(" " * (column - self.column))

    def put(self, text: str, space: bool):
        if self.pending is not None:
            self.break_line(self.pending)
        elif not self.line_blank:
            tail = self.lines[-1][-1:]
            if space and tail != " ":
                self.write(" ")
            elif tail + text[:1] in _COMMENT_MARKERS:
                self.write(" ")
        self.write(text)

    def text(self) -> str:
        lines = [
            line if index in self.protected else line.rstrip()
            for index, line in enumerate(self.lines)
        ]
        while lines and not lines[0].strip():
            lines.pop(0)
        while lines and not lines[-1].strip():
            lines.pop()
        return "\n".join(lines)


class _Layout:
    """单条语句（或子查询）的排版参数"""

    def __init__(self, statement: Statement, base: int):
        self.statement = statement
        self.base = base
        keywords = statement.root_keywords()
        longest = max((len(text) for text, _, _ in keywords), default=0)
        self.river = base + longest
        self.body = self.river + 1
        self.started = False


class SQLFormatter:
    """SQL格式化器"""

    def __init__(self, config: Optional[StyleConfig] = None, keywords: KeywordTable = DEFAULT_KEYWORDS):
        self.config = config or StyleConfig()
        self.keywords = keywords

    def format(self, sql: str) -> str:
        """格式化整段SQL文本"""
        lexer = SQLLexer(sql, self.keywords)
        tokens = lexer.tokenize()
        statements = segment(tokens, lexer.errors)
        return self.format_statements(statements)

    def format_statements(self, statements: List[Statement]) -> str:
        return self.join([self.format_statement(statement) for statement in statements])

    def join(self, pieces: List[str]) -> str:
        """语句之间空一行，结果以换行结尾"""
        pieces = [piece for piece in pieces if piece]
        if not pieces:
            return ""
        return "\n\n".join(pieces) + "\n"

    def format_statement(self, statement: Statement) -> str:
        """格式化单条顶层语句（不含末尾换行）"""
        if not statement.analyzable:
            return statement.text().strip()
        writer = _Writer()
        self._render_statement(writer, statement, 0)
        return writer.text()

    # ------------------------------------------------------------------
    # 语句与子句
    # ------------------------------------------------------------------

    def _render_statement(self, w: _Writer, statement: Statement, base: int):
        layout = _Layout(statement, base)
        for clause in statement.clauses:
            leading, rest = self._split_leading(clause)
            self._render_leading_comments(w, layout, leading, self._clause_column(clause, layout))
            if clause.name == UNCLASSIFIED:
                self._start(w, layout, base)
                self._emit_items(w, rest, base)
            elif clause.name == CREATE_TABLE:
                definition = parse_create_table(statement)
                self._start(w, layout, base)
                self._write_keyword(w, clause)
                if definition is not None and definition.clause is clause:
                    self._render_create_table(w, definition, base)
                else:
                    self._emit_items(w, rest, base)
            elif clause.is_join:
                self._start(w, layout, layout.body)
                self._write_keyword(w, clause)
                self._emit_items(w, rest, layout.body, clause=clause, layout=layout)
            else:
                self._start(w, layout, self._clause_column(clause, layout))
                self._write_keyword(w, clause)
                self._emit_items(w, rest, layout.body, clause=clause, layout=layout)

    def _clause_column(self, clause: Clause, layout: _Layout) -> int:
        if clause.is_join:
            return layout.body
        if clause.is_root and clause.keyword_tokens:
            return layout.river - len(clause.keyword_text())
        return layout.base

    def _split_leading(self, clause: Clause):
        """把子句拆成 (关键字之前的空白与注释, 其余内容)"""
        items = clause.items
        if clause.keyword_tokens:
            first = clause.keyword_tokens[0]
            for index, item in enumerate(items):
                if item is first:
                    return items[:index], clause.body
            return [], clause.body
        for index, item in enumerate(items):
            if not (isinstance(item, Token) and item.is_trivia):
                return items[:index], items[index:]
        return items, []

    def _start(self, w: _Writer, layout: _Layout, column: int):
        """定位到子句起始列：语句的第一段内容紧接在当前位置之后，其余另起一行"""
        if not layout.started and w.column <= column and w.pending is None:
            w.pad_to(column)
        else:
            w.break_line(column)
        layout.started = True
        w.last = None
        w.unary = False
        w.name_context = False
        w.index_context = False

    def _render_leading_comments(self, w: _Writer, layout: _Layout, items, column: int):
        for item in items:
            if isinstance(item, Token) and item.type == TokenType.COMMENT:
                self._start(w, layout, column)
                w.write(item.value)
                w.pending = column

    def _write_keyword(self, w: _Writer, clause: Clause):
        w.put(self.config.apply_case(clause.keyword_text()), space=False)
        w.last = clause.keyword_tokens[-1]
        w.unary = False
        w.name_context = w.last.upper in NAME_CONTEXT_KEYWORDS

    # ------------------------------------------------------------------
    # Token流
    # ------------------------------------------------------------------

    def _emit_items(self, w: _Writer, items, continuation: int, clause: Optional[Clause] = None,
                    layout: Optional[_Layout] = None):
        """输出子句内容；clause不为None时在顶层逗号、AND/OR、ON 处换行"""
        breaking = clause is not None and layout is not None
        operators = set()
        if breaking and (clause.name in CONDITION_CLAUSES or clause.is_join):
            operators = {id(op) for op in clause.condition_operators()}

        depth = 0
        close_column: Optional[int] = None
        for item in _hoist_commas(items):
            if isinstance(item, Statement):
                close_column = self._emit_subquery(w, item)
                continue
            if item.type in (TokenType.WHITESPACE, TokenType.NEWLINE):
                continue
            if item.type == TokenType.COMMENT:
                self._emit_comment(w, item, continuation)
                continue

            if item.is_punct("("):
                depth += 1
            elif item.is_punct(")"):
                depth = max(0, depth - 1)
                if close_column is not None:
                    w.break_line(close_column)
            close_column = None

            if breaking and depth == 0:
                if id(item) in operators:
                    self._emit_operator(w, item, clause, layout)
                    continue
                if clause.is_join and item.is_keyword("ON"):
                    w.break_line(layout.body + 2)
                    self._emit_token(w, item)
                    continue

            self._emit_token(w, item)
            if breaking and depth == 0 and item.is_punct(","):
                w.pending = continuation

    def _emit_operator(self, w: _Writer, item: Token, clause: Clause, layout: _Layout):
        """顶层 AND/OR：WHERE/HAVING 中右对齐到河道，JOIN 中与 ON 右对齐"""
        if clause.is_join:
            end = layout.body + 4
        else:
            end = layout.river
        w.break_line(end - len(item.value))
        self._emit_token(w, item)

    def _emit_subquery(self, w: _Writer, child: Statement) -> Optional[int]:
        """输出子查询，返回右括号应独占一行时的列号"""
        paren_column = w.column - 1
        lines_before = len(w.lines)
        self._render_statement(w, child, w.column)
        if len(w.lines) > lines_before or w.pending is not None:
            return paren_column
        return None

    def _emit_comment(self, w: _Writer, token: Token, continuation: int):
        if token.value.startswith("--"):
            # 行注释留在当前行，之后必须换行
            pending = w.pending
            w.pending = None
            w.put(token.value, space=True)
            w.pending = pending if pending is not None else continuation
        else:
            w.put(token.value, space=True)

    def _emit_token(self, w: _Writer, token: Token):
        text = token.value
        if token.type == TokenType.KEYWORD:
            text = self.config.apply_case(text)
        w.put(text, self._space_before(w, token))

        w.unary = token.value in ("-", "+") and token.type == TokenType.OPERATOR and self._is_unary(w.last)
        if token.type == TokenType.KEYWORD:
            if token.upper == "INDEX":
                w.index_context = True
            # CREATE INDEX ix ON t (a)：ON 之后是表名
            w.name_context = token.upper in NAME_CONTEXT_KEYWORDS or (token.upper == "ON" and w.index_context)
        elif not (token.type in IDENTIFIER_TYPES or token.is_punct(".")):
            w.name_context = False
        w.last = token

    def _is_unary(self, previous: Optional[Token]) -> bool:
        if previous is None:
            return True
        if previous.type == TokenType.OPERATOR:
            return True
        if previous.is_punct("(") or previous.is_punct(","):
            return True
        return previous.type == TokenType.KEYWORD and previous.upper not in VALUE_KEYWORDS

    def _space_before(self, w: _Writer, token: Token) -> bool:
        previous = w.last
        if previous is None:
            return False
        if token.type == TokenType.UNKNOWN or previous.type == TokenType.UNKNOWN:
            # 参数占位符等无法归类的字符保持原有的紧邻关系
            return token.offset != previous.end
        if _joins_into_number(previous, token):
            return True
        if w.unary:
            return False
        if token.type == TokenType.PUNCTUATION and token.value in ",);.":
            return False
        if previous.is_punct("(") or previous.is_punct("."):
            return False
        if token.value == "::" or previous.value == "::":
            return False
        if token.is_punct("("):
            if previous.type in IDENTIFIER_TYPES:
                return w.name_context
            if previous.type == TokenType.KEYWORD and (
                previous.upper in FUNCTION_KEYWORDS or is_type_name(previous.value)
            ):
                return False
        return True

    # ------------------------------------------------------------------
    # CREATE TABLE
    # ------------------------------------------------------------------

    def _render_create_table(self, w: _Writer, definition: TableDefinition, base: int):
        self._emit_items(w, definition.prefix, base)
        w.put("(", space=True)
        w.last = definition.open_paren
        w.unary = False
        w.name_context = False

        ordered = self._order_elements(definition.elements)
        if ordered:
            element_column = base + self.config.indent_width
            names = [c.name_token.value for c in definition.columns if c.name_token is not None]
            constraint_column = element_column + (max(len(name) for name in names) + 1 if names else 0)
            type_width = max((len(self._type_text(c)) for c in definition.columns), default=0)

            significant = [e for e in ordered if e.significant]
            last_significant = significant[-1] if significant else None
            for element in ordered:
                single = self._single_column(element)
                column = constraint_column if single else element_column
                core, trailing = self._element_parts(element, w, column)
                if core:
                    if element.kind == "column" and self._plain(core):
                        self._render_column(w, element, core, element_column, constraint_column, type_width)
                    elif single:
                        self._render_single_constraint(w, core, constraint_column)
                    else:
                        w.break_line(column)
                        self._reset(w)
                        self._emit_items(w, core, column)
                    if element is not last_significant:
                        w.put(",", space=False)
                        w.last = None
                for comment in trailing:
                    w.break_line(column)
                    w.write(comment.value)
                    w.pending = column
            w.break_line(base)
        if definition.close_paren is not None:
            w.put(")", space=False)
            w.last = definition.close_paren
        self._emit_items(w, definition.suffix, base)

    def _order_elements(self, elements: List[TableElement]) -> List[TableElement]:
        """主键约束在前，列按声明顺序且单列约束紧随其列，其余约束在后"""
        primary = [e for e in elements if e.kind == "primary_key"]
        singles: Dict[str, List[TableElement]] = {}
        others = []
        for element in elements:
            if self._single_column(element):
                singles.setdefault(element.referenced_columns[0], []).append(element)
            elif element.kind == "constraint":
                others.append(element)

        ordered = list(primary)
        for element in elements:
            if element.kind != "column":
                continue
            ordered.append(element)
            if element.name_token is not None:
                ordered.extend(singles.get(identifier_name(element.name_token).lower(), []))
        return ordered + others

    def _single_column(self, element: TableElement) -> bool:
        return element.kind == "constraint" and len(element.referenced_columns) == 1

    def _element_parts(self, element: TableElement, w: _Writer, column: int):
        """输出元素前导注释，返回 (核心内容, 尾随注释)"""
        items = element.items
        positions = [
            index for index, item in enumerate(items)
            if not (isinstance(item, Token) and item.is_trivia)
        ]
        if not positions:
            leading, core, trailing = items, [], []
        else:
            leading = items[:positions[0]]
            core = items[positions[0]:positions[-1] + 1]
            trailing = items[positions[-1] + 1:]

        for item in leading:
            if isinstance(item, Token) and item.type == TokenType.COMMENT:
                w.break_line(column)
                w.write(item.value)
                w.pending = column
        return core, [t for t in trailing if isinstance(t, Token) and t.type == TokenType.COMMENT]

    def _plain(self, core) -> bool:
        return all(
            isinstance(item, Token) and item.type != TokenType.COMMENT for item in core
        )

    def _type_text(self, element: TableElement) -> str:
        scratch = _Writer()
        self._emit_items(scratch, element.type_items, 0)
        return scratch.text()

    def _render_column(self, w: _Writer, element: TableElement, core, element_column: int,
                       constraint_column: int, type_width: int):
        """列定义：名称、类型、其余约束分别对齐成列"""
        sig = [item for item in core if not item.is_trivia]
        w.break_line(element_column)
        self._reset(w)
        self._emit_token(w, sig[0])

        type_items = sig[1:1 + len(element.type_items)]
        rest = sig[1 + len(element.type_items):]
        if type_items:
            w.pad_to(constraint_column)
            self._reset(w)
            self._emit_items(w, type_items, constraint_column)
        if rest:
            w.pad_to(constraint_column + type_width + 1)
            self._reset(w)
            self._emit_items(w, rest, constraint_column)

    def _render_single_constraint(self, w: _Writer, core, constraint_column: int):
        """单列约束放在类型列；带名称时名称单独一行"""
        w.break_line(constraint_column)
        self._reset(w)
        sig = [item for item in core if not (isinstance(item, Token) and item.is_trivia)]
        split_at = None
        if len(sig) > 2 and isinstance(sig[0], Token) and sig[0].is_keyword("CONSTRAINT"):
            split_at = sig[2]
        for index, item in enumerate(core):
            if item is split_at:
                self._emit_items(w, core[:index], constraint_column)
                w.break_line(constraint_column)
                self._reset(w)
                self._emit_items(w, core[index:], constraint_column)
                return
        self._emit_items(w, core, constraint_column)

    def _reset(self, w: _Writer):
        w.last = None
        w.unary = False
        w.name_context = False


def format_sql(sql: str, config: Optional[StyleConfig] = None,
               keywords: KeywordTable = DEFAULT_KEYWORDS) -> str:
    """格式化SQL文本的便捷函数"""
    return SQLFormatter(config, keywords).format(sql)
