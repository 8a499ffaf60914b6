"""
规则引擎：每条规则是一个纯函数 (Statement, StyleConfig, KeywordTable) -> List[RuleViolation]，
通过装饰器按顺序登记到注册表中。规则之间互不通信，只读取共享的不可变输入。
"""

from typing import Callable, Dict, List, NamedTuple, Optional, Set

from catalog.data_types import NUMERIC_SUFFIXES, TEMPORAL_SUFFIXES, TypeCategory, type_category
from catalog.keywords import KeywordTable

from .descriptors import (
    describe_identifiers,
    identifier_name,
    is_identifier,
    parse_create_table,
    select_items,
    significant_items,
    table_references,
)
from .diagnostics import RuleViolation, Severity, closest_name, violation_at
from .lexer import Token, TokenType
from .structure import Statement
from .style_config import ConfigError, StyleConfig

RuleCheck = Callable[[Statement, StyleConfig, KeywordTable], List[RuleViolation]]


class Rule(NamedTuple):
    rule_id: str
    default_severity: Severity
    check: RuleCheck
    description: str


_REGISTRY: List[Rule] = []


def register_rule(rule_id: str, severity: Severity, description: str):
    """把规则函数登记到注册表（按定义顺序）"""

    def decorator(func: RuleCheck) -> RuleCheck:
        if any(rule.rule_id == rule_id for rule in _REGISTRY):
            raise ValueError(f"规则 {rule_id} 重复登记")
        _REGISTRY.append(Rule(rule_id, severity, func, description))
        return func

    return decorator


def get_rules() -> List[Rule]:
    return list(_REGISTRY)


def list_rule_ids() -> List[str]:
    return [rule.rule_id for rule in _REGISTRY]


def check_rule_ids(names) -> None:
    """校验规则名，拼写错误时给出最接近的候选"""
    known = list_rule_ids()
    for name in names:
        if name not in known:
            hint = closest_name(name, known)
            suffix = f"，是否指 '{hint}'?" if hint else f"，可用规则: {', '.join(known)}"
            raise ConfigError(f"未知规则 '{name}'{suffix}")


# ---------------------------------------------------------------------------
# 版面辅助函数（对齐与缩进规则共用）
# ---------------------------------------------------------------------------


def _col(token: Token) -> int:
    """Token起始列（0起）"""
    return token.column - 1


def _end_col(token: Token) -> int:
    return token.column - 1 + len(token.value)


def river_column(statement: Statement) -> Optional[int]:
    """河道列：根关键字应当结束的列（0起，开区间）"""
    keywords = statement.root_keywords()
    if not keywords:
        return None
    longest = max(len(text) for text, _, _ in keywords)
    first_end = _end_col(keywords[0][2])
    return max(first_end, statement.base_column + longest)


def line_starts(statement: Statement) -> Set[int]:
    """每行第一个非空白Token的id集合"""
    starts: Set[int] = set()
    at_start = True
    for token in statement.all_tokens():
        if token.type == TokenType.NEWLINE:
            at_start = True
        elif token.type == TokenType.WHITESPACE:
            continue
        else:
            if at_start:
                starts.add(id(token))
            at_start = False
    return starts


# ---------------------------------------------------------------------------
# 规则
# ---------------------------------------------------------------------------

CASING = "ReservedWordCasing"
SHAPE = "IdentifierShape"
COLLISION = "IdentifierCollision"
ALIAS = "AliasConvention"
SUFFIX = "SuffixConvention"
ALIGNMENT = "WhitespaceAlignment"
INDENTATION = "IndentationRule"


@register_rule(CASING, Severity.ERROR, "保留字必须使用配置的大小写（默认大写）")
def reserved_word_casing(statement: Statement, config: StyleConfig, keywords: KeywordTable) -> List[RuleViolation]:
    violations = []
    for token in statement.all_tokens():
        if token.type != TokenType.KEYWORD:
            continue
        expected = config.apply_case(token.value)
        if token.value != expected:
            violations.append(
                violation_at(CASING, Severity.ERROR, token, f"关键字 '{token.value}' 应写作 '{expected}'", expected)
            )
    return violations


@register_rule(SHAPE, Severity.ERROR, "标识符以字母开头，仅含字母数字下划线，不以下划线结尾，无连续下划线，且不超过最大字节长度")
def identifier_shape(statement: Statement, config: StyleConfig, keywords: KeywordTable) -> List[RuleViolation]:
    violations = []
    for stmt in statement.walk():
        for identifier in describe_identifiers(stmt):
            name = identifier.name
            label = f"{identifier.kind.value} '{name}'"
            token = identifier.token
            if not name[:1].isalpha():
                violations.append(violation_at(SHAPE, Severity.ERROR, token, f"{label} 必须以字母开头"))
            if any(not (char.isalnum() or char == "_") for char in name):
                violations.append(violation_at(SHAPE, Severity.ERROR, token, f"{label} 只能包含字母、数字和下划线"))
            if name.endswith("_"):
                violations.append(
                    violation_at(SHAPE, Severity.ERROR, token, f"{label} 不能以下划线结尾", name.rstrip("_") or None)
                )
            if "__" in name:
                fixed = "_".join(part for part in name.split("_") if part)
                violations.append(violation_at(SHAPE, Severity.ERROR, token, f"{label} 不能包含连续的下划线", fixed))
            if identifier.byte_length > config.max_identifier_length:
                violations.append(
                    violation_at(
                        SHAPE,
                        Severity.ERROR,
                        token,
                        f"{label} 长度为 {identifier.byte_length} 字节，超过上限 {config.max_identifier_length}",
                    )
                )
    return violations


@register_rule(COLLISION, Severity.ERROR, "表名与其列名不能相同；带引号的标识符不能与保留字相同")
def identifier_collision(statement: Statement, config: StyleConfig, keywords: KeywordTable) -> List[RuleViolation]:
    violations = []
    for stmt in statement.walk():
        definition = parse_create_table(stmt)
        if definition is not None and definition.table_token is not None:
            table = definition.table_token
            table_name = identifier_name(table).lower()
            for column in definition.columns:
                if column.name_token is not None and identifier_name(column.name_token).lower() == table_name:
                    violations.append(
                        violation_at(
                            COLLISION,
                            Severity.ERROR,
                            column.name_token,
                            f"列 '{identifier_name(column.name_token)}'（行{column.name_token.line},列{column.name_token.column}）"
                            f"与表 '{identifier_name(table)}'（行{table.line},列{table.column}）同名",
                            related=[table],
                        )
                    )

        # 形如 staff.staff 的限定引用
        sig = [item for item in significant_items(_own_items(stmt)) if isinstance(item, Token)]
        for index in range(len(sig) - 2):
            qualifier, dot, column = sig[index], sig[index + 1], sig[index + 2]
            if is_identifier(qualifier) and dot.is_punct(".") and is_identifier(column):
                if index + 3 < len(sig) and sig[index + 3].is_punct("."):
                    continue
                if identifier_name(qualifier).lower() == identifier_name(column).lower():
                    violations.append(
                        violation_at(
                            COLLISION,
                            Severity.ERROR,
                            column,
                            f"列引用 '{qualifier.value}.{column.value}' 的列名与表名相同",
                            related=[qualifier],
                        )
                    )

        for identifier in describe_identifiers(stmt):
            token = identifier.token
            if token.type == TokenType.QUOTED_IDENTIFIER and identifier.name in keywords:
                violations.append(
                    violation_at(COLLISION, Severity.ERROR, token, f"标识符 {token.value} 与保留字 {identifier.name.upper()} 冲突")
                )
    return violations


def _own_items(statement: Statement):
    items = []
    for clause in statement.clauses:
        items.extend(clause.items)
    return items


def is_abbreviation(alias: str, name: str) -> bool:
    """别名是否为名称的首字母缩写或前缀（忽略末尾数字）"""
    short = alias.lower().rstrip("0123456789")
    full = name.lower()
    if not short:
        return True
    words = [word for word in full.split("_") if word]
    initials = "".join(word[0] for word in words)
    return short == initials or full.startswith(short) or initials.startswith(short)


@register_rule(ALIAS, Severity.WARNING, "别名必须使用 AS；表别名宜为表名的首字母缩写（启发式，仅提示）")
def alias_convention(statement: Statement, config: StyleConfig, keywords: KeywordTable) -> List[RuleViolation]:
    violations = []
    for stmt in statement.walk():
        references = table_references(stmt)
        for item in references + select_items(stmt):
            if item.is_bare_alias:
                violations.append(
                    violation_at(
                        ALIAS,
                        Severity.WARNING,
                        item.alias,
                        f"别名 '{item.alias.value}' 应使用 AS 关键字",
                        f"{config.apply_case('AS')} {item.alias.value}",
                    )
                )
        for item in references:
            name_token = item.name_token
            if item.alias is None or name_token is None:
                continue
            if not is_abbreviation(identifier_name(item.alias), identifier_name(name_token)):
                violations.append(
                    violation_at(
                        ALIAS,
                        Severity.INFO,
                        item.alias,
                        f"别名 '{item.alias.value}' 不是 '{name_token.value}' 的首字母缩写",
                    )
                )
    return violations


@register_rule(SUFFIX, Severity.WARNING, "数值列宜以 _num/_tally/_total/_size 等结尾，日期列宜以 _date 结尾（启发式）")
def suffix_convention(statement: Statement, config: StyleConfig, keywords: KeywordTable) -> List[RuleViolation]:
    violations = []
    for stmt in statement.walk():
        definition = parse_create_table(stmt)
        if definition is None:
            continue
        for column in definition.columns:
            if column.name_token is None or column.type_name is None:
                continue
            name = identifier_name(column.name_token)
            category = type_category(column.type_name)
            if category == TypeCategory.NUMERIC:
                suffixes, suggestion = NUMERIC_SUFFIXES, f"{name}_num"
            elif category == TypeCategory.TEMPORAL:
                suffixes, suggestion = TEMPORAL_SUFFIXES, f"{name}_date"
            else:
                continue
            if not name.lower().endswith(suffixes):
                violations.append(
                    violation_at(
                        SUFFIX,
                        Severity.WARNING,
                        column.name_token,
                        f"{column.type_name.upper()} 列 '{name}' 缺少约定后缀（{' / '.join(suffixes)}）",
                        suggestion,
                    )
                )
    return violations


@register_rule(ALIGNMENT, Severity.WARNING, "根关键字右对齐到同一列（河道）")
def whitespace_alignment(statement: Statement, config: StyleConfig, keywords: KeywordTable) -> List[RuleViolation]:
    violations = []
    for stmt in statement.walk():
        river = river_column(stmt)
        if river is None:
            continue
        for text, first, last in stmt.root_keywords():
            end = _end_col(last)
            if end != river:
                shown = config.apply_case(text)
                violations.append(
                    violation_at(
                        ALIGNMENT,
                        Severity.WARNING,
                        first,
                        f"关键字 '{shown}' 应右对齐到第 {river} 列（当前结束于第 {end} 列）",
                        " " * max(0, river - len(text)) + shown,
                        end_token=last,
                    )
                )
    return violations


@register_rule(INDENTATION, Severity.WARNING, "JOIN 缩进到河道右侧；CREATE TABLE 列定义按缩进宽度缩进，单列约束对齐到类型列")
def indentation_rule(statement: Statement, config: StyleConfig, keywords: KeywordTable) -> List[RuleViolation]:
    violations = []
    starts = line_starts(statement)
    for stmt in statement.walk():
        river = river_column(stmt)
        if river is not None:
            for clause in stmt.clauses:
                if not clause.is_join:
                    continue
                keyword = clause.keyword_tokens[0]
                expected = river + 1
                if id(keyword) not in starts or _col(keyword) != expected:
                    shown = config.apply_case(clause.keyword_text())
                    violations.append(
                        violation_at(
                            INDENTATION,
                            Severity.WARNING,
                            keyword,
                            f"'{shown}' 应另起一行并从第 {expected + 1} 列开始（河道右侧）",
                            " " * expected + shown,
                            end_token=clause.keyword_tokens[-1],
                        )
                    )
        violations.extend(_create_table_indentation(stmt, config, starts))
    return violations


def _create_table_indentation(stmt: Statement, config: StyleConfig, starts: Set[int]) -> List[RuleViolation]:
    definition = parse_create_table(stmt)
    if definition is None or not definition.clause.keyword_tokens:
        return []

    violations = []
    element_col = _col(definition.clause.keyword_tokens[0]) + config.indent_width
    names = [column.name_token.value for column in definition.columns if column.name_token is not None]
    constraint_col = element_col + (max(len(name) for name in names) + 1 if names else 0)

    for element in definition.elements:
        sig = [item for item in element.significant if isinstance(item, Token)]
        if not sig:
            continue
        single_column = element.kind == "constraint" and len(element.referenced_columns) == 1
        expected = constraint_col if single_column else element_col
        first = sig[0]
        if id(first) not in starts or _col(first) != expected:
            what = "单列约束" if single_column else "表元素"
            violations.append(
                violation_at(
                    INDENTATION,
                    Severity.WARNING,
                    first,
                    f"{what}应另起一行并从第 {expected + 1} 列开始",
                    " " * expected + first.value,
                )
            )
        if single_column:
            for token in sig[1:]:
                if id(token) in starts and _col(token) != constraint_col:
                    violations.append(
                        violation_at(
                            INDENTATION,
                            Severity.WARNING,
                            token,
                            f"约束续行应从第 {constraint_col + 1} 列开始",
                            " " * constraint_col + token.value,
                        )
                    )
    return violations


# ---------------------------------------------------------------------------
# 引擎
# ---------------------------------------------------------------------------


class RuleEngine:
    """按配置运行已启用的规则，合并结果；单条规则失败时按“无违规”处理"""

    def __init__(self, config: StyleConfig, keywords: KeywordTable, log_manager=None):
        self.config = config
        self.keywords = keywords
        self.log_manager = log_manager

    def active_rules(self) -> List[Rule]:
        return [rule for rule in _REGISTRY if self.config.is_enabled(rule.rule_id)]

    def evaluate(self, statement: Statement) -> List[RuleViolation]:
        if not statement.analyzable:
            return []

        violations: List[RuleViolation] = []
        for rule in self.active_rules():
            try:
                found = rule.check(statement, self.config, self.keywords)
            except Exception as e:
                if self.log_manager is not None:
                    self.log_manager.log_rule_failure(rule.rule_id, statement.text(), e)
                continue
            override = self.config.severity_overrides.get(rule.rule_id)
            for violation in found:
                # 覆盖只作用于规则的默认级别；启发式子检查的 info 级别保持不变
                if override is not None and violation.severity == rule.default_severity:
                    violation = violation.with_severity(override)
                violations.append(violation)

        violations.sort(key=lambda v: v.sort_key)
        return violations

    def describe(self) -> List[Dict[str, str]]:
        return [
            {
                "rule_id": rule.rule_id,
                "severity": self.config.severity_for(rule.rule_id, rule.default_severity).label,
                "enabled": "yes" if self.config.is_enabled(rule.rule_id) else "no",
                "description": rule.description,
            }
            for rule in _REGISTRY
        ]
