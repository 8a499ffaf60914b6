"""
/tests/test_rules.py

风格规则与规则引擎单元测试
"""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest

from catalog.keywords import DEFAULT_KEYWORDS, KeywordTable
from sql import rules
from sql.diagnostics import Severity
from sql.lexer import SQLLexer
from sql.rules import (
    ALIAS,
    ALIGNMENT,
    CASING,
    COLLISION,
    INDENTATION,
    SHAPE,
    SUFFIX,
    Rule,
    RuleEngine,
    check_rule_ids,
    is_abbreviation,
    list_rule_ids,
    river_column,
)
from sql.segmenter import segment
from sql.style_config import ConfigError, StyleConfig


def _statements(sql):
    lexer = SQLLexer(sql)
    return segment(lexer.tokenize(), lexer.errors)


def _check(sql, config=None, rule_id=None):
    engine = RuleEngine(config or StyleConfig(), DEFAULT_KEYWORDS)
    violations = []
    for statement in _statements(sql):
        violations.extend(engine.evaluate(statement))
    if rule_id is not None:
        violations = [v for v in violations if v.rule_id == rule_id]
    return violations


class _RecordingLog:
    def __init__(self):
        self.failures = []

    def log_rule_failure(self, rule_id, statement_preview, error):
        self.failures.append((rule_id, type(error).__name__))


# ---------------------------------------------------------------------------
# 注册表
# ---------------------------------------------------------------------------

def test_registry_order():
    assert list_rule_ids() == [CASING, SHAPE, COLLISION, ALIAS, SUFFIX, ALIGNMENT, INDENTATION]


def test_duplicate_registration_rejected():
    with pytest.raises(ValueError):
        rules.register_rule(CASING, Severity.ERROR, "重复")(lambda s, c, k: [])


def test_unknown_rule_name_suggests_closest():
    with pytest.raises(ConfigError, match="ReservedWordCasing"):
        check_rule_ids(["ReservedWordCasin"])
    check_rule_ids(list_rule_ids())


def test_describe():
    config = StyleConfig(disabled_rules=[SUFFIX], severity_overrides={ALIAS: Severity.ERROR})
    described = {row["rule_id"]: row for row in RuleEngine(config, DEFAULT_KEYWORDS).describe()}
    assert described[SUFFIX]["enabled"] == "no"
    assert described[ALIAS]["severity"] == "error"
    assert described[CASING]["severity"] == "error"


# ---------------------------------------------------------------------------
# ReservedWordCasing
# ---------------------------------------------------------------------------

def test_lowercase_keywords_reported():
    violations = _check("select 1 from t;", rule_id=CASING)
    assert [(v.line, v.column, v.suggested_fix) for v in violations] == [(1, 1, "SELECT"), (1, 10, "FROM")]
    assert all(v.severity == Severity.ERROR for v in violations)


def test_lowercase_configuration():
    config = StyleConfig(keyword_case="lower")
    violations = _check("SELECT a from t;", config, CASING)
    assert [v.suggested_fix for v in violations] == ["select"]


def test_keywords_inside_subqueries_checked_once():
    violations = _check("SELECT a FROM t WHERE a IN (select b FROM u);", rule_id=CASING)
    assert len(violations) == 1
    assert violations[0].column == 29


def test_quoted_identifiers_are_not_keywords():
    assert _check('SELECT "select" FROM t;', rule_id=CASING) == []


def test_casing_follows_lexer_keyword_table():
    table = KeywordTable(list(DEFAULT_KEYWORDS) + ["QUALIFY"])
    lexer = SQLLexer("select a from t qualify x = 1;", table)
    engine = RuleEngine(StyleConfig(), table)
    violations = []
    for statement in segment(lexer.tokenize(), lexer.errors):
        violations.extend(v for v in engine.evaluate(statement) if v.rule_id == CASING)
    assert [v.suggested_fix for v in violations] == ["SELECT", "FROM", "QUALIFY"]


# ---------------------------------------------------------------------------
# IdentifierShape
# ---------------------------------------------------------------------------

def test_trailing_underscore():
    violations = _check("SELECT order_ FROM t;", rule_id=SHAPE)
    assert len(violations) == 1
    assert violations[0].suggested_fix == "order"


def test_too_long_identifier():
    violations = _check("SELECT " + "a" * 31 + " FROM t;", rule_id=SHAPE)
    assert len(violations) == 1
    assert "31" in violations[0].message
    assert _check("SELECT " + "a" * 30 + " FROM t;", rule_id=SHAPE) == []


def test_length_counts_bytes():
    config = StyleConfig(max_identifier_length=5)
    assert len(_check('SELECT "äöü" FROM t;', config, SHAPE)) == 1


def test_consecutive_underscores():
    violations = _check("SELECT a__b FROM t;", rule_id=SHAPE)
    assert len(violations) == 1
    assert violations[0].suggested_fix == "a_b"


def test_must_start_with_letter_and_use_word_characters():
    violations = _check('SELECT _a, "b c" FROM t;', rule_id=SHAPE)
    messages = [v.message for v in violations]
    assert len(violations) == 2
    assert any("字母开头" in m for m in messages)
    assert any("字母、数字和下划线" in m for m in messages)


# ---------------------------------------------------------------------------
# IdentifierCollision
# ---------------------------------------------------------------------------

def test_column_named_like_table():
    violations = _check("CREATE TABLE staff (staff VARCHAR(10));", rule_id=COLLISION)
    assert len(violations) == 1
    assert violations[0].start == 20
    assert violations[0].related_spans == ((13, 18),)


def test_qualified_reference_with_same_names():
    violations = _check("SELECT staff.staff FROM staff;", rule_id=COLLISION)
    assert len(violations) == 1
    assert violations[0].column == 14


def test_quoted_identifier_matching_keyword():
    violations = _check('SELECT "select" FROM t;', rule_id=COLLISION)
    assert len(violations) == 1


def test_no_collision_for_distinct_names():
    assert _check("CREATE TABLE staff (staff_num INT);", rule_id=COLLISION) == []


# ---------------------------------------------------------------------------
# AliasConvention
# ---------------------------------------------------------------------------

def test_alias_without_as():
    violations = _check("SELECT s.first_name FROM staff s;", rule_id=ALIAS)
    assert len(violations) == 1
    assert violations[0].severity == Severity.WARNING
    assert violations[0].suggested_fix == "AS s"


def test_select_alias_without_as():
    violations = _check("SELECT count(*) total FROM t;", rule_id=ALIAS)
    assert [v.suggested_fix for v in violations] == ["AS total"]


def test_alias_not_abbreviation_is_info():
    violations = _check("SELECT x FROM staff AS foo;", rule_id=ALIAS)
    assert len(violations) == 1
    assert violations[0].severity == Severity.INFO


def test_abbreviations_accepted():
    assert _check("SELECT a FROM staff_member AS sm JOIN orders AS o1 ON sm.a = o1.a;", rule_id=ALIAS) == []
    assert is_abbreviation("sm", "staff_member")
    assert is_abbreviation("sta", "staff")
    assert is_abbreviation("o2", "orders")
    assert not is_abbreviation("x", "staff")


def test_severity_override_leaves_heuristic_info():
    config = StyleConfig(severity_overrides={ALIAS: Severity.ERROR})
    violations = _check("SELECT a FROM staff s JOIN orders AS foo ON s.a = foo.a;", config, ALIAS)
    severities = sorted(v.severity.label for v in violations)
    assert severities == ["error", "info"]


# ---------------------------------------------------------------------------
# SuffixConvention
# ---------------------------------------------------------------------------

def test_suffixes():
    violations = _check(
        "CREATE TABLE t (total_amount DECIMAL(10, 2), created DATE, visit_tally INT, name VARCHAR(20));",
        rule_id=SUFFIX,
    )
    assert [v.suggested_fix for v in violations] == ["total_amount_num", "created_date"]
    assert all(v.severity == Severity.WARNING for v in violations)


# ---------------------------------------------------------------------------
# WhitespaceAlignment
# ---------------------------------------------------------------------------

def test_aligned_statement_is_clean():
    sql = "SELECT a\n  FROM t\n WHERE a = 1\n   AND b = 2;"
    assert _check(sql, rule_id=ALIGNMENT) == []
    assert river_column(_statements(sql)[0]) == 6


def test_misaligned_keyword():
    violations = _check("SELECT a\nFROM t;", rule_id=ALIGNMENT)
    assert len(violations) == 1
    assert violations[0].suggested_fix == "  FROM"


def test_river_uses_longest_keyword():
    sql = "  SELECT a\n    FROM t\nORDER BY a;"
    assert _check(sql, rule_id=ALIGNMENT) == []
    assert river_column(_statements(sql)[0]) == 8


def test_subquery_aligned_to_its_own_river():
    sql = (
        "SELECT a\n"
        "  FROM t\n"
        " WHERE a IN (SELECT b\n"
        "               FROM u)"
    )
    assert _check(sql, rule_id=ALIGNMENT) == []


# ---------------------------------------------------------------------------
# IndentationRule
# ---------------------------------------------------------------------------

def test_join_on_same_line():
    violations = _check("SELECT a FROM t JOIN u ON t.id = u.id;", rule_id=INDENTATION)
    assert len(violations) == 1
    assert violations[0].suggested_fix == " " * 7 + "JOIN"


def test_join_indented_right_of_river():
    sql = "SELECT a\n  FROM t\n       JOIN u\n         ON t.id = u.id;"
    assert _check(sql, rule_id=INDENTATION) == []


def test_create_table_layout():
    sql = (
        "CREATE TABLE staff (\n"
        "    PRIMARY KEY (staff_num),\n"
        "    staff_num  INT(5)      NOT NULL,\n"
        "    first_name VARCHAR(50) NOT NULL,\n"
        "               CONSTRAINT first_name_check\n"
        "               CHECK (first_name <> '')\n"
        ");"
    )
    assert _check(sql, rule_id=INDENTATION) == []


def test_create_table_elements_on_one_line():
    violations = _check("CREATE TABLE t (a INT, b INT);", rule_id=INDENTATION)
    assert len(violations) == 2


def test_single_column_constraint_at_element_column():
    sql = (
        "CREATE TABLE t (\n"
        "    a INT,\n"
        "    CHECK (a > 0)\n"
        ");"
    )
    violations = _check(sql, rule_id=INDENTATION)
    assert len(violations) == 1
    assert violations[0].suggested_fix == " " * 6 + "CHECK"


# ---------------------------------------------------------------------------
# 引擎
# ---------------------------------------------------------------------------

def test_unanalyzable_statements_skipped():
    assert _check("select 'oops from t;") == []
    assert _check("select (a from t") == []


def test_disabled_rules():
    config = StyleConfig(disabled_rules=[CASING])
    assert _check("select 1 from t;", config, CASING) == []
    config = StyleConfig(enabled_rules=[SHAPE])
    assert {v.rule_id for v in _check("select a__b from t;", config)} == {SHAPE}


def test_failing_rule_is_ignored_and_logged(monkeypatch):
    def broken(statement, config, keywords):
        raise RuntimeError("boom")

    monkeypatch.setattr(rules, "_REGISTRY", rules._REGISTRY + [Rule("Broken", Severity.ERROR, broken, "")])
    log = _RecordingLog()
    engine = RuleEngine(StyleConfig(), DEFAULT_KEYWORDS, log)
    violations = engine.evaluate(_statements("select 1 from t;")[0])
    assert log.failures == [("Broken", "RuntimeError")]
    assert len([v for v in violations if v.rule_id == CASING]) == 2


def test_results_sorted_by_offset():
    violations = _check("select a__b from t s;")
    starts = [v.start for v in violations]
    assert starts == sorted(starts)
