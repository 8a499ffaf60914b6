"""
/tests/test_config.py

风格配置与诊断报告单元测试
"""
import sys
import os
import json

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest

from sql.diagnostics import (
    IO_ERROR,
    DiagnosticReport,
    RuleViolation,
    Severity,
    closest_name,
    file_error_violation,
)
from sql.style_config import ConfigError, StyleConfig, config_from_dict, load_config


def _violation(rule_id="ReservedWordCasing", severity=Severity.ERROR, start=0, file="a.sql", fix=None):
    return RuleViolation(rule_id, severity, start, start + 1, 1, start + 1, "msg", fix, (), file)


# ---------------------------------------------------------------------------
# StyleConfig
# ---------------------------------------------------------------------------

def test_defaults():
    config = StyleConfig()
    assert config.indent_width == 4
    assert config.max_identifier_length == 30
    assert config.keyword_case == "upper"
    assert config.is_enabled("AnyRule")
    assert config.apply_case("select") == "SELECT"


def test_enabled_and_disabled_rules():
    config = StyleConfig(enabled_rules=["A", "B"], disabled_rules=["B"])
    assert config.is_enabled("A")
    assert not config.is_enabled("B")
    assert not config.is_enabled("C")
    assert config.referenced_rules() == frozenset({"A", "B"})


@pytest.mark.parametrize("kwargs", [
    {"indent_width": 0},
    {"max_identifier_length": -1},
    {"keyword_case": "title"},
    {"jobs": 0},
    {"timeout": 0},
])
def test_invalid_values(kwargs):
    with pytest.raises(ConfigError):
        StyleConfig(**kwargs)


def test_with_overrides_keeps_unset_values():
    config = StyleConfig(indent_width=2).with_overrides(keyword_case="lower", jobs=None)
    assert config.indent_width == 2
    assert config.keyword_case == "lower"
    assert config.jobs is None
    with pytest.raises(ConfigError):
        config.with_overrides(colour="blue")


def test_config_from_dict():
    config = config_from_dict({
        "indent_width": 2,
        "disabled_rules": ["SuffixConvention"],
        "severity_overrides": {"AliasConvention": "error"},
    })
    assert config.indent_width == 2
    assert not config.is_enabled("SuffixConvention")
    assert config.severity_for("AliasConvention", Severity.WARNING) == Severity.ERROR


@pytest.mark.parametrize("data", [
    {"unknown_key": 1},
    {"severity_overrides": {"AliasConvention": "fatal"}},
    {"severity_overrides": ["AliasConvention"]},
    {"enabled_rules": "ReservedWordCasing"},
    [],
])
def test_config_from_dict_rejects_bad_data(data):
    with pytest.raises(ConfigError):
        config_from_dict(data)


def test_to_dict_round_trip():
    config = StyleConfig(severity_overrides={"AliasConvention": Severity.INFO}, disabled_rules=["X"])
    again = config_from_dict(config.to_dict())
    assert again.to_dict() == config.to_dict()


def test_load_config_file(tmp_path):
    path = tmp_path / "style.json"
    path.write_text(json.dumps({"keyword_case": "lower"}), encoding="utf-8")
    assert load_config(str(path)).keyword_case == "lower"


def test_load_config_default_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert load_config().keyword_case == "upper"
    (tmp_path / ".sqlstyle.json").write_text('{"indent_width": 8}', encoding="utf-8")
    assert load_config().indent_width == 8


def test_load_config_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "missing.json"))
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError, match="不是有效的JSON"):
        load_config(str(broken))


# ---------------------------------------------------------------------------
# DiagnosticReport
# ---------------------------------------------------------------------------

def test_severity_parse():
    assert Severity.parse(" Warning ") == Severity.WARNING
    with pytest.raises(ValueError):
        Severity.parse("fatal")


def test_sorted_by_file_then_offset():
    report = DiagnosticReport()
    report.extend([
        _violation(start=5, file="b.sql"),
        _violation(start=9, file="a.sql"),
        _violation(start=2, file="a.sql"),
    ])
    ordered = [(v.file, v.start) for v in report.sorted_violations()]
    assert ordered == [("a.sql", 2), ("a.sql", 9), ("b.sql", 5)]


def test_exit_codes():
    report = DiagnosticReport()
    assert report.exit_code() == 0
    report.add(_violation(severity=Severity.WARNING))
    report.add(_violation(severity=Severity.INFO))
    assert report.exit_code() == 0
    report.add(_violation(severity=Severity.ERROR))
    assert report.exit_code() == 1
    report.add(file_error_violation("c.sql", "无法读取"))
    assert report.fatal_files == ["c.sql"]
    assert report.exit_code() == 2


def test_counts_and_by_rule():
    report = DiagnosticReport()
    report.extend([
        _violation(severity=Severity.WARNING, rule_id="B"),
        _violation(severity=Severity.WARNING, rule_id="A"),
        _violation(rule_id="A"),
    ])
    assert report.counts() == {"error": 1, "warning": 2, "info": 0}
    assert report.by_rule() == {"A": 2, "B": 1}


def test_text_and_json_lines():
    report = DiagnosticReport()
    report.add(_violation(fix="SELECT"))
    report.add(file_error_violation("z.sql", "无法读取文件"))

    lines = report.to_text().splitlines()
    assert lines[0] == "a.sql:1:1: error [ReservedWordCasing] msg (建议: 'SELECT')"
    assert lines[1].startswith(f"z.sql:1:1: error [{IO_ERROR}]")

    records = [json.loads(line) for line in report.to_json_lines().splitlines()]
    assert records[0]["suggested_fix"] == "SELECT"
    assert "suggested_fix" not in records[1]
    assert set(records[0]) >= {"file", "line", "column", "rule_id", "severity", "message"}


def test_closest_name():
    names = ["ReservedWordCasing", "IdentifierShape"]
    assert closest_name("ReservedWordCasin", names) == "ReservedWordCasing"
    assert closest_name("Nothing", names) is None
