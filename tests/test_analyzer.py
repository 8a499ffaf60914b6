"""
/tests/test_analyzer.py

风格检查主接口测试：文本检查、文件读取、并行检查、超时与格式化写回
"""
import sys
import os
import io
import time

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest

from interface.analyzer import FormatOutcome, NoInputError, StyleAnalyzer
from sql.diagnostics import IO_ERROR, LEX_ERROR, SEGMENTATION_AMBIGUITY, STDIN_NAME, TIMEOUT, Severity
from sql.rules import CASING
from sql.style_config import ConfigError, StyleConfig
from style_logging import LogManager


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


@pytest.fixture
def analyzer():
    a = StyleAnalyzer()
    yield a
    a.close()


# ---------------------------------------------------------------------------
# 单段文本
# ---------------------------------------------------------------------------

def test_analysis_continues_after_lex_error(analyzer):
    report = analyzer.analyze_text("SELECT 'abc FROM t;\nselect b from u;")
    lex_errors = [v for v in report.violations if v.rule_id == LEX_ERROR]
    assert len(lex_errors) == 1
    assert (lex_errors[0].line, lex_errors[0].column) == (1, 8)
    assert lex_errors[0].severity == Severity.ERROR

    casing = [v for v in report.violations if v.rule_id == CASING]
    assert [(v.line, v.suggested_fix) for v in casing] == [(2, "SELECT"), (2, "FROM")]
    assert report.exit_code() == 1


def test_lex_error_inside_parentheses_recovers(analyzer):
    report = analyzer.analyze_text("INSERT INTO t VALUES ('abc);\nselect 1 from t;")
    assert SEGMENTATION_AMBIGUITY not in {v.rule_id for v in report.violations}
    lex_errors = [v for v in report.violations if v.rule_id == LEX_ERROR]
    assert [(v.line, v.column) for v in lex_errors] == [(1, 23)]

    casing = [v for v in report.violations if v.rule_id == CASING]
    assert [(v.line, v.suggested_fix) for v in casing] == [(2, "SELECT"), (2, "FROM")]


def test_unbalanced_parenthesis_reported(analyzer):
    report = analyzer.analyze_text("SELECT (a FROM t")
    assert [v.rule_id for v in report.violations] == [SEGMENTATION_AMBIGUITY]
    assert report.exit_code() == 1


def test_clean_text(analyzer):
    report = analyzer.analyze_text("SELECT a\n  FROM t;\n")
    assert report.violations == []
    assert report.exit_code() == 0
    assert report.files == [STDIN_NAME]


def test_warnings_only_exit_zero(analyzer):
    report = analyzer.analyze_text("SELECT a FROM t;")
    assert report.violations
    assert all(v.severity != Severity.ERROR for v in report.violations)
    assert report.exit_code() == 0


def test_format_text(analyzer):
    assert analyzer.format_text("select a from t") == "SELECT a\n  FROM t\n"


def test_unknown_rule_in_config():
    with pytest.raises(ConfigError, match="IdentifierShape"):
        StyleAnalyzer(StyleConfig(disabled_rules=["IdentiferShape"]))


# ---------------------------------------------------------------------------
# 文件
# ---------------------------------------------------------------------------

def test_directories_expand_to_sql_files(analyzer, tmp_path):
    (tmp_path / "sub").mkdir()
    _write(tmp_path / "b.sql", "SELECT 1;\n")
    _write(tmp_path / "sub" / "a.SQL", "SELECT 2;\n")
    _write(tmp_path / "notes.txt", "select nothing")
    paths = analyzer.resolve_paths([str(tmp_path)])
    assert paths == [str(tmp_path / "b.sql"), str(tmp_path / "sub" / "a.SQL")]


def test_no_input(analyzer, tmp_path):
    with pytest.raises(NoInputError):
        analyzer.check_paths([str(tmp_path)])


def test_missing_file_is_fatal(analyzer, tmp_path):
    good = _write(tmp_path / "good.sql", "select 1 from t;")
    missing = str(tmp_path / "missing.sql")
    report = analyzer.check_paths([good, missing])
    assert report.fatal_files == [missing]
    assert report.exit_code() == 2
    # 其余文件照常检查
    assert any(v.rule_id == CASING and v.file == good for v in report.violations)


def test_invalid_utf8_is_fatal(analyzer, tmp_path):
    path = tmp_path / "latin.sql"
    path.write_bytes(b"SELECT '\xe9' FROM t;")
    report = analyzer.check_paths([str(path)])
    assert [v.rule_id for v in report.violations] == [IO_ERROR]
    assert "UTF-8" in report.violations[0].message
    assert report.exit_code() == 2


def test_stdin(analyzer, monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(b"select 1 from t;")))
    report = analyzer.check_paths(["-"])
    assert report.files == [STDIN_NAME]
    assert {v.file for v in report.violations} == {STDIN_NAME}


def test_parallel_results_match_serial(tmp_path):
    paths = []
    for index in range(8):
        paths.append(_write(
            tmp_path / f"f{index}.sql",
            "select a from t;\nSELECT s.x FROM staff s;\nselect order_ from u;\n" * (index + 1),
        ))

    serial = StyleAnalyzer(StyleConfig(jobs=1))
    parallel = StyleAnalyzer(StyleConfig(jobs=4))
    expected = serial.check_paths(paths).sorted_violations()
    assert expected
    for _ in range(3):
        assert parallel.check_paths(paths).sorted_violations() == expected


def test_check_matches_single_text(analyzer, tmp_path):
    text = "select a from t;\nSELECT s.x FROM staff s;"
    path = _write(tmp_path / "one.sql", text)
    from_file = [v._replace(file=STDIN_NAME) for v in analyzer.check_paths([path]).sorted_violations()]
    assert from_file == analyzer.analyze_text(text).sorted_violations()


def test_timeout_reports_unfinished_files(tmp_path):
    analyzer = StyleAnalyzer(StyleConfig(timeout=0.05, jobs=2))

    def slow(statement, source):
        time.sleep(0.5)
        return []

    analyzer.evaluate = slow
    path = _write(tmp_path / "slow.sql", "SELECT 1;\nSELECT 2;\n")
    report = analyzer.check_paths([path])
    timeouts = [v for v in report.violations if v.rule_id == TIMEOUT]
    assert len(timeouts) == 1
    assert timeouts[0].file == path
    assert report.exit_code() == 1


# ---------------------------------------------------------------------------
# 格式化
# ---------------------------------------------------------------------------

def test_format_paths_without_write(analyzer, tmp_path):
    path = _write(tmp_path / "q.sql", "select a from t;")
    outcomes, report = analyzer.format_paths([path])
    assert outcomes[0].formatted == "SELECT a\n  FROM t;\n"
    assert outcomes[0].changed
    assert (tmp_path / "q.sql").read_text(encoding="utf-8") == "select a from t;"
    assert report.exit_code() == 0


def test_format_paths_write(analyzer, tmp_path):
    path = _write(tmp_path / "q.sql", "select a from t;\nselect b from u;")
    analyzer.format_paths([path], write=True)
    assert (tmp_path / "q.sql").read_text(encoding="utf-8") == "SELECT a\n  FROM t;\n\nSELECT b\n  FROM u;\n"

    outcomes, _ = analyzer.format_paths([path], write=True)
    assert not outcomes[0].changed


def test_format_outcome_diff():
    outcome = FormatOutcome("q.sql", "select a from t;\n", "SELECT a\n  FROM t;\n")
    diff = outcome.diff()
    assert "-select a from t;" in diff
    assert "+  FROM t;" in diff
    assert FormatOutcome("q.sql", "x\n", "x\n").diff() == ""


# ---------------------------------------------------------------------------
# 日志
# ---------------------------------------------------------------------------

def test_run_log_written(tmp_path):
    log_dir = tmp_path / "logs"
    analyzer = StyleAnalyzer(StyleConfig(log_dir=str(log_dir)))
    path = _write(tmp_path / "q.sql", "select 'x from t;")
    analyzer.check_paths([path])
    analyzer.close()

    content = (log_dir / "sqlstyle.log").read_text(encoding="utf-8")
    assert "[WARNING] [LEXER]" in content
    assert "[INFO] [ANALYZER] 检查完成" in content
    assert "运行结束" in content


def test_rule_failures_logged(tmp_path):
    manager = LogManager("unit", str(tmp_path))
    manager.log_rule_failure("Broken", "SELECT 1;", RuntimeError("boom"))
    manager.close()
    content = (tmp_path / "unit.log").read_text(encoding="utf-8")
    assert "规则 Broken 执行失败" in content
    assert "RuntimeError: boom" in content


def test_no_log_dir_writes_nothing(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    manager = LogManager("quiet", None)
    manager.log_error("TEST", "nothing")
    manager.close()
    assert list(tmp_path.iterdir()) == []
