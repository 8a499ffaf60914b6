"""
风格检查主接口

把词法分析、分段、规则引擎和格式化器串起来，并负责读取输入文件。
语句之间互不依赖，批量处理时以语句为单位提交到线程池。
"""

import difflib
import os
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, List, NamedTuple, Optional, Tuple

from catalog.keywords import DEFAULT_KEYWORDS, KeywordTable
from sql.diagnostics import (
    SEGMENTATION_AMBIGUITY,
    STDIN_NAME,
    TIMEOUT,
    DiagnosticReport,
    RuleViolation,
    Severity,
    file_error_violation,
    lex_error_violation,
)
from sql.formatter import SQLFormatter
from sql.lexer import SQLLexer
from sql.rules import RuleEngine, check_rule_ids
from sql.segmenter import StatementSegmenter
from sql.structure import Statement
from sql.style_config import StyleConfig
from style_logging import LogManager

STDIN_PATH = "-"
SQL_SUFFIX = ".sql"


class NoInputError(Exception):
    """没有解析到任何输入文件"""

    pass


class SourceFile(NamedTuple):
    path: str
    text: Optional[str]
    error: Optional[RuleViolation]


class ParsedSource(NamedTuple):
    path: str
    text: str
    statements: List[Statement]
    diagnostics: List[RuleViolation]


class FormatOutcome(NamedTuple):
    path: str
    original: str
    formatted: Optional[str]

    @property
    def changed(self) -> bool:
        return self.formatted is not None and self.formatted != self.original

    def diff(self) -> str:
        if not self.changed:
            return ""
        return "".join(
            difflib.unified_diff(
                self.original.splitlines(keepends=True),
                self.formatted.splitlines(keepends=True),
                fromfile=f"{self.path} (原始)",
                tofile=f"{self.path} (格式化)",
            )
        )


class _ResultCollector:
    """只追加、加锁的结果收集器；关闭后到达的结果被丢弃"""

    def __init__(self):
        self._lock = threading.Lock()
        self._closed = False
        self.results: Dict[Tuple[str, int], object] = {}

    def add(self, key: Tuple[str, int], value):
        with self._lock:
            if not self._closed:
                self.results[key] = value

    def close(self):
        with self._lock:
            self._closed = True


class StyleAnalyzer:
    """SQL风格检查与格式化的统一入口"""

    def __init__(self, config: Optional[StyleConfig] = None, keywords: KeywordTable = DEFAULT_KEYWORDS,
                 log_manager: Optional[LogManager] = None):
        self.config = config or StyleConfig()
        self.keywords = keywords
        # 配置中引用的规则名必须存在
        check_rule_ids(self.config.referenced_rules())

        self.log_manager = log_manager or LogManager("sqlstyle", self.config.log_dir)
        self.engine = RuleEngine(self.config, self.keywords, self.log_manager)
        self.formatter = SQLFormatter(self.config, self.keywords)

    # ------------------------------------------------------------------
    # 单段文本
    # ------------------------------------------------------------------

    def parse(self, text: str, source: str = STDIN_NAME) -> ParsedSource:
        """词法分析并分段，同时收集词法错误与分段歧义诊断"""
        lexer = SQLLexer(text, self.keywords)
        tokens = lexer.tokenize()
        segmenter = StatementSegmenter(tokens, lexer.errors)
        statements = segmenter.segment()

        diagnostics = []
        for error in lexer.errors:
            self.log_manager.log_lex_error(source, error)
            diagnostics.append(lex_error_violation(error, source))
        for ambiguity in segmenter.ambiguities:
            offset = ambiguity.offset or 0
            diagnostics.append(
                RuleViolation(
                    rule_id=SEGMENTATION_AMBIGUITY,
                    severity=Severity.ERROR,
                    start=offset,
                    end=len(text),
                    line=ambiguity.line or 1,
                    column=ambiguity.column or 1,
                    message=ambiguity.reason,
                    file=source,
                )
            )
        return ParsedSource(source, text, statements, diagnostics)

    def evaluate(self, statement: Statement, source: str = STDIN_NAME) -> List[RuleViolation]:
        return [v.with_file(source) for v in self.engine.evaluate(statement)]

    def analyze_text(self, text: str, source: str = STDIN_NAME) -> DiagnosticReport:
        """检查一段SQL文本（单线程）"""
        started = time.perf_counter()
        parsed = self.parse(text, source)
        report = DiagnosticReport()
        report.files.append(source)
        report.extend(parsed.diagnostics)
        for statement in parsed.statements:
            report.extend(self.evaluate(statement, source))
        elapsed = (time.perf_counter() - started) * 1000
        self.log_manager.log_file_checked(source, len(parsed.statements), len(report.violations), elapsed)
        return report

    def format_text(self, text: str) -> str:
        """格式化一段SQL文本"""
        return self.formatter.format(text)

    # ------------------------------------------------------------------
    # 文件
    # ------------------------------------------------------------------

    def resolve_paths(self, paths: List[str]) -> List[str]:
        """展开目录为其中的 .sql 文件；"-" 表示标准输入"""
        resolved: List[str] = []
        for path in paths:
            if path == STDIN_PATH:
                resolved.append(path)
            elif os.path.isdir(path):
                for root, dirs, files in os.walk(path):
                    dirs.sort()
                    for name in sorted(files):
                        if name.lower().endswith(SQL_SUFFIX):
                            resolved.append(os.path.join(root, name))
            else:
                resolved.append(path)

        if not resolved:
            raise NoInputError("没有找到任何要处理的SQL文件")
        return resolved

    def read_source(self, path: str) -> SourceFile:
        """以UTF-8读取输入；失败时返回IOError诊断"""
        name = STDIN_NAME if path == STDIN_PATH else path
        try:
            if path == STDIN_PATH:
                data = sys.stdin.buffer.read()
            else:
                with open(path, "rb") as f:
                    data = f.read()
        except OSError as e:
            self.log_manager.log_error("ANALYZER", f"无法读取 {name}", str(e))
            return SourceFile(name, None, file_error_violation(name, f"无法读取文件: {e.strerror or e}"))

        try:
            return SourceFile(name, data.decode("utf-8"), None)
        except UnicodeDecodeError as e:
            self.log_manager.log_error("ANALYZER", f"{name} 不是有效的UTF-8", str(e))
            return SourceFile(
                name, None, file_error_violation(name, f"不是有效的UTF-8文本（字节偏移 {e.start}）")
            )

    def write_source(self, path: str, text: str) -> Optional[RuleViolation]:
        try:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(text)
        except OSError as e:
            self.log_manager.log_error("FORMATTER", f"无法写入 {path}", str(e))
            return file_error_violation(path, f"无法写入文件: {e.strerror or e}")
        return None

    def _load(self, paths: List[str], report: DiagnosticReport) -> List[ParsedSource]:
        parsed = []
        for path in self.resolve_paths(paths):
            source = self.read_source(path)
            report.files.append(source.path)
            if source.error is not None:
                report.add(source.error)
                continue
            item = self.parse(source.text, source.path)
            report.extend(item.diagnostics)
            parsed.append(item)
        return parsed

    def _run_parallel(self, sources: List[ParsedSource], task) -> Tuple[_ResultCollector, List[Tuple[str, int]]]:
        """每条语句一个任务；超时后取消排队任务并丢弃未完成的结果"""
        collector = _ResultCollector()

        def run(key, statement):
            collector.add(key, task(statement, key[0]))

        pool = ThreadPoolExecutor(max_workers=self.config.jobs)
        futures = {}
        try:
            for source in sources:
                for index, statement in enumerate(source.statements):
                    key = (source.path, index)
                    futures[pool.submit(run, key, statement)] = key
            done, not_done = wait(futures, timeout=self.config.timeout)
            collector.close()
            for future in not_done:
                future.cancel()
            for future in done:
                # 任务内部异常向上传播
                future.result()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        missing = [key for key in futures.values() if key not in collector.results]
        return collector, missing

    def _report_timeouts(self, missing: List[Tuple[str, int]], report: DiagnosticReport):
        per_file: Dict[str, int] = {}
        for path, _ in missing:
            per_file[path] = per_file.get(path, 0) + 1
        for path, count in per_file.items():
            report.add(
                file_error_violation(
                    path, f"运行超时（{self.config.timeout}秒），{count} 条语句未完成检查", rule_id=TIMEOUT
                )
            )

    def check_paths(self, paths: List[str]) -> DiagnosticReport:
        """检查多个文件，返回按 (文件, 偏移) 排序的诊断汇总"""
        report = DiagnosticReport()
        started = time.perf_counter()
        sources = self._load(paths, report)

        collector, missing = self._run_parallel(sources, self.evaluate)
        for violations in collector.results.values():
            report.extend(violations)
        self._report_timeouts(missing, report)

        elapsed = (time.perf_counter() - started) * 1000
        for source in sources:
            count = sum(1 for v in report.violations if v.file == source.path)
            self.log_manager.log_file_checked(source.path, len(source.statements), count, elapsed)
        self.log_manager.log_run_summary(len(report.files), report.counts(), len(missing))
        return report

    def format_paths(self, paths: List[str], write: bool = False) -> Tuple[List[FormatOutcome], DiagnosticReport]:
        """格式化多个文件；write为True时把有变化的结果写回原文件（标准输入除外）"""
        report = DiagnosticReport()
        sources = self._load(paths, report)

        collector, missing = self._run_parallel(
            sources, lambda statement, path: self.formatter.format_statement(statement)
        )
        self._report_timeouts(missing, report)
        incomplete = {path for path, _ in missing}

        outcomes = []
        for source in sources:
            if source.path in incomplete:
                outcomes.append(FormatOutcome(source.path, source.text, None))
                continue
            pieces = [collector.results[(source.path, index)] for index in range(len(source.statements))]
            formatted = self.formatter.join(pieces)
            outcome = FormatOutcome(source.path, source.text, formatted)
            outcomes.append(outcome)

            written = False
            if write and outcome.changed and source.path != STDIN_NAME:
                error = self.write_source(source.path, formatted)
                if error is not None:
                    report.add(error)
                else:
                    written = True
            self.log_manager.log_format_result(source.path, outcome.changed, written)

        self.log_manager.log_run_summary(len(report.files), report.counts(), len(missing))
        return outcomes, report

    def close(self):
        self.log_manager.close()
