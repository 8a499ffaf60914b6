"""
诊断报告：汇总各文件、各语句的违规项，按 (文件, 偏移) 排序后输出
"""

import json
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from .lexer import LexError, Token


class Severity(Enum):
    """违规级别"""

    INFO = 1
    WARNING = 2
    ERROR = 3

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, text: str) -> "Severity":
        try:
            return cls[text.strip().upper()]
        except KeyError:
            raise ValueError(f"未知的级别 '{text}'，可选: error / warning / info")


# 非规则产生的诊断项
LEX_ERROR = "LexError"
SEGMENTATION_AMBIGUITY = "SegmentationAmbiguity"
IO_ERROR = "IOError"
TIMEOUT = "Timeout"

STDIN_NAME = "<stdin>"


class RuleViolation(NamedTuple):
    rule_id: str
    severity: Severity
    start: int
    end: int
    line: int
    column: int
    message: str
    suggested_fix: Optional[str] = None
    related_spans: Tuple[Tuple[int, int], ...] = ()
    file: str = STDIN_NAME

    @property
    def sort_key(self):
        return (self.file, self.start, self.rule_id, self.end, self.message)

    def with_file(self, file: str) -> "RuleViolation":
        return self._replace(file=file)

    def with_severity(self, severity: Severity) -> "RuleViolation":
        return self._replace(severity=severity)

    def to_record(self) -> Dict:
        record = {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "rule_id": self.rule_id,
            "severity": self.severity.label,
            "message": self.message,
        }
        if self.suggested_fix is not None:
            record["suggested_fix"] = self.suggested_fix
        return record


def violation_at(rule_id: str, severity: Severity, token: Token, message: str,
                 suggested_fix: Optional[str] = None, end_token: Optional[Token] = None,
                 related: Iterable[Token] = ()) -> RuleViolation:
    """以Token位置构造违规项"""
    end = (end_token or token).end
    return RuleViolation(
        rule_id=rule_id,
        severity=severity,
        start=token.offset,
        end=end,
        line=token.line,
        column=token.column,
        message=message,
        suggested_fix=suggested_fix,
        related_spans=tuple((t.offset, t.end) for t in related),
    )


def lex_error_violation(error: LexError, file: str = STDIN_NAME) -> RuleViolation:
    offset = error.offset or 0
    return RuleViolation(
        rule_id=LEX_ERROR,
        severity=Severity.ERROR,
        start=offset,
        end=offset + 1,
        line=error.line or 1,
        column=error.column or 1,
        message=f"{error.error_type}: {error.reason}，已在下一个分号处恢复",
        file=file,
    )


def file_error_violation(file: str, message: str, rule_id: str = IO_ERROR) -> RuleViolation:
    return RuleViolation(
        rule_id=rule_id,
        severity=Severity.ERROR,
        start=0,
        end=0,
        line=1,
        column=1,
        message=message,
        file=file,
    )


def _levenshtein(a: str, b: str) -> int:
    a, b = a or "", b or ""
    la, lb = len(a), len(b)
    if la == 0:
        return lb
    if lb == 0:
        return la
    dp = list(range(lb + 1))
    for i in range(1, la + 1):
        prev = dp[0]
        dp[0] = i
        for j in range(1, lb + 1):
            cur = dp[j]
            cost = 0 if a[i - 1].lower() == b[j - 1].lower() else 1
            dp[j] = min(dp[j] + 1, dp[j - 1] + 1, prev + cost)
            prev = cur
    return dp[-1]


def closest_name(name: str, candidates: List[str]) -> Optional[str]:
    """在候选中找最接近的名字，用于“是否指 …”提示"""
    if not candidates:
        return None
    scored = [(c, _levenshtein(name, c)) for c in candidates]
    scored.sort(key=lambda x: x[1])
    best, dist = scored[0]
    # 经验阈值：长度<=4 允许距离1；<=8 允许2；否则取长度的三分之一
    limit = 1 if len(name) <= 4 else (2 if len(name) <= 8 else max(3, len(name) // 3))
    return best if dist <= limit else None


class DiagnosticReport:
    """诊断汇总器"""

    def __init__(self):
        self.violations: List[RuleViolation] = []
        self.files: List[str] = []
        self.fatal_files: List[str] = []

    def add(self, violation: RuleViolation):
        self.violations.append(violation)
        if violation.rule_id == IO_ERROR and violation.file not in self.fatal_files:
            self.fatal_files.append(violation.file)

    def extend(self, violations: Iterable[RuleViolation]):
        for violation in violations:
            self.add(violation)

    def sorted_violations(self) -> List[RuleViolation]:
        return sorted(self.violations, key=lambda v: v.sort_key)

    def counts(self) -> Dict[str, int]:
        result = {severity.label: 0 for severity in (Severity.ERROR, Severity.WARNING, Severity.INFO)}
        for violation in self.violations:
            result[violation.severity.label] += 1
        return result

    def by_rule(self) -> Dict[str, int]:
        result: Dict[str, int] = {}
        for violation in self.violations:
            result[violation.rule_id] = result.get(violation.rule_id, 0) + 1
        return dict(sorted(result.items()))

    @property
    def has_errors(self) -> bool:
        return any(v.severity == Severity.ERROR for v in self.violations)

    def exit_code(self) -> int:
        """0: 无违规或仅警告；1: 存在error级违规；2: 存在无法恢复的输入错误"""
        if self.fatal_files:
            return 2
        return 1 if self.has_errors else 0

    def to_text(self) -> str:
        lines = []
        for v in self.sorted_violations():
            line = f"{v.file}:{v.line}:{v.column}: {v.severity.label} [{v.rule_id}] {v.message}"
            if v.suggested_fix is not None:
                line += f" (建议: {v.suggested_fix.strip()!r})"
            lines.append(line)
        return "\n".join(lines)

    def to_json_lines(self) -> str:
        """每行一个JSON记录，便于编辑器集成"""
        return "\n".join(
            json.dumps(v.to_record(), ensure_ascii=False) for v in self.sorted_violations()
        )
