"""
检查结果格式化器
"""

from typing import Dict, List

from sql.diagnostics import DiagnosticReport, Severity

SEVERITY_ICONS = {
    Severity.ERROR: "❌",
    Severity.WARNING: "⚠️ ",
    Severity.INFO: "💡",
}


def render_report(report: DiagnosticReport, output: str = "text") -> str:
    """按输出格式渲染诊断汇总（text / jsonl）"""
    if output == "jsonl":
        return report.to_json_lines()
    return report.to_text()


def format_report(report: DiagnosticReport):
    """格式化并打印检查结果（交互式Shell使用）"""
    violations = report.sorted_violations()
    if not violations:
        print("✅ 没有发现风格问题")
        return

    for v in violations:
        icon = SEVERITY_ICONS.get(v.severity, "")
        print(f"{icon} 行{v.line},列{v.column} [{v.rule_id}] {v.message}")
        if v.suggested_fix is not None:
            print(f"     建议: {v.suggested_fix.strip()}")

    format_summary(report.counts())


def format_summary(counts: Dict[str, int]):
    """打印各级别违规数量"""
    total = sum(counts.values())
    print(
        f"\n共 {total} 项 (error: {counts.get('error', 0)}, "
        f"warning: {counts.get('warning', 0)}, info: {counts.get('info', 0)})"
    )


def format_rule_table(rules: List[Dict[str, str]]):
    """格式化规则列表"""
    if not rules:
        print("没有已注册的规则")
        return

    columns = ["rule_id", "severity", "enabled", "description"]
    headers = {"rule_id": "规则", "severity": "级别", "enabled": "启用", "description": "说明"}

    # 计算每列的最大宽度（说明列不补齐）
    col_widths = {}
    for col in columns[:-1]:
        col_widths[col] = max(len(headers[col]), max(len(rule[col]) for rule in rules))

    header = " | ".join(f"{headers[col]:<{col_widths[col]}}" for col in columns[:-1])
    print(f"{header} | {headers['description']}")
    print("-" * (len(header) + 8))

    for rule in rules:
        row_str = " | ".join(f"{rule[col]:<{col_widths[col]}}" for col in columns[:-1])
        print(f"{row_str} | {rule['description']}")

    print(f"\n共 {len(rules)} 条规则")
