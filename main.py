#!/usr/bin/env python3
"""
SQL风格检查与格式化工具主程序
"""

import argparse
import sys
from typing import List, Optional

from interface import NoInputError, StyleAnalyzer, format_rule_table, interactive_style_shell, render_report
from sql.diagnostics import STDIN_NAME
from sql.style_config import ConfigError, load_config


def _common_options() -> argparse.ArgumentParser:
    """各子命令共用的配置选项"""
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--config", metavar="FILE", help="JSON配置文件（默认读取当前目录下的 .sqlstyle.json）")
    p.add_argument("--rules", metavar="A,B", help="只启用指定的规则，逗号分隔")
    p.add_argument("--jobs", type=int, metavar="N", help="并行工作线程数")
    p.add_argument("--timeout", type=float, metavar="SECONDS", help="整次运行的超时时间（秒）")
    p.add_argument("--keyword-case", choices=["upper", "lower"], help="关键字大小写")
    p.add_argument("--indent-width", type=int, metavar="N", help="CREATE TABLE 缩进宽度")
    p.add_argument("--log-dir", metavar="DIR", help="写入运行日志的目录")
    return p


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    p = argparse.ArgumentParser(prog="sqlstyle", description="SQL风格检查与格式化工具")
    sub = p.add_subparsers(dest="command")

    check = sub.add_parser("check", parents=[common], help="检查SQL文件的风格问题")
    check.add_argument("paths", nargs="+", help="SQL文件或目录，'-' 表示标准输入")
    check.add_argument("--output", choices=["text", "jsonl"], default="text", help="输出格式")

    fmt = sub.add_parser("format", parents=[common], help="按规范格式改写SQL文件")
    fmt.add_argument("paths", nargs="+", help="SQL文件或目录，'-' 表示标准输入")
    mode = fmt.add_mutually_exclusive_group()
    mode.add_argument("--write", action="store_true", help="把结果写回原文件")
    mode.add_argument("--diff", action="store_true", help="输出统一格式的差异")

    sub.add_parser("rules", parents=[common], help="列出已注册的规则")
    sub.add_parser("shell", parents=[common], help="启动交互式Shell")

    serve = sub.add_parser("serve", parents=[common], help="启动 HTTP API 服务")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)
    serve.add_argument("--debug", action="store_true")
    return p


def build_analyzer(args: argparse.Namespace) -> StyleAnalyzer:
    """默认值 + 配置文件 + 命令行覆盖"""
    config = load_config(args.config)
    enabled = [name.strip() for name in args.rules.split(",") if name.strip()] if args.rules else None
    config = config.with_overrides(
        enabled_rules=enabled,
        jobs=args.jobs,
        timeout=args.timeout,
        keyword_case=args.keyword_case,
        indent_width=args.indent_width,
        log_dir=args.log_dir,
    )
    return StyleAnalyzer(config)


def run_check(analyzer: StyleAnalyzer, args: argparse.Namespace) -> int:
    report = analyzer.check_paths(args.paths)
    output = render_report(report, args.output)
    if output:
        print(output)
    if args.output == "text":
        counts = report.counts()
        print(
            f"检查了 {len(report.files)} 个文件: error {counts['error']}, "
            f"warning {counts['warning']}, info {counts['info']}",
            file=sys.stderr,
        )
    return report.exit_code()


def run_format(analyzer: StyleAnalyzer, args: argparse.Namespace) -> int:
    outcomes, report = analyzer.format_paths(args.paths, write=args.write)
    for outcome in outcomes:
        if args.diff:
            sys.stdout.write(outcome.diff())
        elif args.write:
            if outcome.changed and outcome.path != STDIN_NAME:
                print(f"✅ 已格式化 {outcome.path}", file=sys.stderr)
            elif outcome.formatted is not None and outcome.path == STDIN_NAME:
                sys.stdout.write(outcome.formatted)
        elif outcome.formatted is not None:
            sys.stdout.write(outcome.formatted)

    if report.violations:
        print(report.to_text(), file=sys.stderr)
    return report.exit_code()


def main(argv: Optional[List[str]] = None) -> int:
    """主程序"""
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    try:
        analyzer = build_analyzer(args)
    except ConfigError as e:
        print(f"❌ 配置错误: {e}", file=sys.stderr)
        return 2

    try:
        if args.command == "check":
            return run_check(analyzer, args)
        if args.command == "format":
            return run_format(analyzer, args)
        if args.command == "rules":
            format_rule_table(analyzer.engine.describe())
            return 0
        if args.command == "shell":
            interactive_style_shell(analyzer)
            return 0
        if args.command == "serve":
            from interface.web_api import StyleWebAPI

            StyleWebAPI(analyzer.config).run(host=args.host, port=args.port, debug=args.debug)
            return 0
    except NoInputError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2
    finally:
        analyzer.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
