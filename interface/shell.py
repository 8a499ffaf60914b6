"""
交互式SQL风格检查Shell
"""

from typing import List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggest, Suggestion
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from sql.segmenter import split_sql

from .analyzer import StyleAnalyzer
from .formatter import format_report, format_rule_table

SHELL_COMMANDS = ["help", "rules", "config", "quit", "exit"]


class _SQLCompleter(Completer):
    """关键字与Shell命令补全"""

    def __init__(self, analyzer: StyleAnalyzer):
        self.analyzer = analyzer
        self.keywords = [analyzer.config.apply_case(word) for word in analyzer.keywords]

    def get_completions(self, document: Document, complete_event):
        word = document.get_word_before_cursor(WORD=True)
        if not word:
            return

        low = word.lower()
        if document.text_before_cursor.strip() == word:
            for command in SHELL_COMMANDS:
                if command.startswith(low):
                    yield Completion(command, start_position=-len(word))
        for kw in self.keywords:
            if kw.lower().startswith(low):
                yield Completion(kw, start_position=-len(word))


class _InlineSuggest(AutoSuggest):
    def __init__(self):
        self.seed_words = [
            "help", "rules", "config",
            "CREATE TABLE ", "SELECT ", "INSERT INTO ", "UPDATE ", "DELETE FROM ",
        ]

    def get_suggestion(self, buffer, document: Document):
        text = document.text_before_cursor
        if not text:
            return None
        # 基于固定词典的灰色联想（当输入是前缀时补足建议）
        for w in self.seed_words:
            if w.lower().startswith(text.lower()) and w.lower() != text.lower():
                return Suggestion(w[len(text):])
        return None


class SQLShell:
    """SQL风格检查交互式Shell：输入以分号结束的语句，显示检查结果与格式化结果"""

    def __init__(self, analyzer: StyleAnalyzer, session: Optional[PromptSession] = None):
        self.analyzer = analyzer
        self.running = True
        self._pt_session = session or PromptSession(
            completer=_SQLCompleter(analyzer),
            auto_suggest=_InlineSuggest(),
        )

    def start(self):
        """启动Shell"""
        print("=" * 60)
        print("🧹 欢迎使用 SQL 风格检查 Shell")
        print("=" * 60)
        print("输入以分号结束的SQL语句进行检查；输入 'help' 查看帮助，'quit' 或 'exit' 退出")
        print()

        while self.running:
            try:
                user_input = self._get_input()
                if user_input:
                    self._process_command(user_input)
            except KeyboardInterrupt:
                self._safe_exit()
                break
            except EOFError:
                self._safe_exit()
                break

    def _get_input(self) -> Optional[str]:
        """读取输入，直到出现顶层分号（或输入了Shell命令）"""
        lines: List[str] = []
        prompt_main = "SQL> "
        prompt_more = "...> "
        while True:
            line = self._pt_session.prompt(prompt_main if not lines else prompt_more)
            if not lines and line.strip().lower() in SHELL_COMMANDS:
                return line.strip()
            # 续行中的空行表示强制提交
            if not line.strip() and lines:
                break
            lines.append(line)
            statements, remainder = split_sql("\n".join(lines))
            if statements and not remainder.strip():
                break
        text = "\n".join(lines)
        return text if text.strip() else None

    def _process_command(self, command: str):
        """处理命令或SQL文本"""
        lowered = command.strip().lower()

        if lowered in ("quit", "exit"):
            self._safe_exit()
            return
        if lowered == "help":
            self._show_help()
            return
        if lowered == "rules":
            format_rule_table(self.analyzer.engine.describe())
            return
        if lowered == "config":
            self._show_config()
            return

        self.check_sql(command)

    def check_sql(self, sql: str):
        """检查并显示格式化结果"""
        report = self.analyzer.analyze_text(sql)
        format_report(report)

        formatted = self.analyzer.format_text(sql)
        if formatted.strip() and formatted.strip() != sql.strip():
            print("\n格式化结果:")
            print(formatted.rstrip("\n"))
        print()

    def _show_config(self):
        print("\n当前配置:")
        for key, value in self.analyzer.config.to_dict().items():
            print(f"  {key:<22} {value}")
        print()

    def _safe_exit(self):
        """安全退出"""
        print("\n再见！")
        self.running = False

    def _show_help(self):
        """显示帮助信息"""
        print(
            """
可用命令:
  help                 显示此帮助
  rules                列出全部规则及其级别
  config               显示当前配置
  quit / exit          退出

输入SQL语句并以分号结束即可检查，例如:
  select name from staff where staff_id=1;
续行中输入空行可提交不以分号结尾的语句。
"""
        )


def interactive_style_shell(analyzer: StyleAnalyzer):
    """启动交互式风格检查Shell"""
    shell = SQLShell(analyzer)
    shell.start()
