"""
风格配置：默认值 + 可选覆盖，分析期间只读
"""

import json
import os
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .diagnostics import Severity

DEFAULT_CONFIG_FILE = ".sqlstyle.json"
KEYWORD_CASES = ("upper", "lower")

KNOWN_KEYS = (
    "indent_width",
    "max_identifier_length",
    "enabled_rules",
    "disabled_rules",
    "severity_overrides",
    "keyword_case",
    "jobs",
    "timeout",
    "log_dir",
)


class ConfigError(Exception):
    """配置内容无效"""

    pass


class StyleConfig:
    """一次运行使用的风格配置"""

    def __init__(
        self,
        indent_width: int = 4,
        max_identifier_length: int = 30,
        enabled_rules: Optional[Iterable[str]] = None,
        disabled_rules: Optional[Iterable[str]] = None,
        severity_overrides: Optional[Dict[str, Severity]] = None,
        keyword_case: str = "upper",
        jobs: Optional[int] = None,
        timeout: Optional[float] = None,
        log_dir: Optional[str] = None,
    ):
        if not isinstance(indent_width, int) or indent_width < 1:
            raise ConfigError(f"indent_width 必须是正整数，当前为 {indent_width!r}")
        if not isinstance(max_identifier_length, int) or max_identifier_length < 1:
            raise ConfigError(f"max_identifier_length 必须是正整数，当前为 {max_identifier_length!r}")
        if keyword_case not in KEYWORD_CASES:
            raise ConfigError(f"keyword_case 只能是 upper 或 lower，当前为 {keyword_case!r}")
        if jobs is not None and (not isinstance(jobs, int) or jobs < 1):
            raise ConfigError(f"jobs 必须是正整数，当前为 {jobs!r}")
        if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
            raise ConfigError(f"timeout 必须是正数，当前为 {timeout!r}")

        self.indent_width = indent_width
        self.max_identifier_length = max_identifier_length
        # None 表示启用全部已注册规则
        self.enabled_rules: Optional[FrozenSet[str]] = (
            frozenset(enabled_rules) if enabled_rules is not None else None
        )
        self.disabled_rules: FrozenSet[str] = frozenset(disabled_rules or ())
        self.severity_overrides: Dict[str, Severity] = dict(severity_overrides or {})
        self.keyword_case = keyword_case
        self.jobs = jobs
        self.timeout = timeout
        self.log_dir = log_dir

    def __repr__(self):
        return f"StyleConfig({self.to_dict()})"

    def is_enabled(self, rule_id: str) -> bool:
        if rule_id in self.disabled_rules:
            return False
        return self.enabled_rules is None or rule_id in self.enabled_rules

    def severity_for(self, rule_id: str, default: Severity) -> Severity:
        return self.severity_overrides.get(rule_id, default)

    def apply_case(self, word: str) -> str:
        return word.lower() if self.keyword_case == "lower" else word.upper()

    def referenced_rules(self) -> FrozenSet[str]:
        """配置中出现的全部规则名，用于校验拼写"""
        names = set(self.disabled_rules) | set(self.severity_overrides)
        if self.enabled_rules is not None:
            names |= set(self.enabled_rules)
        return frozenset(names)

    def with_overrides(self, **changes: Any) -> "StyleConfig":
        """返回应用了覆盖项的新配置，值为None的项保持不变"""
        values = self._values()
        for key, value in changes.items():
            if key not in values:
                raise ConfigError(f"未知的配置项 '{key}'")
            if value is not None:
                values[key] = value
        return StyleConfig(**values)

    def _values(self) -> Dict[str, Any]:
        return {
            "indent_width": self.indent_width,
            "max_identifier_length": self.max_identifier_length,
            "enabled_rules": self.enabled_rules,
            "disabled_rules": self.disabled_rules,
            "severity_overrides": self.severity_overrides,
            "keyword_case": self.keyword_case,
            "jobs": self.jobs,
            "timeout": self.timeout,
            "log_dir": self.log_dir,
        }

    def to_dict(self) -> Dict[str, Any]:
        values = self._values()
        values["enabled_rules"] = sorted(self.enabled_rules) if self.enabled_rules is not None else None
        values["disabled_rules"] = sorted(self.disabled_rules)
        values["severity_overrides"] = {k: v.label for k, v in sorted(self.severity_overrides.items())}
        return values


def config_from_dict(data: Dict[str, Any]) -> StyleConfig:
    """从字典（JSON载荷）构造配置"""
    if not isinstance(data, dict):
        raise ConfigError("配置内容必须是JSON对象")

    unknown = [key for key in data if key not in KNOWN_KEYS]
    if unknown:
        raise ConfigError(f"未知的配置项: {', '.join(sorted(unknown))}")

    values = dict(data)
    overrides = values.get("severity_overrides")
    if overrides is not None:
        if not isinstance(overrides, dict):
            raise ConfigError("severity_overrides 必须是 {规则名: 级别} 对象")
        try:
            values["severity_overrides"] = {
                rule: Severity.parse(level) for rule, level in overrides.items()
            }
        except (ValueError, AttributeError) as e:
            raise ConfigError(str(e))

    for key in ("enabled_rules", "disabled_rules"):
        rules = values.get(key)
        if rules is not None and (
            not isinstance(rules, list) or not all(isinstance(r, str) for r in rules)
        ):
            raise ConfigError(f"{key} 必须是规则名列表")

    return StyleConfig(**values)


def load_config(path: Optional[str] = None) -> StyleConfig:
    """读取JSON配置文件；未指定路径时尝试当前目录下的 .sqlstyle.json"""
    if path is None:
        if not os.path.exists(DEFAULT_CONFIG_FILE):
            return StyleConfig()
        path = DEFAULT_CONFIG_FILE

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"无法读取配置文件 {path}: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"配置文件 {path} 不是有效的JSON: 行{e.lineno},列{e.colno} {e.msg}")

    return config_from_dict(data)
