"""
命名规则（plugin/component slug、qualified name、tools 列表）。

约定：
- plugin 与 component 名称均为 kebab-case slug：`^[a-z0-9]+(?:-[a-z0-9]+)*$`
- qualified name：`plugin:component`；command 的嵌套目录以 `:` 连接（`plugin:group:cmd`）
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, List, Optional

from skills_marketplace.core.errors import FrameworkError

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def is_valid_slug(value: Any) -> bool:
    """校验 kebab-case slug（小写字母/数字/单个连字符分隔）。"""

    return isinstance(value, str) and bool(_SLUG_RE.match(value))


def is_valid_component_name(value: Any) -> bool:
    """校验组件名：一个或多个 slug 以 `:` 连接（command 嵌套目录）。"""

    if not isinstance(value, str) or not value:
        return False
    return all(is_valid_slug(seg) for seg in value.split(":"))


@dataclass(frozen=True)
class QualifiedName:
    """解析后的组件名（plugin 可缺省，由唯一性解析）。"""

    plugin: Optional[str]
    name: str

    def __str__(self) -> str:
        """返回 `plugin:name`（plugin 缺省时仅 name）。"""

        return f"{self.plugin}:{self.name}" if self.plugin else self.name


def parse_qualified_name(raw: str, *, known_plugins: Optional[set[str]] = None) -> QualifiedName:
    """
    解析 `plugin:component`（或裸名 `component`）。

    说明：
    - 仅当首段是已知 plugin 名时才视为 plugin 前缀（command 名本身可包含 `:`）；
    - 未提供 known_plugins 时，含 `:` 的输入一律按首段为 plugin 处理。

    异常：
    - FrameworkError(COMPONENT_NAME_FORMAT_INVALID)：空串、空段或段不是 slug
    """

    text = (raw or "").strip()
    if text.startswith("/"):
        text = text[1:]
    segments = text.split(":") if text else []
    if not segments or any(not is_valid_slug(seg) for seg in segments):
        raise FrameworkError(
            code="COMPONENT_NAME_FORMAT_INVALID",
            message="Component name format is invalid. Use plugin:component.",
            details={"name": raw},
        )
    if len(segments) == 1:
        return QualifiedName(plugin=None, name=segments[0])
    if known_plugins is not None and segments[0] not in known_plugins:
        return QualifiedName(plugin=None, name=":".join(segments))
    return QualifiedName(plugin=segments[0], name=":".join(segments[1:]))


def split_tool_list(value: Any) -> List[str]:
    """
    归一化 `allowed-tools` / `tools` 字段为工具名列表。

    规则：
    - None -> []
    - str：按逗号切分；圆括号内的逗号不切分（如 `Bash(git add:*, git commit:*)`）
    - list：每项必须为非空字符串

    异常：
    - ValueError：类型不支持、括号不配对或出现空项
    """

    if value is None:
        return []
    if isinstance(value, list):
        out: List[str] = []
        for item in value:
            if not isinstance(item, str) or not item.strip():
                raise ValueError("tool list items must be non-empty strings")
            out.append(item.strip())
        return out
    if not isinstance(value, str):
        raise ValueError(f"tool list must be a string or list, got {type(value).__name__}")

    parts: List[str] = []
    depth = 0
    buf: List[str] = []
    for ch in value:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValueError("unbalanced parentheses in tool list")
        if ch == "," and depth == 0:
            parts.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    if depth != 0:
        raise ValueError("unbalanced parentheses in tool list")
    parts.append("".join(buf))

    stripped = [p.strip() for p in parts]
    if len(stripped) == 1 and not stripped[0]:
        return []
    if any(not p for p in stripped):
        raise ValueError("empty entry in tool list")
    return stripped
