"""
正文占位符处理：`${CLAUDE_PLUGIN_ROOT}` 展开与 command 参数渲染。

约定：
- `${CLAUDE_PLUGIN_ROOT}` 由宿主在加载时替换为 plugin 根目录的绝对路径；
- command 模板中 `$ARGUMENTS` 为原始参数串，`$1..$N` 为按 shell 规则切分后的位置参数。
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
import shlex
from typing import Iterator, List, Set

PLUGIN_ROOT_TOKEN = "${CLAUDE_PLUGIN_ROOT}"

# 引用路径遇到空白、引号、反引号、括号、尖括号即终止
_PLUGIN_ROOT_REF_RE = re.compile(r"\$\{CLAUDE_PLUGIN_ROOT\}/([^\s`'\"()<>\[\]{}|]+)")
_TRAILING_PUNCT = ".,;:!?"
_PLACEHOLDER_RE = re.compile(r"\$(ARGUMENTS|[1-9][0-9]*)\b")


@dataclass(frozen=True)
class PluginRootRef:
    """正文中的 `${CLAUDE_PLUGIN_ROOT}/<path>` 引用。"""

    rel_path: str
    line: int


def expand_plugin_root(text: str, plugin_root: Path) -> str:
    """把 `${CLAUDE_PLUGIN_ROOT}` 全部替换为 plugin 根目录的绝对 POSIX 路径。"""

    return text.replace(PLUGIN_ROOT_TOKEN, Path(plugin_root).resolve().as_posix())


def find_plugin_root_refs(text: str) -> Iterator[PluginRootRef]:
    """
    扫描正文中的 `${CLAUDE_PLUGIN_ROOT}/<path>` 引用（按行号与出现顺序）。

    说明：
    - 句末标点（`.`/`,` 等）会被裁掉；
    - 仅有 token 而无后续路径的出现不产出引用。
    """

    for lineno, line in enumerate(text.splitlines(), start=1):
        for m in _PLUGIN_ROOT_REF_RE.finditer(line):
            rel = m.group(1).rstrip(_TRAILING_PUNCT)
            if rel:
                yield PluginRootRef(rel_path=rel, line=lineno)


def used_placeholders(template: str) -> Set[str]:
    """返回模板中出现的参数占位符（`$ARGUMENTS` / `$1` ...，含 `$` 前缀）。"""

    return {f"${m.group(1)}" for m in _PLACEHOLDER_RE.finditer(template)}


def _split_positionals(arguments: str) -> List[str]:
    """按 shell 规则切分位置参数；引号不配对时回退为空白切分。"""

    try:
        return shlex.split(arguments)
    except ValueError:
        return arguments.split()


def render_arguments(template: str, arguments: str) -> str:
    """
    渲染 command 模板中的参数占位符。

    规则：
    - `$ARGUMENTS` -> 原始参数串（两侧空白去掉）
    - `$N` -> 第 N 个位置参数（1 起始）；缺失时替换为空串
    """

    raw = (arguments or "").strip()
    positionals = _split_positionals(raw)

    def _sub(m: re.Match[str]) -> str:
        """替换单个占位符。"""

        key = m.group(1)
        if key == "ARGUMENTS":
            return raw
        idx = int(key) - 1
        return positionals[idx] if idx < len(positionals) else ""

    return _PLACEHOLDER_RE.sub(_sub, template)
