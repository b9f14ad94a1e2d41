"""
Navigation map 解析（skill 内的"目录表"文档，LLM 据此决定下一步读哪个 reference）。

识别的引用形式：
- Markdown 链接：`[naming](naming.md)`、`[x](references/naming.md#rules)`
- 反引号路径：`` `naming.md` ``、`` `references/control-flow.md` ``
- plugin 根引用：`${CLAUDE_PLUGIN_ROOT}/assets/fonts.md`

解析规则：
- 忽略 URL（`scheme://`）、`mailto:` 与纯锚点链接（`#section`）；`#fragment` 被裁掉；
- fenced code block（``` / ~~~）内的内容不参与解析。
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from pathlib import Path
import re
from typing import Iterator, List, Optional, Tuple

from skills_marketplace.plugins.substitution import PLUGIN_ROOT_TOKEN

logger = logging.getLogger(__name__)

_LINK_RE = re.compile(r"(?<!!)\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
_CODE_RE = re.compile(r"`([^`\n]+)`")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")
_DOC_EXTENSIONS = (".md", ".markdown", ".txt", ".json", ".yaml", ".yml", ".png", ".jpg", ".jpeg", ".svg", ".ttf", ".otf", ".woff", ".woff2")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


@dataclass(frozen=True)
class NavigationEntry:
    """
    navigation map 中的一条引用。

    字段：
    - target：引用路径（已去掉 `#fragment`；plugin 根引用保留 token 前缀）
    - label：链接文本或所在行（去掉表格竖线后的文本）
    - line：1 起始行号
    - syntax：link | image | code
    - resolved_path/exists：`resolve_entry` 之后填充
    """

    target: str
    label: str
    line: int
    syntax: str
    resolved_path: Optional[Path] = None
    exists: bool = False

    @property
    def is_plugin_root_ref(self) -> bool:
        """是否为 `${CLAUDE_PLUGIN_ROOT}/...` 引用。"""

        return self.target.startswith(PLUGIN_ROOT_TOKEN)


@dataclass(frozen=True)
class NavigationMap:
    """解析后的 navigation map（entries 已做路径解析）。"""

    path: Path
    entries: List[NavigationEntry] = field(default_factory=list)

    @property
    def missing(self) -> List[NavigationEntry]:
        """返回目标不存在的条目。"""

        return [e for e in self.entries if not e.exists]

    def to_jsonable(self) -> dict:
        """投影为 JSON 视图。"""

        return {
            "path": str(self.path),
            "entries": [
                {
                    "target": e.target,
                    "label": e.label,
                    "line": e.line,
                    "syntax": e.syntax,
                    "resolved_path": str(e.resolved_path) if e.resolved_path is not None else None,
                    "exists": bool(e.exists),
                }
                for e in self.entries
            ],
        }


def _iter_unfenced_lines(text: str) -> Iterator[Tuple[int, str]]:
    """逐行产出 (行号, 行文本)，跳过 fenced code block 内部与围栏行。"""

    in_fence = False
    fence_marker = ""
    for lineno, line in enumerate(text.splitlines(), start=1):
        m = _FENCE_RE.match(line)
        if m:
            if not in_fence:
                in_fence = True
                fence_marker = m.group(1)
            elif m.group(1) == fence_marker:
                in_fence = False
            continue
        if not in_fence:
            yield lineno, line


def _normalize_target(raw: str) -> Optional[str]:
    """规范化引用目标；非本地文件引用返回 None。"""

    target = raw.strip()
    if not target or target.startswith("#"):
        return None
    if target.startswith(PLUGIN_ROOT_TOKEN):
        return target.split("#", 1)[0]
    if _SCHEME_RE.match(target) or target.startswith("//"):
        return None
    target = target.split("#", 1)[0].split("?", 1)[0]
    return target or None


def _looks_like_path(token: str) -> bool:
    """判断反引号 token 是否像本地相对文件路径。"""

    t = token.strip()
    if not t or any(c.isspace() for c in t):
        return False
    if t.startswith(PLUGIN_ROOT_TOKEN + "/"):
        return True
    if t.startswith(("$", "-", "<", "@")) or _SCHEME_RE.match(t):
        return False
    if t.lower().endswith(_DOC_EXTENSIONS):
        return True
    # 目录形式（`references/`）或带扩展名的多段路径
    return "/" in t and "." in t.rsplit("/", 1)[-1]


def _line_label(line: str) -> str:
    """把所在行压缩为可读 label（去掉 Markdown 表格竖线与列表符号）。"""

    text = line.strip().strip("|").strip()
    text = re.sub(r"\s*\|\s*", " | ", text)
    text = re.sub(r"^[-*+]\s+", "", text)
    return " ".join(text.split())


def extract_body_links(text: str) -> List[NavigationEntry]:
    """提取正文中的本地 Markdown 链接/图片（不含反引号路径）。"""

    out: List[NavigationEntry] = []
    seen: set[Tuple[str, int]] = set()
    for lineno, line in _iter_unfenced_lines(text):
        for syntax, regex in (("link", _LINK_RE), ("image", _IMAGE_RE)):
            for m in regex.finditer(line):
                target = _normalize_target(m.group(2))
                if target is None or (target, lineno) in seen:
                    continue
                seen.add((target, lineno))
                out.append(NavigationEntry(target=target, label=m.group(1).strip(), line=lineno, syntax=syntax))
    return out


def parse_navigation_map(text: str) -> List[NavigationEntry]:
    """
    解析 navigation map 文本为条目列表（链接 + 反引号路径；按行、按出现顺序去重）。
    """

    entries = extract_body_links(text)
    seen = {(e.target, e.line) for e in entries}
    for lineno, line in _iter_unfenced_lines(text):
        # 去掉已按链接识别的片段，避免 `[`a.md`](a.md)` 重复计数
        residual = _IMAGE_RE.sub("", _LINK_RE.sub("", line))
        for m in _CODE_RE.finditer(residual):
            token = m.group(1).strip()
            if not _looks_like_path(token):
                continue
            target = _normalize_target(token)
            if target is None or (target, lineno) in seen:
                continue
            seen.add((target, lineno))
            entries.append(NavigationEntry(target=target, label=_line_label(line), line=lineno, syntax="code"))
    entries.sort(key=lambda e: e.line)
    return entries


def _contained(path: Path, root: Path) -> bool:
    """判断 path（resolve 后）是否位于 root 之内。"""

    try:
        return path.resolve().is_relative_to(root.resolve())
    except OSError:
        return False


def resolve_entry(entry: NavigationEntry, *, base_dir: Path, skill_dir: Path, plugin_root: Path) -> NavigationEntry:
    """
    解析单个条目的目标路径。

    规则：
    - plugin 根引用：相对 plugin_root
    - 绝对路径：不解析（视为不存在）
    - 其它：先相对 base_dir（引用所在文件目录），再回退到 skill_dir
    - 解析结果逃逸 plugin_root 时视为不存在
    """

    target = entry.target
    candidates: List[Path] = []
    if entry.is_plugin_root_ref:
        rel = target[len(PLUGIN_ROOT_TOKEN):].lstrip("/")
        candidates.append(plugin_root / rel)
    elif not Path(target).is_absolute():
        candidates.append(base_dir / target)
        if skill_dir != base_dir:
            candidates.append(skill_dir / target)

    for cand in candidates:
        if not _contained(cand, plugin_root):
            logger.debug("navigation target escapes plugin root: %s", cand)
            continue
        if cand.exists():
            return replace(entry, resolved_path=cand.resolve(), exists=True)
    resolved = candidates[0].resolve() if candidates else None
    return replace(entry, resolved_path=resolved, exists=False)


def load_navigation_map(path: Path, *, skill_dir: Path, plugin_root: Path) -> NavigationMap:
    """读取并解析 navigation map 文件（条目均已解析路径与存在性）。"""

    p = Path(path)
    text = p.read_text(encoding="utf-8")
    entries = [
        resolve_entry(e, base_dir=p.parent, skill_dir=skill_dir, plugin_root=plugin_root)
        for e in parse_navigation_map(text)
    ]
    return NavigationMap(path=p, entries=entries)
