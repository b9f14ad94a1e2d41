"""
Marketplace 数据模型（Plugin / Component / ScanReport）。

说明：
- scan 阶段只产出 metadata（frontmatter），正文通过 `body_loader` 懒加载；
- `to_metadata_dict/to_jsonable` 必须可 `json.dumps(..., allow_nan=False)`，且不得触发正文读取。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from skills_marketplace.core.errors import FrameworkIssue
from skills_marketplace.core.jsonable import coerce_int, issue_to_jsonable, to_json_safe
from skills_marketplace.plugins.names import split_tool_list

COMPONENT_KINDS = ("skill", "agent", "command")


@dataclass(frozen=True)
class Component:
    """
    组件（skill/agent/command）加载后的稳定表示。

    字段：
    - kind：skill | agent | command
    - plugin：所属 plugin 名
    - name/description：frontmatter（command 的 name 由文件路径推导）
    - locator：原始文件路径字符串（报告与排障用）
    - path：canonical 文件路径
    - root_dir：skill 为其目录；agent/command 为 plugin 根目录
    - plugin_root：plugin 根目录（`${CLAUDE_PLUGIN_ROOT}` 的展开值）
    - body_size：文件字节数
    - body_loader：懒加载正文（不含 frontmatter）
    - frontmatter：原始 frontmatter（保留连字符 key）
    """

    kind: str
    plugin: str
    name: str
    description: str
    locator: str
    path: Path
    root_dir: Path
    plugin_root: Path
    body_size: int
    body_loader: Callable[[], str]
    frontmatter: Dict[str, Any] = field(default_factory=dict)

    @property
    def qualified_name(self) -> str:
        """返回 `plugin:name`。"""

        return f"{self.plugin}:{self.name}"

    @property
    def allowed_tools(self) -> List[str]:
        """返回归一化后的工具列表（agent 优先 `tools`；格式非法时返回空列表）。"""

        raw = self.frontmatter.get("tools") if self.kind == "agent" else None
        if raw is None:
            raw = self.frontmatter.get("allowed-tools")
        try:
            return split_tool_list(raw)
        except ValueError:
            return []

    def to_metadata_dict(self) -> Dict[str, object]:
        """将 Component 投影为可 JSON 序列化的 metadata-only 视图（不含正文）。"""

        return {
            "kind": self.kind,
            "plugin": to_json_safe(self.plugin),
            "name": to_json_safe(self.name),
            "qualified_name": to_json_safe(self.qualified_name),
            "description": to_json_safe(self.description),
            "locator": to_json_safe(self.locator),
            "path": str(self.path),
            "body_size": to_json_safe(self.body_size),
            "allowed_tools": list(self.allowed_tools),
            "frontmatter": to_json_safe(dict(self.frontmatter)),
        }


@dataclass(frozen=True)
class Plugin:
    """
    Plugin 目录（组件集合）。

    字段：
    - source：`marketplace`（来自 marketplace.json）或 `directory`（plugins_dir 回退发现）
    - manifest：plugin.json 校验后的 dict（缺失为 None）
    - entry：marketplace.json 条目 dict（directory 发现时为 None）
    """

    name: str
    root: Path
    source: str
    manifest: Optional[Dict[str, Any]]
    entry: Optional[Dict[str, Any]]
    components: List[Component] = field(default_factory=list)

    @property
    def version(self) -> Optional[str]:
        """返回 plugin 版本（plugin.json 优先，其次 marketplace 条目）。"""

        for obj in (self.manifest, self.entry):
            if isinstance(obj, Mapping) and isinstance(obj.get("version"), str):
                return str(obj["version"])
        return None

    def to_metadata_dict(self) -> Dict[str, object]:
        """投影为 JSON 视图（组件只输出计数，明细在 ScanReport.components）。"""

        counts = {k: 0 for k in COMPONENT_KINDS}
        for c in self.components:
            counts[c.kind] = counts.get(c.kind, 0) + 1
        return {
            "name": to_json_safe(self.name),
            "root": str(self.root),
            "source": self.source,
            "version": self.version,
            "manifest": to_json_safe(self.manifest),
            "components": counts,
        }


@dataclass(frozen=True)
class ScanReport:
    """扫描/lint 报告（metadata-only）。"""

    scan_id: str
    root: Path
    plugins: List[Plugin]
    components: List[Component]
    errors: List[FrameworkIssue]
    warnings: List[FrameworkIssue]
    stats: Dict[str, int]

    @property
    def ok(self) -> bool:
        """无 errors 即视为通过（warnings 不影响）。"""

        return not self.errors

    def to_jsonable(self) -> Dict[str, object]:
        """
        将 ScanReport 投影为可 JSON 序列化的只读视图（fail-open）。

        约束：
        - 不读取组件正文（不得调用 `Component.body_loader`）
        - 对 errors/warnings/details 做递归 JSON 清洗（含 NaN/Inf、循环与最大深度保护）
        """

        stats_json: Dict[str, int] = {}
        if isinstance(self.stats, Mapping):
            for k, v in self.stats.items():
                stats_json[str(k)] = coerce_int(v)

        return {
            "scan_id": to_json_safe(self.scan_id),
            "root": str(self.root),
            "plugins": [p.to_metadata_dict() for p in (self.plugins or [])],
            "components": [c.to_metadata_dict() for c in (self.components or [])],
            "errors": [issue_to_jsonable(it) for it in (self.errors or [])],
            "warnings": [issue_to_jsonable(it) for it in (self.warnings or [])],
            "stats": stats_json,
        }
