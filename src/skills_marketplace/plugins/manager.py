"""
MarketplaceManager（配置驱动 scan + lint + 组件查找/渲染 + reference 读取）。

说明：
- scan 只产出 metadata；正文在 render/read 时懒加载；
- `scan.refresh_policy=manual` 时按配置缓存最近一次成功 scan，`refresh()` 强制重扫；
- 查找/渲染类操作失败抛出 `FrameworkError`（稳定 code），scan/lint 只聚合 issues。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
import threading
from typing import Any, Dict, List, Optional, Tuple

from skills_marketplace.config.loader import MarketplaceConfig
from skills_marketplace.config.validator import preflight as _preflight_config
from skills_marketplace.core.errors import FrameworkError, FrameworkIssue
from skills_marketplace.plugins.lint import apply_severity_overrides, lint_report
from skills_marketplace.plugins.matching import MatchResult, match_components
from skills_marketplace.plugins.models import COMPONENT_KINDS, Component, Plugin, ScanReport
from skills_marketplace.plugins.names import parse_qualified_name
from skills_marketplace.plugins.navigation import NavigationMap, load_navigation_map
from skills_marketplace.plugins.scanner import make_report, scan_marketplace
from skills_marketplace.plugins.substitution import expand_plugin_root, render_arguments

logger = logging.getLogger(__name__)


def _read_text_truncated(path: Path, *, max_bytes: int) -> Tuple[str, bool, int]:
    """
    读取文本文件并按 max_bytes 截断。

    返回：
    - (text, truncated, total_bytes)
    """

    max_bytes = max(1, int(max_bytes))
    total = int(path.stat().st_size)
    with path.open("rb") as f:
        data = f.read(max_bytes + 1)
    truncated = len(data) > max_bytes
    if truncated:
        data = data[:max_bytes]
    return data.decode("utf-8", errors="replace"), truncated, total


class MarketplaceManager:
    """Marketplace 管理器。"""

    def __init__(
        self,
        *,
        root: Path,
        config: Optional[MarketplaceConfig | Dict[str, Any]] = None,
    ) -> None:
        """创建 MarketplaceManager。

        参数：
        - `root`：marketplace 根目录（含 `.claude-plugin/marketplace.json` 或 plugins 目录）
        - `config`：MarketplaceConfig 或其 dict 形式；None 使用默认值
        """

        self._root = Path(root).resolve()
        if config is None:
            self._config = MarketplaceConfig()
        elif isinstance(config, dict):
            self._config = MarketplaceConfig.model_validate(config)
        else:
            self._config = config

        self._scan_lock = threading.RLock()
        self._scan_report: Optional[ScanReport] = None
        self._scan_cache_key: Optional[str] = None

    @property
    def root(self) -> Path:
        """返回 marketplace 根目录。"""

        return self._root

    @property
    def config(self) -> MarketplaceConfig:
        """返回生效配置。"""

        return self._config

    @property
    def last_scan_report(self) -> Optional[ScanReport]:
        """返回最近一次 scan 生成的 ScanReport（可能为 None）。"""

        return self._scan_report

    def preflight(self) -> List[FrameworkIssue]:
        """对配置做零 I/O 预检。"""

        return _preflight_config(self._config)

    def _scan_cache_key_for_current_config(self) -> str:
        """为 scan 缓存生成 key（绑定根目录与配置）。"""

        payload = {"root": str(self._root), "config": self._config.model_dump(mode="json")}
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def scan(self, *, force_refresh: bool = False) -> ScanReport:
        """扫描 marketplace 并返回 ScanReport（支持 refresh_policy=manual 缓存）。"""

        cache_key = self._scan_cache_key_for_current_config()
        with self._scan_lock:
            if (
                not force_refresh
                and self._config.scan.refresh_policy == "manual"
                and self._scan_report is not None
                and self._scan_cache_key == cache_key
            ):
                return self._scan_report

            report = scan_marketplace(self._root, self._config)
            self._scan_report = report
            self._scan_cache_key = cache_key
            return report

    def refresh(self) -> ScanReport:
        """强制重新扫描。"""

        return self.scan(force_refresh=True)

    def lint(self) -> ScanReport:
        """
        执行 scan + lint，返回合并后的 ScanReport。

        说明：
        - scan 与 lint 的 issues 统一应用 `lint.severity_overrides`（`off` 直接丢弃）
        - 返回新报告，不影响 scan 缓存
        """

        report = self.scan()
        issues = [*report.errors, *report.warnings, *lint_report(report, self._config)]
        issues = apply_severity_overrides(issues, dict(self._config.lint.severity_overrides))
        extra = {k: v for k, v in report.stats.items() if k == "has_marketplace_manifest"}
        return make_report(
            root=report.root,
            plugins=list(report.plugins),
            components=list(report.components),
            issues=issues,
            extra_stats=extra,
        )

    def list_plugins(self) -> List[Plugin]:
        """列出已扫描的 plugin（按 name 排序）。"""

        return list(self.scan().plugins)

    def list_components(self, *, kind: Optional[str] = None, plugin: Optional[str] = None) -> List[Component]:
        """按 kind/plugin 过滤列出组件。"""

        if kind is not None and kind not in COMPONENT_KINDS:
            raise FrameworkError(
                code="COMPONENT_KIND_INVALID",
                message="Component kind is invalid.",
                details={"kind": kind, "allowed": list(COMPONENT_KINDS)},
            )
        out = []
        for c in self.scan().components:
            if kind is not None and c.kind != kind:
                continue
            if plugin is not None and c.plugin != plugin:
                continue
            out.append(c)
        return out

    def get_component(self, name: str, *, kind: Optional[str] = None) -> Component:
        """
        按名称查找组件（`plugin:name` 或裸名 `name`；可带前导 `/`）。

        异常：
        - FrameworkError(COMPONENT_NAME_FORMAT_INVALID)
        - FrameworkError(COMPONENT_NOT_FOUND)
        - FrameworkError(COMPONENT_AMBIGUOUS)：裸名命中多个 plugin 或多个 kind
        """

        components = self.list_components(kind=kind)
        known_plugins = {p.name for p in self.scan().plugins}
        qname = parse_qualified_name(name, known_plugins=known_plugins)

        candidates = [
            c for c in components if c.name == qname.name and (qname.plugin is None or c.plugin == qname.plugin)
        ]
        if not candidates:
            raise FrameworkError(
                code="COMPONENT_NOT_FOUND",
                message="Component is not found in marketplace.",
                details={"name": name, "kind": kind},
            )
        if len(candidates) > 1:
            raise FrameworkError(
                code="COMPONENT_AMBIGUOUS",
                message="Component name is ambiguous; qualify it with plugin and kind.",
                details={
                    "name": name,
                    "kind": kind,
                    "candidates": [{"qualified_name": c.qualified_name, "kind": c.kind} for c in candidates],
                },
            )
        return candidates[0]

    def render_component(self, component: Component) -> str:
        """
        懒加载组件正文并展开 `${CLAUDE_PLUGIN_ROOT}`。

        异常：
        - FrameworkError(COMPONENT_BODY_READ_FAILED)
        - FrameworkError(COMPONENT_BODY_TOO_LARGE)
        """

        try:
            raw = component.body_loader()
        except (OSError, UnicodeDecodeError) as exc:
            raise FrameworkError(
                code="COMPONENT_BODY_READ_FAILED",
                message="Component body read failed.",
                details={"qualified_name": component.qualified_name, "locator": component.locator, "reason": str(exc)},
            ) from exc

        limit = self._config.render.max_body_bytes
        actual = len(raw.encode("utf-8"))
        if limit is not None and actual > limit:
            raise FrameworkError(
                code="COMPONENT_BODY_TOO_LARGE",
                message="Component body exceeds configured max bytes.",
                details={
                    "qualified_name": component.qualified_name,
                    "locator": component.locator,
                    "limit_bytes": limit,
                    "actual_bytes": actual,
                },
            )
        return expand_plugin_root(raw, component.plugin_root)

    def render_command(self, name: str, arguments: str = "") -> str:
        """渲染 command：展开 plugin 根并替换 `$ARGUMENTS`/`$N`。"""

        component = self.get_component(name, kind="command")
        return render_arguments(self.render_component(component), arguments)

    def _find_navigation_map(self, skill: Component) -> Optional[Path]:
        """在 skill 目录内查找 navigation map（先 references/，再 skill 根，再任意子目录）。"""

        skill_dir = skill.root_dir
        for map_name in self._config.lint.navigation_map_names:
            for cand in (skill_dir / "references" / map_name, skill_dir / map_name):
                if cand.is_file():
                    return cand
            found = sorted(p for p in skill_dir.rglob(map_name) if p.is_file())
            if found:
                return found[0]
        return None

    def navigation(self, skill_name: str) -> NavigationMap:
        """
        返回 skill 的 navigation map（条目已解析路径与存在性）。

        异常：
        - FrameworkError(NAVIGATION_MAP_NOT_FOUND)
        """

        skill = self.get_component(skill_name, kind="skill")
        path = self._find_navigation_map(skill)
        if path is None:
            raise FrameworkError(
                code="NAVIGATION_MAP_NOT_FOUND",
                message="Skill has no navigation map.",
                details={"qualified_name": skill.qualified_name, "names": list(self._config.lint.navigation_map_names)},
            )
        return load_navigation_map(path, skill_dir=skill.root_dir, plugin_root=skill.plugin_root)

    def _validate_ref_path(self, ref_path: str) -> Tuple[str, Path]:
        """
        校验 ref_path 并返回 (允许目录名, 相对路径)。

        异常：
        - FrameworkError(REFERENCE_PATH_INVALID)
        """

        raw = (ref_path or "").strip()
        p = Path(raw)
        allowed = list(self._config.render.allowed_reference_dirs)
        if not raw or p.is_absolute():
            raise FrameworkError(
                code="REFERENCE_PATH_INVALID",
                message="ref_path must be a relative path within allowed directories.",
                details={"ref_path": raw, "allowed_dirs": allowed},
            )
        if any(part in {"..", ""} for part in p.parts):
            raise FrameworkError(
                code="REFERENCE_PATH_INVALID",
                message="ref_path must not contain '..' segments.",
                details={"ref_path": raw},
            )
        root = p.parts[0]
        if root not in allowed or len(p.parts) < 2:
            raise FrameworkError(
                code="REFERENCE_PATH_INVALID",
                message="ref_path must point to a file under an allowed directory.",
                details={"ref_path": raw, "allowed_dirs": allowed},
            )
        return root, p

    def read_reference(self, skill_name: str, ref_path: str, *, max_bytes: Optional[int] = None) -> Dict[str, Any]:
        """
        读取 skill 目录内的 reference 文件（按 max_bytes 截断）。

        返回：
        - {qualified_name, ref_path, path, content, truncated, bytes_total}

        异常：
        - FrameworkError(REFERENCE_PATH_INVALID)：绝对路径、`..`、不在允许目录、resolve 后逃逸
        - FrameworkError(REFERENCE_NOT_FOUND)
        """

        skill = self.get_component(skill_name, kind="skill")
        root_name, rel = self._validate_ref_path(ref_path)

        allowed_dir = (skill.root_dir / root_name).resolve()
        candidate = (skill.root_dir / rel).resolve()
        if not candidate.is_relative_to(allowed_dir):
            raise FrameworkError(
                code="REFERENCE_PATH_INVALID",
                message="ref_path escapes allowed directory boundary.",
                details={"ref_path": ref_path, "resolved": str(candidate), "allowed_dir": str(allowed_dir)},
            )
        if not candidate.is_file():
            raise FrameworkError(
                code="REFERENCE_NOT_FOUND",
                message="Referenced file is not found in skill directory.",
                details={"ref_path": ref_path, "resolved": str(candidate)},
            )

        limit = int(max_bytes) if max_bytes is not None else self._config.render.default_reference_max_bytes
        text, truncated, total = _read_text_truncated(candidate, max_bytes=limit)
        if truncated:
            logger.debug("reference truncated: %s (%d > %d bytes)", candidate, total, limit)
        return {
            "qualified_name": skill.qualified_name,
            "ref_path": str(rel.as_posix()),
            "path": str(candidate),
            "content": text,
            "truncated": truncated,
            "bytes_total": total,
        }

    def match(self, message: str, *, kind: Optional[str] = "skill", limit: int = 5) -> List[MatchResult]:
        """按用户消息为组件打分排序（kind=None 时匹配全部组件）。"""

        return match_components(self.list_components(kind=kind), message, limit=limit)
