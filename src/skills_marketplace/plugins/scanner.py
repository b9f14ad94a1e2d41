"""
Marketplace 文件系统扫描（plugin 发现 + skill/agent/command 元数据收集）。

说明：
- 有 marketplace.json 时按其 plugins 条目发现；否则回退扫描 `scan.plugins_dir`；
- 所有路径都要求留在 marketplace/plugin 根目录内，越界条目以 COMPONENT_PATH_ESCAPE 报告；
- 组件加载失败聚合为 issue，扫描不中断。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import uuid

from skills_marketplace.config.loader import MarketplaceConfig
from skills_marketplace.core import issue_codes as codes
from skills_marketplace.core.errors import (
    LEVEL_ERROR,
    LEVEL_WARNING,
    ComponentLoadError,
    FrameworkError,
    FrameworkIssue,
    make_issue,
)
from skills_marketplace.plugins.loader import (
    MARKETPLACE_MANIFEST_RELPATH,
    PLUGIN_MANIFEST_RELPATH,
    load_agent_metadata,
    load_command_metadata,
    load_marketplace_manifest,
    load_plugin_manifest,
    load_skill_metadata,
)
from skills_marketplace.plugins.models import Component, Plugin, ScanReport

logger = logging.getLogger(__name__)


def _is_contained(path: Path, root: Path) -> bool:
    """path（resolve 后）是否位于 root（resolve 后）之内。"""

    try:
        return path.resolve().is_relative_to(root.resolve())
    except OSError:
        return False


def _visible_entries(directory: Path, *, ignore_dot_entries: bool) -> List[Path]:
    """按名称排序列出目录项（可选跳过 dot 项）。"""

    entries = sorted(directory.iterdir(), key=lambda p: p.name)
    if ignore_dot_entries:
        entries = [e for e in entries if not e.name.startswith(".")]
    return entries


def _discover_plugins(
    root: Path,
    config: MarketplaceConfig,
    issues: List[FrameworkIssue],
) -> Tuple[List[Tuple[str, Path, str, Optional[Dict[str, Any]]]], Optional[Dict[str, Any]]]:
    """
    发现 plugin 目录。

    返回：
    - plugins：[(name, plugin_root, source, entry_dict)]
    - marketplace：marketplace.json 校验后的 dict（缺失/非法为 None）
    """

    found: List[Tuple[str, Path, str, Optional[Dict[str, Any]]]] = []
    manifest_path = root / MARKETPLACE_MANIFEST_RELPATH

    if manifest_path.is_file():
        try:
            manifest = load_marketplace_manifest(manifest_path)
        except FrameworkError as exc:
            issues.append(exc.to_issue())
            return [], None

        plugin_root_base = root
        if manifest.metadata.plugin_root:
            plugin_root_base = root / manifest.metadata.plugin_root

        for idx, entry in enumerate(manifest.plugins):
            entry_dict = entry.model_dump(mode="json", exclude_none=True)
            local = entry.local_source
            if local is None:
                issues.append(
                    make_issue(
                        code=codes.MARKETPLACE_PLUGIN_REMOTE_SOURCE,
                        message="Remote plugin source is recorded but not scanned.",
                        level=LEVEL_WARNING,
                        plugin=entry.name,
                        path=f"plugins[{idx}].source",
                        source=entry_dict.get("source"),
                    )
                )
                continue
            base = root if local.startswith("./") or local.startswith("../") else plugin_root_base
            plugin_dir = (base / local).resolve()
            if not _is_contained(plugin_dir, root):
                issues.append(
                    make_issue(
                        code=codes.MARKETPLACE_PLUGIN_SOURCE_ESCAPE,
                        message="Plugin source escapes marketplace root.",
                        plugin=entry.name,
                        path=f"plugins[{idx}].source",
                        source=local,
                    )
                )
                continue
            if not plugin_dir.is_dir():
                issues.append(
                    make_issue(
                        code=codes.MARKETPLACE_PLUGIN_SOURCE_NOT_FOUND,
                        message="Plugin source directory not found.",
                        plugin=entry.name,
                        path=f"plugins[{idx}].source",
                        source=local,
                        resolved=str(plugin_dir),
                    )
                )
                continue
            found.append((entry.name, plugin_dir, "marketplace", entry_dict))
        return found, manifest.model_dump(mode="json", exclude_none=True)

    logger.warning("marketplace manifest not found under %s; scanning %s/", root, config.scan.plugins_dir)
    issues.append(
        make_issue(
            code=codes.MARKETPLACE_MANIFEST_MISSING,
            message="Marketplace manifest not found; falling back to plugins directory.",
            level=LEVEL_WARNING,
            path=str(manifest_path),
            plugins_dir=config.scan.plugins_dir,
        )
    )
    plugins_dir = (root / config.scan.plugins_dir).resolve()
    if not plugins_dir.is_dir():
        issues.append(
            make_issue(
                code=codes.MARKETPLACE_PLUGINS_DIR_NOT_FOUND,
                message="Plugins directory not found.",
                path=str(plugins_dir),
            )
        )
        return [], None
    for entry in _visible_entries(plugins_dir, ignore_dot_entries=config.scan.ignore_dot_entries):
        if not entry.is_dir():
            continue
        if not _is_contained(entry, root):
            issues.append(
                _escape_issue(
                    entry,
                    plugin=entry.name,
                    plugin_root=root,
                    message="Plugin directory escapes marketplace root; skipped.",
                    level=LEVEL_WARNING,
                )
            )
            continue
        found.append((entry.name, entry.resolve(), "directory", None))
    return found, None


def _load_issue(exc: ComponentLoadError, *, plugin: str, kind: str) -> FrameworkIssue:
    """把 ComponentLoadError 转为 COMPONENT_METADATA_INVALID issue。"""

    return make_issue(
        code=codes.COMPONENT_METADATA_INVALID,
        message="Component metadata is invalid.",
        plugin=plugin,
        kind=kind,
        path=str(exc.path),
        reason=exc.message,
    )


def _escape_issue(
    path: Path,
    *,
    plugin: str,
    plugin_root: Path,
    message: str = "Component path escapes plugin root.",
    level: str = LEVEL_ERROR,
) -> FrameworkIssue:
    """构造组件路径逃逸（或被跳过的 symlink 目录）issue。"""

    return make_issue(
        code=codes.COMPONENT_PATH_ESCAPE,
        message=message,
        level=level,
        plugin=plugin,
        path=str(path),
        plugin_root=str(plugin_root),
    )


def _scan_skills(
    plugin: str, plugin_root: Path, config: MarketplaceConfig, sink: List[Component], issues: List[FrameworkIssue]
) -> None:
    """扫描 `skills/*/SKILL.md`（每个 skill 目录必须包含 SKILL.md）。"""

    skills_dir = plugin_root / "skills"
    if not skills_dir.is_dir():
        return
    for skill_dir in _visible_entries(skills_dir, ignore_dot_entries=config.scan.ignore_dot_entries):
        if not skill_dir.is_dir():
            continue
        skill_md = skill_dir / "SKILL.md"
        if not skill_md.is_file():
            issues.append(
                make_issue(
                    code=codes.SKILL_MANIFEST_MISSING,
                    message="Skill directory does not contain SKILL.md.",
                    plugin=plugin,
                    path=str(skill_dir),
                )
            )
            continue
        if not _is_contained(skill_md, plugin_root):
            issues.append(_escape_issue(skill_md, plugin=plugin, plugin_root=plugin_root))
            continue
        try:
            sink.append(
                load_skill_metadata(
                    skill_md,
                    plugin=plugin,
                    plugin_root=plugin_root,
                    max_frontmatter_bytes=config.scan.max_frontmatter_bytes,
                )
            )
        except ComponentLoadError as exc:
            issues.append(_load_issue(exc, plugin=plugin, kind="skill"))


def _scan_agents(
    plugin: str, plugin_root: Path, config: MarketplaceConfig, sink: List[Component], issues: List[FrameworkIssue]
) -> None:
    """扫描 `agents/*.md`（不递归）。"""

    agents_dir = plugin_root / "agents"
    if not agents_dir.is_dir():
        return
    for path in _visible_entries(agents_dir, ignore_dot_entries=config.scan.ignore_dot_entries):
        if not path.is_file() or path.suffix != ".md":
            continue
        if not _is_contained(path, plugin_root):
            issues.append(_escape_issue(path, plugin=plugin, plugin_root=plugin_root))
            continue
        try:
            sink.append(
                load_agent_metadata(
                    path,
                    plugin=plugin,
                    plugin_root=plugin_root,
                    max_frontmatter_bytes=config.scan.max_frontmatter_bytes,
                )
            )
        except ComponentLoadError as exc:
            issues.append(_load_issue(exc, plugin=plugin, kind="agent"))


def _scan_commands(
    plugin: str, plugin_root: Path, config: MarketplaceConfig, sink: List[Component], issues: List[FrameworkIssue]
) -> None:
    """扫描 `commands/**/*.md`（子目录深度受 scan.max_depth 限制；不跟随目录 symlink）。"""

    commands_dir = plugin_root / "commands"
    if not commands_dir.is_dir():
        return
    queue: List[Tuple[Path, int]] = [(commands_dir, 0)]
    while queue:
        cur, depth = queue.pop(0)
        for entry in _visible_entries(cur, ignore_dot_entries=config.scan.ignore_dot_entries):
            if entry.is_dir():
                if entry.is_symlink():
                    issues.append(
                        _escape_issue(
                            entry,
                            plugin=plugin,
                            plugin_root=plugin_root,
                            message="Symlinked commands directory is not followed; skipped.",
                            level=LEVEL_WARNING,
                        )
                    )
                    continue
                if depth + 1 <= config.scan.max_depth:
                    queue.append((entry, depth + 1))
                continue
            if not entry.is_file() or entry.suffix != ".md":
                continue
            if not _is_contained(entry, plugin_root):
                issues.append(_escape_issue(entry, plugin=plugin, plugin_root=plugin_root))
                continue
            try:
                sink.append(
                    load_command_metadata(entry, plugin=plugin, plugin_root=plugin_root, commands_dir=commands_dir)
                )
            except ComponentLoadError as exc:
                issues.append(_load_issue(exc, plugin=plugin, kind="command"))


def _load_plugin_manifest_dict(
    plugin: str, plugin_root: Path, config: MarketplaceConfig, issues: List[FrameworkIssue]
) -> Optional[Dict[str, Any]]:
    """读取 plugin.json（缺失按配置报 warning/error；非法报 error）。"""

    path = plugin_root / PLUGIN_MANIFEST_RELPATH
    if not path.is_file():
        issues.append(
            make_issue(
                code=codes.PLUGIN_MANIFEST_MISSING,
                message="Plugin manifest not found.",
                level="error" if config.lint.require_plugin_manifest else LEVEL_WARNING,
                plugin=plugin,
                path=str(path),
            )
        )
        return None
    try:
        return load_plugin_manifest(path).model_dump(mode="json", exclude_none=True)
    except FrameworkError as exc:
        issue = exc.to_issue()
        issues.append(FrameworkIssue(code=issue.code, message=issue.message, details={**issue.details, "plugin": plugin}))
        return None


def _dedupe_components(components: List[Component], issues: List[FrameworkIssue]) -> List[Component]:
    """按 (kind, qualified_name) 去重：保留第一个，其余报 COMPONENT_DUPLICATE_NAME。"""

    first: Dict[Tuple[str, str], Component] = {}
    out: List[Component] = []
    for c in components:
        key = (c.kind, c.qualified_name)
        if key in first:
            issues.append(
                make_issue(
                    code=codes.COMPONENT_DUPLICATE_NAME,
                    message="Duplicate component name in plugin.",
                    plugin=c.plugin,
                    kind=c.kind,
                    name=c.name,
                    path=c.locator,
                    first_path=first[key].locator,
                )
            )
            continue
        first[key] = c
        out.append(c)
    return out


def scan_marketplace(root: Path, config: MarketplaceConfig) -> ScanReport:
    """
    扫描 marketplace 根目录，返回 metadata-only ScanReport。

    说明：
    - 组件加载失败聚合为 issues，不中断扫描（一个坏文件不遮蔽其它问题）
    - 输出顺序稳定：plugins 按 name；components 按 (plugin, kind, name)
    """

    ws = Path(root).resolve()
    issues: List[FrameworkIssue] = []
    discovered, marketplace = _discover_plugins(ws, config, issues)

    plugins: List[Plugin] = []
    seen_plugins: Dict[str, Path] = {}
    for name, plugin_root, source, entry in discovered:
        if name in seen_plugins:
            issues.append(
                make_issue(
                    code=codes.MARKETPLACE_PLUGIN_DUPLICATE,
                    message="Duplicate plugin name in marketplace.",
                    plugin=name,
                    path=str(plugin_root),
                    first_path=str(seen_plugins[name]),
                )
            )
            continue
        seen_plugins[name] = plugin_root

        manifest = _load_plugin_manifest_dict(name, plugin_root, config, issues)
        components: List[Component] = []
        _scan_skills(name, plugin_root, config, components, issues)
        _scan_agents(name, plugin_root, config, components, issues)
        _scan_commands(name, plugin_root, config, components, issues)
        components = sorted(components, key=lambda c: (c.kind, c.name, c.locator))
        components = _dedupe_components(components, issues)
        plugins.append(
            Plugin(name=name, root=plugin_root, source=source, manifest=manifest, entry=entry, components=components)
        )

    plugins.sort(key=lambda p: p.name)
    all_components = sorted(
        (c for p in plugins for c in p.components),
        key=lambda c: (c.plugin, c.kind, c.name),
    )
    if not issues:
        logger.debug("marketplace scan ok: %d plugins, %d components", len(plugins), len(all_components))
    return make_report(
        root=ws,
        plugins=plugins,
        components=all_components,
        issues=issues,
        extra_stats={"has_marketplace_manifest": int(marketplace is not None)},
    )


def make_report(
    *,
    root: Path,
    plugins: List[Plugin],
    components: List[Component],
    issues: List[FrameworkIssue],
    extra_stats: Optional[Dict[str, int]] = None,
) -> ScanReport:
    """按 level 拆分 issues 并生成 ScanReport（含计数 stats）。"""

    errors = [it for it in issues if it.level != LEVEL_WARNING]
    warnings = [it for it in issues if it.level == LEVEL_WARNING]
    stats: Dict[str, int] = {
        "plugins_total": len(plugins),
        "components_total": len(components),
        "skills_total": sum(1 for c in components if c.kind == "skill"),
        "agents_total": sum(1 for c in components if c.kind == "agent"),
        "commands_total": sum(1 for c in components if c.kind == "command"),
        "errors_total": len(errors),
        "warnings_total": len(warnings),
    }
    if extra_stats:
        stats.update(extra_stats)
    return ScanReport(
        scan_id=f"scan_{uuid.uuid4().hex[:12]}",
        root=root,
        plugins=plugins,
        components=components,
        errors=errors,
        warnings=warnings,
        stats=stats,
    )
