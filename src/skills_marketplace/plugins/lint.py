"""
Marketplace lint（内容结构检查）。

检查项：
- 组件命名/描述/frontmatter 字段（agent color/model、allowed-tools 格式、semver 等）
- navigation map 中引用的文件必须存在
- `${CLAUDE_PLUGIN_ROOT}/...` 引用的文件必须存在
- skill 正文与 references 中的相对 Markdown 链接必须存在（可配置关闭）

说明：
- 每条规则对每个组件独立执行；单个文件读取失败只产出一条 issue，不影响其它检查；
- `severity_overrides` 在 `apply_severity_overrides` 中统一生效（对 scan 阶段 issue 同样适用）。
"""

from __future__ import annotations

import logging
from pathlib import Path
import re
from typing import AbstractSet, Dict, Iterable, List, Optional, Tuple

from skills_marketplace.config.loader import MarketplaceConfig
from skills_marketplace.core import issue_codes as codes
from skills_marketplace.core.errors import LEVEL_ERROR, LEVEL_WARNING, FrameworkIssue, make_issue
from skills_marketplace.plugins.manifests import FRONTMATTER_MODELS
from skills_marketplace.plugins.models import Component, Plugin, ScanReport
from skills_marketplace.plugins.names import is_valid_component_name, split_tool_list
from skills_marketplace.plugins.navigation import (
    NavigationEntry,
    extract_body_links,
    load_navigation_map,
    resolve_entry,
)
from skills_marketplace.plugins.substitution import PLUGIN_ROOT_TOKEN, find_plugin_root_refs, used_placeholders

logger = logging.getLogger(__name__)

_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)


def _read_text(path: Path, issues: List[FrameworkIssue], *, plugin: str) -> Optional[str]:
    """读取文本文件；失败时追加 COMPONENT_METADATA_INVALID 并返回 None。"""

    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        issues.append(
            make_issue(
                code=codes.COMPONENT_METADATA_INVALID,
                message="Component file could not be read.",
                plugin=plugin,
                path=str(path),
                reason=str(exc),
            )
        )
        return None


def _check_naming(component: Component, config: MarketplaceConfig, issues: List[FrameworkIssue]) -> None:
    """名称 slug/长度、与目录/文件名一致性、description 长度。"""

    lint = config.lint
    base = {"plugin": component.plugin, "kind": component.kind, "name": component.name, "path": component.locator}
    if not is_valid_component_name(component.name) or len(component.name) > lint.max_name_chars:
        issues.append(
            make_issue(
                code=codes.COMPONENT_NAME_INVALID,
                message="Component name must be a kebab-case slug within the length limit.",
                max_chars=lint.max_name_chars,
                **base,
            )
        )

    expected: Optional[str] = None
    if component.kind == "skill":
        expected = component.path.parent.name
    elif component.kind == "agent":
        expected = component.path.stem
    if expected is not None and expected != component.name:
        issues.append(
            make_issue(
                code=codes.COMPONENT_NAME_MISMATCH,
                message="Component name does not match its file location.",
                level=LEVEL_WARNING,
                expected=expected,
                **base,
            )
        )

    if len(component.description) > lint.max_description_chars:
        issues.append(
            make_issue(
                code=codes.COMPONENT_DESCRIPTION_TOO_LONG,
                message="Component description exceeds the length limit.",
                level=LEVEL_WARNING,
                max_chars=lint.max_description_chars,
                actual_chars=len(component.description),
                **base,
            )
        )


def _field_issue(component: Component, *, field: str, actual: object, expected: str, level: str = LEVEL_ERROR) -> FrameworkIssue:
    """构造 COMPONENT_FIELD_INVALID issue。"""

    return make_issue(
        code=codes.COMPONENT_FIELD_INVALID,
        message="Component frontmatter field is invalid.",
        level=level,
        plugin=component.plugin,
        kind=component.kind,
        name=component.name,
        path=component.locator,
        field=field,
        actual=actual,
        expected=expected,
    )


def _check_frontmatter_fields(component: Component, config: MarketplaceConfig, issues: List[FrameworkIssue]) -> None:
    """按 kind 校验 frontmatter 字段取值与未知字段。"""

    fm = component.frontmatter
    model = FRONTMATTER_MODELS[component.kind]
    parsed = model.model_validate(fm)
    declared = parsed.model_fields_set

    for key in model.unknown_keys(fm):
        issues.append(
            make_issue(
                code=codes.COMPONENT_UNKNOWN_FIELD,
                message="Unknown frontmatter field for component kind.",
                level=LEVEL_WARNING,
                plugin=component.plugin,
                kind=component.kind,
                name=component.name,
                path=component.locator,
                field=key,
            )
        )

    for key, attr in (("allowed-tools", "allowed_tools"), ("tools", "tools")):
        if attr not in declared:
            continue
        value = getattr(parsed, attr)
        try:
            split_tool_list(value)
        except ValueError as exc:
            issues.append(_field_issue(component, field=key, actual=value, expected=f"comma-separated string or list ({exc})"))

    if "model" in declared:
        value = getattr(parsed, "model")
        if component.kind == "agent" and value not in config.lint.agent_models:
            issues.append(_field_issue(component, field="model", actual=value, expected=f"one of {config.lint.agent_models}"))
        elif component.kind == "command" and (not isinstance(value, str) or not value.strip()):
            issues.append(_field_issue(component, field="model", actual=value, expected="non-empty string"))

    if "color" in declared and getattr(parsed, "color") not in config.lint.agent_colors:
        issues.append(
            _field_issue(component, field="color", actual=getattr(parsed, "color"), expected=f"one of {config.lint.agent_colors}")
        )

    if "argument_hint" in declared and not isinstance(getattr(parsed, "argument_hint"), str):
        issues.append(_field_issue(component, field="argument-hint", actual=getattr(parsed, "argument_hint"), expected="string"))

    if "version" in declared:
        version = getattr(parsed, "version")
        if not isinstance(version, str) or not _SEMVER_RE.match(version):
            issues.append(
                _field_issue(component, field="version", actual=version, expected="semver string", level=LEVEL_WARNING)
            )


def _check_command_placeholders(component: Component, body: str, issues: List[FrameworkIssue]) -> None:
    """argument-hint 存在但正文未使用任何参数占位符时给出 warning。"""

    hint = component.frontmatter.get("argument-hint")
    if isinstance(hint, str) and hint.strip() and not used_placeholders(body):
        issues.append(
            make_issue(
                code=codes.COMMAND_ARGUMENT_HINT_UNUSED,
                message="Command declares argument-hint but its body uses no argument placeholder.",
                level=LEVEL_WARNING,
                plugin=component.plugin,
                name=component.name,
                path=component.locator,
                argument_hint=hint,
            )
        )


def _check_plugin_root_refs(
    text: str,
    *,
    source_path: Path,
    component: Component,
    issues: List[FrameworkIssue],
    already_reported: AbstractSet[Tuple[int, str]] = frozenset(),
) -> None:
    """
    `${CLAUDE_PLUGIN_ROOT}/...` 引用必须指向 plugin 根目录内已存在的文件/目录。

    already_reported：`(line, rel_path)` 集合，命中的引用不再重复报告。
    """

    root = component.plugin_root
    for ref in find_plugin_root_refs(text):
        if (ref.line, _strip_anchor(ref.rel_path)) in already_reported:
            continue
        target = (root / ref.rel_path).resolve()
        if target.is_relative_to(root) and target.exists():
            continue
        issues.append(
            make_issue(
                code=codes.PLUGIN_ROOT_REF_NOT_FOUND,
                message="Plugin root reference points to a missing path.",
                plugin=component.plugin,
                name=component.name,
                path=str(source_path),
                line=ref.line,
                target=ref.rel_path,
            )
        )


def _strip_anchor(rel_path: str) -> str:
    """去掉 `#anchor` 后缀。"""

    return rel_path.split("#", 1)[0]


def _missing_link_issue(
    code: str, entry: NavigationEntry, *, source_path: Path, component: Component, message: str
) -> FrameworkIssue:
    """构造引用目标缺失的 issue。"""

    return make_issue(
        code=code,
        message=message,
        plugin=component.plugin,
        name=component.name,
        path=str(source_path),
        line=entry.line,
        target=entry.target,
        label=entry.label,
    )


def _iter_reference_docs(skill_dir: Path, *, max_depth: int, exclude: Iterable[Path]) -> List[Path]:
    """列出 skill 目录下的 Markdown 文档（不含 SKILL.md 与 navigation map；深度受限）。"""

    excluded = {p.resolve() for p in exclude}
    out: List[Path] = []
    for p in sorted(skill_dir.rglob("*.md")):
        rel_depth = len(p.relative_to(skill_dir).parts) - 1
        if rel_depth > max_depth or any(part.startswith(".") for part in p.relative_to(skill_dir).parts):
            continue
        if p.resolve() in excluded or not p.is_file():
            continue
        out.append(p)
    return out


def _check_skill_references(
    component: Component, body: str, config: MarketplaceConfig, issues: List[FrameworkIssue]
) -> None:
    """navigation map 目标存在性 + 正文/references 相对链接存在性 + plugin 根引用。"""

    skill_dir = component.root_dir
    map_paths: List[Path] = []
    for map_name in config.lint.navigation_map_names:
        map_paths.extend(sorted(p for p in skill_dir.rglob(map_name) if p.is_file()))

    for map_path in map_paths:
        try:
            nav = load_navigation_map(map_path, skill_dir=skill_dir, plugin_root=component.plugin_root)
        except (OSError, UnicodeDecodeError) as exc:
            issues.append(
                make_issue(
                    code=codes.COMPONENT_METADATA_INVALID,
                    message="Navigation map could not be read.",
                    plugin=component.plugin,
                    path=str(map_path),
                    reason=str(exc),
                )
            )
            continue
        for entry in nav.missing:
            code = codes.PLUGIN_ROOT_REF_NOT_FOUND if entry.is_plugin_root_ref else codes.NAVIGATION_TARGET_NOT_FOUND
            issues.append(
                _missing_link_issue(
                    code,
                    entry,
                    source_path=map_path,
                    component=component,
                    message="Navigation map references a missing file.",
                )
            )
        reported = {
            (e.line, _strip_anchor(e.target[len(PLUGIN_ROOT_TOKEN):].lstrip("/")))
            for e in nav.missing
            if e.is_plugin_root_ref
        }
        map_text = _read_text(map_path, issues, plugin=component.plugin)
        if map_text is not None:
            _check_plugin_root_refs(
                map_text, source_path=map_path, component=component, issues=issues, already_reported=reported
            )

    if not config.lint.check_body_links:
        return

    docs: List[tuple[Path, str]] = [(component.path, body)]
    for doc in _iter_reference_docs(skill_dir, max_depth=config.scan.max_depth, exclude=[component.path, *map_paths]):
        text = _read_text(doc, issues, plugin=component.plugin)
        if text is not None:
            docs.append((doc, text))
            _check_plugin_root_refs(text, source_path=doc, component=component, issues=issues)

    for doc_path, text in docs:
        for entry in extract_body_links(text):
            if entry.is_plugin_root_ref:
                # 由 _check_plugin_root_refs 统一报告
                continue
            resolved = resolve_entry(entry, base_dir=doc_path.parent, skill_dir=skill_dir, plugin_root=component.plugin_root)
            if not resolved.exists:
                issues.append(
                    _missing_link_issue(
                        codes.BODY_LINK_NOT_FOUND,
                        resolved,
                        source_path=doc_path,
                        component=component,
                        message="Markdown link points to a missing file.",
                    )
                )


def _check_plugin(plugin: Plugin, issues: List[FrameworkIssue]) -> None:
    """plugin 级检查：marketplace 条目名与 plugin.json 名一致。"""

    if isinstance(plugin.manifest, dict):
        manifest_name = plugin.manifest.get("name")
        if isinstance(manifest_name, str) and manifest_name != plugin.name:
            issues.append(
                make_issue(
                    code=codes.PLUGIN_NAME_MISMATCH,
                    message="Marketplace plugin name does not match plugin.json name.",
                    level=LEVEL_WARNING,
                    plugin=plugin.name,
                    manifest_name=manifest_name,
                    path=str(plugin.root),
                )
            )


def lint_component(component: Component, config: MarketplaceConfig) -> List[FrameworkIssue]:
    """对单个组件执行全部检查并返回 issues（未应用 severity_overrides）。"""

    issues: List[FrameworkIssue] = []
    _check_naming(component, config, issues)
    _check_frontmatter_fields(component, config, issues)

    try:
        body = component.body_loader()
    except (OSError, UnicodeDecodeError) as exc:
        issues.append(
            make_issue(
                code=codes.COMPONENT_METADATA_INVALID,
                message="Component body could not be read.",
                plugin=component.plugin,
                kind=component.kind,
                path=component.locator,
                reason=str(exc),
            )
        )
        return issues

    _check_plugin_root_refs(body, source_path=component.path, component=component, issues=issues)
    if component.kind == "command":
        _check_command_placeholders(component, body, issues)
    if component.kind == "skill":
        _check_skill_references(component, body, config, issues)
    return issues


def lint_report(report: ScanReport, config: MarketplaceConfig) -> List[FrameworkIssue]:
    """对 ScanReport 中全部 plugin/组件执行 lint，返回新增 issues（未应用 severity_overrides）。"""

    issues: List[FrameworkIssue] = []
    for plugin in report.plugins:
        _check_plugin(plugin, issues)
    for component in report.components:
        issues.extend(lint_component(component, config))
    logger.debug("lint produced %d issues for %d components", len(issues), len(report.components))
    return issues


def apply_severity_overrides(issues: Iterable[FrameworkIssue], overrides: Dict[str, str]) -> List[FrameworkIssue]:
    """按 code 重写 `details.level`；`off` 的 issue 被丢弃。"""

    out: List[FrameworkIssue] = []
    for issue in issues:
        override = overrides.get(issue.code)
        if override is None:
            out.append(issue)
            continue
        if override == "off":
            continue
        details = dict(issue.details) if isinstance(issue.details, dict) else {"value": issue.details}
        details["level"] = override
        out.append(FrameworkIssue(code=issue.code, message=issue.message, details=details))
    return out
