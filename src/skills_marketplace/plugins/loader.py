"""
Marketplace/plugin/组件 loader。

- JSON manifest：`.claude-plugin/marketplace.json`、`<plugin>/.claude-plugin/plugin.json`
- 组件：`skills/<skill>/SKILL.md`、`agents/<agent>.md`、`commands/**/<command>.md`

约束：
- metadata 加载阶段不读取正文（skill/agent 为流式 frontmatter-only；command 的 frontmatter
  可选，仅在缺 description 时读取首个非空正文行）
- 正文懒加载时强制 plugin 根目录包含关系（防御 symlink 替换）
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from skills_marketplace.core.errors import ComponentLoadError, FrameworkError
from skills_marketplace.plugins.frontmatter import read_frontmatter_only, split_frontmatter, strip_frontmatter
from skills_marketplace.plugins.manifests import MarketplaceManifest, PluginManifest
from skills_marketplace.plugins.models import Component

MARKETPLACE_MANIFEST_RELPATH = Path(".claude-plugin") / "marketplace.json"
PLUGIN_MANIFEST_RELPATH = Path(".claude-plugin") / "plugin.json"


def _collapse_whitespace(s: str) -> str:
    """把字符串中的多余空白折叠为单个空格（用于规范化 description）。"""

    return " ".join(str(s).split())


def _read_json_object(path: Path, *, code: str) -> Dict[str, Any]:
    """读取 JSON 文件并确保根节点为 object；失败抛出带 code 的 FrameworkError。"""

    try:
        obj = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FrameworkError(
            code=code,
            message="Manifest is not valid JSON.",
            details={"path": str(path), "reason": str(exc)},
        ) from exc
    if not isinstance(obj, dict):
        raise FrameworkError(
            code=code,
            message="Manifest root must be an object.",
            details={"path": str(path), "actual": type(obj).__name__},
        )
    return obj


def _validation_reason(exc: ValidationError) -> list[Dict[str, Any]]:
    """把 pydantic ValidationError 压缩为稳定的 `[{loc, msg}]` 列表。"""

    return [{"loc": ".".join(str(x) for x in err.get("loc", ())), "msg": str(err.get("msg", ""))} for err in exc.errors()]


def load_marketplace_manifest(path: Path) -> MarketplaceManifest:
    """
    读取并校验 marketplace.json。

    异常：
    - FrameworkError(MARKETPLACE_MANIFEST_INVALID)
    """

    obj = _read_json_object(path, code="MARKETPLACE_MANIFEST_INVALID")
    try:
        return MarketplaceManifest.model_validate(obj)
    except ValidationError as exc:
        raise FrameworkError(
            code="MARKETPLACE_MANIFEST_INVALID",
            message="Marketplace manifest failed schema validation.",
            details={"path": str(path), "errors": _validation_reason(exc)},
        ) from exc


def load_plugin_manifest(path: Path) -> PluginManifest:
    """
    读取并校验 plugin.json。

    异常：
    - FrameworkError(PLUGIN_MANIFEST_INVALID)
    """

    obj = _read_json_object(path, code="PLUGIN_MANIFEST_INVALID")
    try:
        return PluginManifest.model_validate(obj)
    except ValidationError as exc:
        raise FrameworkError(
            code="PLUGIN_MANIFEST_INVALID",
            message="Plugin manifest failed schema validation.",
            details={"path": str(path), "errors": _validation_reason(exc)},
        ) from exc


def _body_loader(path: Path, plugin_root: Path) -> Callable[[], str]:
    """构造懒加载正文函数（去掉 frontmatter；读取前校验 plugin 根目录包含关系）。"""

    def _load() -> str:
        """读取正文（不含 frontmatter）。"""

        real = Path(path).resolve()
        if not real.is_relative_to(Path(plugin_root).resolve()):
            raise PermissionError(f"component path escapes plugin root: {real}")
        return strip_frontmatter(real.read_text(encoding="utf-8"))

    return _load


def _required_str(fm: Dict[str, Any], key: str, path: Path) -> str:
    """读取必填非空字符串字段；缺失/类型不对时抛出 ComponentLoadError。"""

    value = fm.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ComponentLoadError(f"frontmatter_field_required:{key}", path)
    return value


def _load_named_component(
    *,
    kind: str,
    path: Path,
    plugin: str,
    root_dir: Path,
    plugin_root: Path,
    max_frontmatter_bytes: int,
) -> Component:
    """skill/agent 公共加载逻辑（frontmatter 必填 name/description）。"""

    p = Path(path)
    fm = read_frontmatter_only(p, max_frontmatter_bytes=max_frontmatter_bytes)
    name = _required_str(fm, "name", p).strip()
    if any(c.isspace() for c in name):
        raise ComponentLoadError("frontmatter_field_invalid:name", p)
    desc = _collapse_whitespace(_required_str(fm, "description", p))

    return Component(
        kind=kind,
        plugin=plugin,
        name=name,
        description=desc,
        locator=str(p),
        path=p.resolve(),
        root_dir=Path(root_dir).resolve(),
        plugin_root=Path(plugin_root).resolve(),
        body_size=int(p.stat().st_size),
        body_loader=_body_loader(p, plugin_root),
        frontmatter=dict(fm),
    )


def load_skill_metadata(
    path: Path,
    *,
    plugin: str,
    plugin_root: Path,
    max_frontmatter_bytes: int = 65536,
) -> Component:
    """
    从 `skills/<skill>/SKILL.md` 加载 skill（metadata-only）。

    异常：
    - ComponentLoadError：文件名不是 SKILL.md、frontmatter 缺失/非法、name/description 缺失
    """

    p = Path(path)
    if p.name != "SKILL.md":
        raise ComponentLoadError("file_name_must_be_SKILL.md", p)
    return _load_named_component(
        kind="skill",
        path=p,
        plugin=plugin,
        root_dir=p.parent,
        plugin_root=plugin_root,
        max_frontmatter_bytes=max_frontmatter_bytes,
    )


def load_agent_metadata(
    path: Path,
    *,
    plugin: str,
    plugin_root: Path,
    max_frontmatter_bytes: int = 65536,
) -> Component:
    """从 `agents/<agent>.md` 加载 agent（metadata-only）。"""

    return _load_named_component(
        kind="agent",
        path=Path(path),
        plugin=plugin,
        root_dir=plugin_root,
        plugin_root=plugin_root,
        max_frontmatter_bytes=max_frontmatter_bytes,
    )


def command_name_for_path(path: Path, commands_dir: Path) -> str:
    """按相对 commands/ 的路径推导 command 名（目录段以 `:` 连接，去掉 `.md`）。"""

    rel = Path(path).relative_to(commands_dir)
    parts = list(rel.parts[:-1]) + [rel.stem]
    return ":".join(parts)


def _first_body_line(body: str) -> Optional[str]:
    """返回正文首个非空行（去掉 Markdown 标题符号）。"""

    for line in body.splitlines():
        s = line.strip().lstrip("#").strip()
        if s:
            return s
    return None


def load_command_metadata(
    path: Path,
    *,
    plugin: str,
    plugin_root: Path,
    commands_dir: Optional[Path] = None,
) -> Component:
    """
    从 `commands/**/<command>.md` 加载 command。

    说明：
    - frontmatter 可选（fail-open）；name 由文件路径推导
    - 缺 description 时回退到正文首个非空行

    异常：
    - ComponentLoadError：文件不可读或非 UTF-8；description 存在但不是字符串，或既无 description 也无正文
    """

    p = Path(path)
    if not p.exists() or not p.is_file():
        raise ComponentLoadError("file_not_found", p)
    try:
        raw = p.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ComponentLoadError("file_not_utf8", p) from exc
    except OSError as exc:
        raise ComponentLoadError("file_read_failed", p) from exc
    fm, body = split_frontmatter(raw)

    cdir = Path(commands_dir) if commands_dir is not None else Path(plugin_root) / "commands"
    name = command_name_for_path(p, cdir)

    desc_raw = fm.get("description")
    if desc_raw is not None and not isinstance(desc_raw, str):
        raise ComponentLoadError("frontmatter_field_invalid:description", p)
    desc = desc_raw if isinstance(desc_raw, str) and desc_raw.strip() else _first_body_line(body)
    if not desc:
        raise ComponentLoadError("command_description_missing", p)

    return Component(
        kind="command",
        plugin=plugin,
        name=name,
        description=_collapse_whitespace(desc),
        locator=str(p),
        path=p.resolve(),
        root_dir=Path(plugin_root).resolve(),
        plugin_root=Path(plugin_root).resolve(),
        body_size=len(raw.encode("utf-8")),
        body_loader=_body_loader(p, plugin_root),
        frontmatter=dict(fm),
    )
