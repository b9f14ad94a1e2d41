"""
配置 bootstrap：overlay 发现 + 合并 + 叶子字段来源追踪。

说明：
- `MarketplaceManager` 只接收已构造好的配置，不做任何 overlay 发现；
- CLI 与上层应用通过 `resolve_effective_config` 得到配置及每个字段的来源（排障用）。

合并顺序（后者覆盖前者）：
1) embedded default（`skills_marketplace/assets/default.yaml`）
2) `<root>/config/marketplace.yaml`（存在时）
3) `SKILLS_MARKETPLACE_CONFIG_PATHS`（逗号/分号分隔）
4) 调用方显式传入的 overlays（CLI `--config`）
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import re
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from skills_marketplace.config.defaults import load_default_config_dict
from skills_marketplace.config.loader import MarketplaceConfig, load_config_dicts, load_yaml_mapping

CONFIG_PATHS_ENV = "SKILLS_MARKETPLACE_CONFIG_PATHS"
DEFAULT_OVERLAY_RELPATH = Path("config") / "marketplace.yaml"
EMBEDDED_DEFAULT_LABEL = "embedded_default"

_PATH_SEP_RE = re.compile(r"[,;]")


def _anchor(root: Path, raw: str | Path) -> Path:
    """相对路径挂到 root 下并 resolve（支持 `~`）。"""

    p = Path(raw).expanduser()
    return (p if p.is_absolute() else root / p).resolve()


def _unique(paths: Sequence[Path]) -> List[Path]:
    """按出现顺序去重。"""

    return list(dict.fromkeys(paths))


def discover_overlay_paths(*, root: Path, env: Optional[Mapping[str, str]] = None) -> List[Path]:
    """
    发现 overlay 配置文件（不读取内容）。

    规则：
    - `<root>/config/marketplace.yaml` 存在时排在最前；
    - 其后追加 env `SKILLS_MARKETPLACE_CONFIG_PATHS` 中的路径（空白值视为未设置）；
    - 结果按 canonical path 去重且保序。
    """

    ws = Path(root).resolve()
    found: List[Path] = []

    default_overlay = (ws / DEFAULT_OVERLAY_RELPATH).resolve()
    if default_overlay.is_file():
        found.append(default_overlay)

    raw = str((os.environ if env is None else env).get(CONFIG_PATHS_ENV) or "")
    found.extend(_anchor(ws, chunk.strip()) for chunk in _PATH_SEP_RE.split(raw) if chunk.strip())
    return _unique(found)


def _iter_leaves(value: Mapping[str, Any], prefix: str = "") -> Iterator[Tuple[str, Any]]:
    """展开 mapping 为 (dotted_path, leaf)；list 与标量都视为叶子。"""

    for key, child in value.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(child, Mapping) and child:
            yield from _iter_leaves(child, dotted)
        else:
            yield dotted, child


def _track_sources(entries: Sequence[Tuple[str, Mapping[str, Any]]]) -> Dict[str, str]:
    """按合并顺序记录每个叶子字段最后一次被哪个来源写入。"""

    sources: Dict[str, str] = {}
    for label, data in entries:
        for dotted, _ in _iter_leaves(data):
            # 标量覆盖整棵子树时，子树下的旧来源失效
            stale = [k for k in sources if k.startswith(dotted + ".")]
            for k in stale:
                del sources[k]
            sources[dotted] = label
    return sources


@dataclass(frozen=True)
class ResolvedConfig:
    """
    有效配置及其来源。

    字段：
    - config：校验后的 MarketplaceConfig
    - overlay_paths：参与合并的 overlay 路径（字符串，按合并顺序）
    - sources：`scan.max_depth -> overlay:/abs/path` 形式的叶子来源表
    """

    config: MarketplaceConfig
    overlay_paths: List[str]
    sources: Dict[str, str]


def resolve_effective_config(
    *,
    root: Path,
    extra_overlays: Sequence[Path] = (),
    env: Optional[Mapping[str, str]] = None,
) -> ResolvedConfig:
    """
    计算有效配置：embedded default -> 发现的 overlays -> extra_overlays。

    异常：
    - ValueError：overlay 缺失或根节点不是 mapping
    - yaml.YAMLError：overlay YAML 语法错误
    - pydantic.ValidationError：合并结果不满足 schema
    """

    ws = Path(root).resolve()
    overlay_paths = _unique([*discover_overlay_paths(root=ws, env=env), *(_anchor(ws, p) for p in extra_overlays)])

    entries: List[Tuple[str, Mapping[str, Any]]] = [(EMBEDDED_DEFAULT_LABEL, load_default_config_dict())]
    entries.extend((f"overlay:{p}", load_yaml_mapping(p)) for p in overlay_paths)

    config = load_config_dicts([dict(data) for _, data in entries])
    return ResolvedConfig(
        config=config,
        overlay_paths=[str(p) for p in overlay_paths],
        sources=_track_sources(entries),
    )
