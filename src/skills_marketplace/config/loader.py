"""
配置加载器（YAML）。

设计目标：
- 支持加载多个 YAML，并按顺序做深度合并（后者覆盖前者）。
- 使用 pydantic 做 schema 校验；默认拒绝未知字段（避免拼写错误与误配置被静默吞掉）。
- 默认配置随 package 分发：`skills_marketplace/assets/default.yaml`。
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, MutableMapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, field_validator


def _deep_merge(base: MutableMapping[str, Any], overlay: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """
    深度合并两个 dict（overlay 覆盖 base）。

    合并规则：
    - dict + dict：递归合并
    - 其它类型：overlay 直接覆盖
    - list：整体覆盖（不做去重/拼接）
    """

    for key, overlay_value in overlay.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(overlay_value, Mapping)
        ):
            _deep_merge(base[key], overlay_value)  # type: ignore[arg-type]
            continue
        base[key] = deepcopy(overlay_value)
    return base


class MarketplaceScanConfig(BaseModel):
    """扫描参数（必须可回归；拒绝隐式扩展字段）。"""

    model_config = ConfigDict(extra="forbid")

    ignore_dot_entries: StrictBool = True
    max_frontmatter_bytes: StrictInt = Field(default=65536, ge=1)
    # commands/ 子目录与 references/ 遍历的最大深度
    max_depth: StrictInt = Field(default=8, ge=0)
    # 无 marketplace.json 时的回退目录（相对 root）
    plugins_dir: str = Field(default="plugins", min_length=1)
    refresh_policy: Literal["always", "manual"] = Field(default="always")


class MarketplaceLintConfig(BaseModel):
    """
    Lint 规则参数。

    说明：
    - `severity_overrides` 可把任意 issue code 调整为 error/warning，或以 `off` 关闭；
    - `agent_colors/agent_models` 为 agent frontmatter 的取值白名单。
    """

    model_config = ConfigDict(extra="forbid")

    navigation_map_names: List[str] = Field(default_factory=lambda: ["navigation-map.md"])
    check_body_links: StrictBool = True
    require_plugin_manifest: StrictBool = False
    agent_colors: List[str] = Field(
        default_factory=lambda: ["red", "blue", "green", "yellow", "purple", "orange", "pink", "cyan"]
    )
    agent_models: List[str] = Field(default_factory=lambda: ["sonnet", "opus", "haiku", "inherit"])
    max_name_chars: StrictInt = Field(default=64, ge=1)
    max_description_chars: StrictInt = Field(default=1024, ge=1)
    severity_overrides: Dict[str, Literal["error", "warning", "off"]] = Field(default_factory=dict)

    @field_validator("navigation_map_names")
    @classmethod
    def _validate_map_names(cls, value: List[str]) -> List[str]:
        """navigation map 文件名只能是纯文件名（不得包含路径分隔符）。"""

        for name in value:
            if not isinstance(name, str) or not name.strip() or "/" in name or "\\" in name:
                raise ValueError("lint.navigation_map_names[] must be plain file names")
        return value


class MarketplaceRenderConfig(BaseModel):
    """渲染/引用读取参数。"""

    model_config = ConfigDict(extra="forbid")

    max_body_bytes: Optional[StrictInt] = Field(default=None, ge=1)
    default_reference_max_bytes: StrictInt = Field(default=64 * 1024, ge=1)
    allowed_reference_dirs: List[str] = Field(default_factory=lambda: ["references", "assets", "examples"])


class MarketplaceConfig(BaseModel):
    """SDK 配置根对象。"""

    model_config = ConfigDict(extra="forbid")

    config_version: int = Field(default=1, ge=1)
    scan: MarketplaceScanConfig = Field(default_factory=MarketplaceScanConfig)
    lint: MarketplaceLintConfig = Field(default_factory=MarketplaceLintConfig)
    render: MarketplaceRenderConfig = Field(default_factory=MarketplaceRenderConfig)


def load_yaml_mapping(path: Path) -> Dict[str, Any]:
    """
    读取 YAML 配置文件，要求根节点为 mapping（空文件视为 `{}`）。

    异常：
    - ValueError：文件不存在或根节点不是 mapping
    - yaml.YAMLError：YAML 语法错误
    """

    path = Path(path)
    if not path.is_file():
        raise ValueError(f"config file not found: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"config root must be a mapping(dict): {path}")
    return data


def load_config_dicts(config_dicts: list[Dict[str, Any]]) -> MarketplaceConfig:
    """
    加载并合并多个 dict 配置，返回校验后的 `MarketplaceConfig`。

    参数：
    - config_dicts：按顺序做深度合并（后者覆盖前者）
    """

    merged: Dict[str, Any] = {}
    for overlay in config_dicts:
        if not overlay:
            continue
        _deep_merge(merged, overlay)
    return MarketplaceConfig.model_validate(merged)


def load_config(config_paths: list[Path]) -> MarketplaceConfig:
    """
    加载并合并多个配置文件，返回校验后的 `MarketplaceConfig`。

    参数：
    - config_paths：YAML 路径列表；按顺序合并（后者覆盖前者）
    """

    overlays: list[Dict[str, Any]] = []
    for path in config_paths:
        overlays.append(load_yaml_mapping(Path(path)))
    return load_config_dicts(overlays)
