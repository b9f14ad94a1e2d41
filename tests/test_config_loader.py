from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from skills_marketplace.config.defaults import load_default_config_dict
from skills_marketplace.config.loader import MarketplaceConfig, load_config, load_config_dicts


def test_embedded_default_matches_model_defaults() -> None:
    """内置 default.yaml 与 pydantic 默认值一致。"""

    cfg = load_config_dicts([load_default_config_dict()])
    assert cfg == MarketplaceConfig()


def test_overlays_deep_merge_and_lists_replace() -> None:
    """dict 递归合并（后者覆盖）；list 整体替换。"""

    cfg = load_config_dicts(
        [
            load_default_config_dict(),
            {"scan": {"max_depth": 2}, "lint": {"agent_colors": ["red"]}},
            {"scan": {"refresh_policy": "manual"}},
        ]
    )
    assert cfg.scan.max_depth == 2
    assert cfg.scan.refresh_policy == "manual"
    assert cfg.scan.plugins_dir == "plugins"
    assert cfg.lint.agent_colors == ["red"]


@pytest.mark.parametrize(
    "overlay",
    [
        {"scan": {"typo_field": 1}},
        {"scan": {"max_depth": "3"}},
        {"scan": {"refresh_policy": "sometimes"}},
        {"lint": {"severity_overrides": {"NAVIGATION_TARGET_NOT_FOUND": "info"}}},
        {"lint": {"navigation_map_names": ["references/navigation-map.md"]}},
        {"render": {"default_reference_max_bytes": 0}},
    ],
)
def test_invalid_config_is_rejected(overlay: dict) -> None:
    """未知字段、类型错误、非法枚举与越界值均被 schema 拒绝。"""

    with pytest.raises(ValidationError):
        load_config_dicts([overlay])


def test_load_config_from_yaml_files(tmp_path: Path) -> None:
    """多个 YAML 文件按顺序合并；空文件视为空 overlay。"""

    a = tmp_path / "a.yaml"
    a.write_text("lint:\n  check_body_links: false\n", encoding="utf-8")
    b = tmp_path / "b.yaml"
    b.write_text("", encoding="utf-8")

    cfg = load_config([a, b])
    assert cfg.lint.check_body_links is False


def test_load_config_errors(tmp_path: Path) -> None:
    """文件不存在与根节点不是 mapping 都抛 ValueError。"""

    with pytest.raises(ValueError, match="not found"):
        load_config([tmp_path / "missing.yaml"])

    bad = tmp_path / "bad.yaml"
    bad.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config([bad])
