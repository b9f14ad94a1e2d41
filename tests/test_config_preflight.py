from __future__ import annotations

from skills_marketplace.config.loader import MarketplaceConfig
from skills_marketplace.config.validator import preflight


def _codes(cfg: MarketplaceConfig) -> list[tuple[str, str]]:
    """返回 (code, level) 列表。"""

    return [(it.code, it.level) for it in preflight(cfg)]


def test_default_config_has_no_preflight_issues() -> None:
    """默认配置零 issue。"""

    assert preflight(MarketplaceConfig()) == []


def test_unknown_override_code_is_warning() -> None:
    """severity_overrides 引用未知 code 时报 warning（带字段路径）。"""

    cfg = MarketplaceConfig.model_validate({"lint": {"severity_overrides": {"NOT_A_CODE": "off"}}})
    issues = preflight(cfg)
    assert [(it.code, it.level) for it in issues] == [("CONFIG_UNKNOWN_ISSUE_CODE", "warning")]
    assert issues[0].details["path"] == "lint.severity_overrides.NOT_A_CODE"


def test_reference_checks_disabled_warning() -> None:
    """navigation map 与正文链接检查同时关闭时报 warning。"""

    cfg = MarketplaceConfig.model_validate({"lint": {"navigation_map_names": [], "check_body_links": False}})
    assert _codes(cfg) == [("CONFIG_REFERENCE_CHECKS_DISABLED", "warning")]


def test_duplicate_list_entries_are_warnings() -> None:
    """白名单重复项报 warning，并指出首次出现的位置。"""

    cfg = MarketplaceConfig.model_validate({"lint": {"agent_colors": ["red", "blue", "red"]}})
    issues = preflight(cfg)
    assert [(it.code, it.details["path"], it.details["first_index"]) for it in issues] == [
        ("CONFIG_DUPLICATE_ENTRY", "lint.agent_colors[2]", 0)
    ]


def test_invalid_reference_dirs_are_errors() -> None:
    """allowed_reference_dirs 中的绝对路径、`..`、空串为 error。"""

    cfg = MarketplaceConfig.model_validate({"render": {"allowed_reference_dirs": ["references", "/abs", "../up", " "]}})
    issues = preflight(cfg)
    assert [it.details["path"] for it in issues] == [
        "render.allowed_reference_dirs[1]",
        "render.allowed_reference_dirs[2]",
        "render.allowed_reference_dirs[3]",
    ]
    assert all(it.code == "CONFIG_INVALID_REFERENCE_DIR" and it.level == "error" for it in issues)
