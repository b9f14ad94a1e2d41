from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import pytest

from skills_marketplace.config.loader import MarketplaceConfig
from skills_marketplace.core.errors import make_issue
from skills_marketplace.plugins.lint import apply_severity_overrides, lint_report
from skills_marketplace.plugins.scanner import scan_marketplace


def _write(path: Path, text: str = "x\n") -> Path:
    """写入 UTF-8 文本 fixture。"""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _md(frontmatter: Dict[str, Any], body: str = "body\n") -> str:
    """拼出带 YAML frontmatter 的 Markdown（JSON 是合法 YAML flow mapping）。"""

    lines = ["---"] + [f"{k}: {json.dumps(v)}" for k, v in frontmatter.items()] + ["---", body]
    return "\n".join(lines)


def _plugin(tmp_path: Path, name: str = "p") -> Path:
    """写入 plugin.json + marketplace.json 并返回 plugin 根目录。"""

    plugin_root = tmp_path / "plugins" / name
    _write(plugin_root / ".claude-plugin" / "plugin.json", json.dumps({"name": name}))
    _write(
        tmp_path / ".claude-plugin" / "marketplace.json",
        json.dumps({"name": "m", "owner": {"name": "o"}, "plugins": [{"name": name, "source": f"./plugins/{name}"}]}),
    )
    return plugin_root


def _lint(tmp_path: Path, config: MarketplaceConfig | None = None):  # type: ignore[no-untyped-def]
    """scan + lint，返回 (scan_report, lint_issues)。"""

    cfg = config or MarketplaceConfig()
    report = scan_marketplace(tmp_path, cfg)
    return report, lint_report(report, cfg)


def _by_code(issues, code: str) -> List[Any]:  # type: ignore[no-untyped-def]
    """按 code 过滤 issues。"""

    return [it for it in issues if it.code == code]


def test_clean_plugin_has_no_lint_issues(tmp_path: Path) -> None:
    """完整且引用齐全的 plugin 不产生任何 lint issue。"""

    root = _plugin(tmp_path)
    skill = root / "skills" / "good"
    _write(
        skill / "SKILL.md",
        _md(
            {"name": "good", "description": "d", "version": "1.2.3", "allowed-tools": "Read, Grep"},
            "See [nav](references/navigation-map.md) and ${CLAUDE_PLUGIN_ROOT}/assets/a.json\n",
        ),
    )
    _write(skill / "references" / "navigation-map.md", "| t | [naming](naming.md) |\n| f | `../SKILL.md` |\n")
    _write(skill / "references" / "naming.md", "Back to [map](navigation-map.md)\n")
    _write(root / "assets" / "a.json", "{}")
    _write(root / "agents" / "rev.md", _md({"name": "rev", "description": "d", "model": "sonnet", "color": "blue"}))
    _write(root / "commands" / "go.md", _md({"description": "d", "argument-hint": "<x>"}, "Go $1\n"))

    report, issues = _lint(tmp_path)
    assert report.ok
    assert issues == []


def test_naming_and_description_rules(tmp_path: Path) -> None:
    """非 slug 名称为 error；与目录/文件名不一致、描述过长为 warning。"""

    root = _plugin(tmp_path)
    _write(root / "skills" / "dir-name" / "SKILL.md", _md({"name": "Other_Name", "description": "d"}))
    _write(root / "agents" / "file-stem.md", _md({"name": "agent-x", "description": "x" * 30}))

    cfg = MarketplaceConfig.model_validate({"lint": {"max_description_chars": 10}})
    _, issues = _lint(tmp_path, cfg)

    invalid = _by_code(issues, "COMPONENT_NAME_INVALID")
    assert [it.details["name"] for it in invalid] == ["Other_Name"]
    assert invalid[0].level == "error"

    mismatch = _by_code(issues, "COMPONENT_NAME_MISMATCH")
    assert sorted(it.details["expected"] for it in mismatch) == ["dir-name", "file-stem"]
    assert all(it.level == "warning" for it in mismatch)

    too_long = _by_code(issues, "COMPONENT_DESCRIPTION_TOO_LONG")
    assert [it.details["actual_chars"] for it in too_long] == [30]
    assert too_long[0].level == "warning"


def test_frontmatter_field_rules(tmp_path: Path) -> None:
    """agent model/color 白名单、tools 形状、argument-hint 类型、semver（warning）。"""

    root = _plugin(tmp_path)
    _write(
        root / "agents" / "bad.md",
        _md({"name": "bad", "description": "d", "model": "gpt-4", "color": "magenta", "tools": 7}),
    )
    _write(root / "commands" / "hint.md", _md({"description": "d", "argument-hint": 5}, "Use $ARGUMENTS\n"))
    _write(root / "skills" / "ver" / "SKILL.md", _md({"name": "ver", "description": "d", "version": "v1"}))

    _, issues = _lint(tmp_path)
    fields = {(it.details["field"], it.level) for it in _by_code(issues, "COMPONENT_FIELD_INVALID")}
    assert fields == {
        ("model", "error"),
        ("color", "error"),
        ("tools", "error"),
        ("argument-hint", "error"),
        ("version", "warning"),
    }


def test_unknown_frontmatter_fields_are_warnings(tmp_path: Path) -> None:
    """kind 不认识的 frontmatter key 报 warning（agent 的 color 放在 skill 上也算未知）。"""

    root = _plugin(tmp_path)
    _write(root / "skills" / "s" / "SKILL.md", _md({"name": "s", "description": "d", "color": "red", "triggers": ["x"]}))

    _, issues = _lint(tmp_path)
    unknown = _by_code(issues, "COMPONENT_UNKNOWN_FIELD")
    assert sorted(it.details["field"] for it in unknown) == ["color", "triggers"]
    assert all(it.level == "warning" for it in unknown)


def test_argument_hint_without_placeholder(tmp_path: Path) -> None:
    """声明 argument-hint 但正文未使用任何占位符时报 warning。"""

    root = _plugin(tmp_path)
    _write(root / "commands" / "noop.md", _md({"description": "d", "argument-hint": "<file>"}, "Nothing here\n"))
    _write(root / "commands" / "ok.md", _md({"description": "d"}, "No hint, no args\n"))

    _, issues = _lint(tmp_path)
    unused = _by_code(issues, "COMMAND_ARGUMENT_HINT_UNUSED")
    assert [it.details["name"] for it in unused] == ["noop"]


def test_missing_reference_targets(tmp_path: Path) -> None:
    """navigation map 缺失目标、plugin 根引用缺失、正文/references 链接缺失分别报 error。"""

    root = _plugin(tmp_path)
    skill = root / "skills" / "s"
    _write(
        skill / "SKILL.md",
        _md({"name": "s", "description": "d"}, "Read [gone](references/gone.md)\nLoad ${CLAUDE_PLUGIN_ROOT}/assets/missing.css\n"),
    )
    _write(
        skill / "references" / "navigation-map.md",
        "- [here](here.md)\n- [absent](absent.md)\n- `${CLAUDE_PLUGIN_ROOT}/assets/nope.md`\n",
    )
    _write(skill / "references" / "here.md", "See [sibling](sibling.md)\n")
    _write(root / "agents" / "a.md", _md({"name": "a", "description": "d"}, "Use ${CLAUDE_PLUGIN_ROOT}/scripts/run.sh\n"))

    _, issues = _lint(tmp_path)

    nav = _by_code(issues, "NAVIGATION_TARGET_NOT_FOUND")
    assert [it.details["target"] for it in nav] == ["absent.md"]
    assert nav[0].details["line"] == 2

    root_refs = sorted(it.details["target"] for it in _by_code(issues, "PLUGIN_ROOT_REF_NOT_FOUND"))
    assert root_refs == ["${CLAUDE_PLUGIN_ROOT}/assets/nope.md", "assets/missing.css", "scripts/run.sh"]

    body = sorted(it.details["target"] for it in _by_code(issues, "BODY_LINK_NOT_FOUND"))
    assert body == ["references/gone.md", "sibling.md"]
    assert all(it.level == "error" for it in issues)


def test_body_link_checks_can_be_disabled(tmp_path: Path) -> None:
    """check_body_links=false 时只保留 navigation map 检查。"""

    root = _plugin(tmp_path)
    skill = root / "skills" / "s"
    _write(skill / "SKILL.md", _md({"name": "s", "description": "d"}, "Read [gone](gone.md)\n"))
    _write(skill / "references" / "navigation-map.md", "- [absent](absent.md)\n")

    cfg = MarketplaceConfig.model_validate({"lint": {"check_body_links": False}})
    _, issues = _lint(tmp_path, cfg)
    assert [it.code for it in issues] == ["NAVIGATION_TARGET_NOT_FOUND"]


def test_navigation_map_prose_plugin_root_refs_are_checked(tmp_path: Path) -> None:
    """navigation map 正文中的 `${CLAUDE_PLUGIN_ROOT}` 引用同样检查，且不与条目缺失重复报告。"""

    root = _plugin(tmp_path)
    skill = root / "skills" / "s"
    _write(skill / "SKILL.md", _md({"name": "s", "description": "d"}))
    _write(
        skill / "references" / "navigation-map.md",
        "# Map\n"
        "Fonts live at ${CLAUDE_PLUGIN_ROOT}/assets/missing-fonts.md for pairing.\n"
        "Palettes: ${CLAUDE_PLUGIN_ROOT}/assets/palettes.json\n"
        "- `${CLAUDE_PLUGIN_ROOT}/assets/nope.md`\n",
    )
    _write(root / "assets" / "palettes.json", "[]")

    cfg = MarketplaceConfig.model_validate({"lint": {"check_body_links": False}})
    _, issues = _lint(tmp_path, cfg)

    refs = _by_code(issues, "PLUGIN_ROOT_REF_NOT_FOUND")
    assert sorted((it.details["line"], it.details["target"]) for it in refs) == [
        (2, "assets/missing-fonts.md"),
        (4, "${CLAUDE_PLUGIN_ROOT}/assets/nope.md"),
    ]
    assert all(it.details["path"].endswith("navigation-map.md") for it in refs)
    assert [it.code for it in issues] == ["PLUGIN_ROOT_REF_NOT_FOUND", "PLUGIN_ROOT_REF_NOT_FOUND"]


def test_plugin_name_mismatch(tmp_path: Path) -> None:
    """marketplace 条目名与 plugin.json 名不一致时报 warning。"""

    root = _plugin(tmp_path, "p")
    _write(root / ".claude-plugin" / "plugin.json", json.dumps({"name": "renamed"}))

    _, issues = _lint(tmp_path)
    mismatch = _by_code(issues, "PLUGIN_NAME_MISMATCH")
    assert [it.details["manifest_name"] for it in mismatch] == ["renamed"]
    assert mismatch[0].level == "warning"


@pytest.mark.parametrize(
    ("override", "expected_level"),
    [("warning", "warning"), ("error", "error"), ("off", None)],
)
def test_apply_severity_overrides(override: str, expected_level: str | None) -> None:
    """override 改写 details.level；off 丢弃 issue；未覆盖的 code 原样保留。"""

    issues = [
        make_issue(code="NAVIGATION_TARGET_NOT_FOUND", message="m", target="a.md"),
        make_issue(code="COMPONENT_UNKNOWN_FIELD", message="m", level="warning"),
    ]
    out = apply_severity_overrides(issues, {"NAVIGATION_TARGET_NOT_FOUND": override})
    nav = [it for it in out if it.code == "NAVIGATION_TARGET_NOT_FOUND"]
    if expected_level is None:
        assert nav == []
    else:
        assert nav[0].level == expected_level
        assert nav[0].details["target"] == "a.md"
    assert [it.code for it in out if it.code == "COMPONENT_UNKNOWN_FIELD"] == ["COMPONENT_UNKNOWN_FIELD"]
    assert issues[0].details["level"] == "error"
