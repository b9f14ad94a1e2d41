from __future__ import annotations

from pathlib import Path

from skills_marketplace.plugins.loader import load_skill_metadata
from skills_marketplace.plugins.matching import match_components, tokenize, trigger_phrases
from skills_marketplace.plugins.models import Component


def _skill(tmp_path: Path, plugin: str, name: str, description: str) -> Component:
    """写入 SKILL.md 并加载为 Component。"""

    plugin_root = tmp_path / plugin
    p = plugin_root / "skills" / name / "SKILL.md"
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(f"---\nname: {name}\ndescription: '{description}'\n---\nbody\n", encoding="utf-8")
    return load_skill_metadata(p, plugin=plugin, plugin_root=plugin_root)


def test_tokenize_drops_short_words_and_stop_words() -> None:
    """小于 3 字符与停用词被丢弃；`c++` 这类符号词保留。"""

    assert tokenize("The C++ UI code") == frozenset({"c++", "code"})


def test_trigger_phrases_accept_straight_and_curly_quotes() -> None:
    """引号括起且不少于 3 字符的短语才算触发短语。"""

    assert trigger_phrases('Say “Make it pop” or "less generic"') == ["make it pop", "less generic"]
    assert trigger_phrases('Say "ab" only') == []


def test_match_ranks_by_overlap_and_trigger_phrase(tmp_path: Path) -> None:
    """触发短语命中加分；得分为 0 的组件不返回。"""

    swift = _skill(tmp_path, "refactoring", "swift-refactoring", 'Refactor Swift code. Triggers: "refactor this swift".')
    ui = _skill(tmp_path, "ui-design", "frontend-aesthetics", 'Distinctive typography and color for "less generic" UI.')

    results = match_components([ui, swift], "Please refactor this Swift view controller")
    assert [r.component.qualified_name for r in results] == ["refactoring:swift-refactoring"]
    assert results[0].matched_tokens == ["refactor", "swift"]
    assert results[0].score == 5

    obj = results[0].to_jsonable()
    assert obj["kind"] == "skill"
    assert obj["score"] == 5


def test_match_name_bonus(tmp_path: Path) -> None:
    """组件名原样出现在消息中时加分。"""

    ui = _skill(tmp_path, "ui-design", "frontend-aesthetics", "Typography and color.")
    results = match_components([ui], "run frontend-aesthetics on the landing page")
    assert results[0].score == 2 + 5
    assert results[0].matched_tokens == ["aesthetics", "frontend"]


def test_match_ties_sorted_by_qualified_name_and_limited(tmp_path: Path) -> None:
    """同分按 qualified_name 升序；limit 截断；空消息或 limit<=0 返回空列表。"""

    b = _skill(tmp_path, "beta", "naming", "Naming rules for identifiers.")
    a = _skill(tmp_path, "alpha", "naming", "Naming rules for identifiers.")

    results = match_components([b, a], "identifiers")
    assert [r.component.qualified_name for r in results] == ["alpha:naming", "beta:naming"]
    assert len(match_components([b, a], "identifiers", limit=1)) == 1
    assert match_components([a, b], "   ") == []
    assert match_components([a, b], "identifiers", limit=0) == []
