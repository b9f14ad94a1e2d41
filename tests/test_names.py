from __future__ import annotations

import pytest

from skills_marketplace.core.errors import FrameworkError
from skills_marketplace.plugins.names import (
    is_valid_component_name,
    is_valid_slug,
    parse_qualified_name,
    split_tool_list,
)


@pytest.mark.parametrize("value", ["a", "ui-design", "swift-refactoring", "a1-b2-c3", "x9"])
def test_valid_slugs(value: str) -> None:
    """合法 slug：小写字母/数字，单个连字符分隔。"""

    assert is_valid_slug(value)


@pytest.mark.parametrize("value", ["", "UI", "a_b", "a--b", "-a", "a-", "a b", "a.b", None, 3])
def test_invalid_slugs(value: object) -> None:
    """非法 slug：大写、下划线、连续/首尾连字符、空白、非字符串。"""

    assert not is_valid_slug(value)


def test_component_name_allows_colon_segments() -> None:
    """command 嵌套目录名以 `:` 连接，每段都必须是 slug。"""

    assert is_valid_component_name("git:commit")
    assert not is_valid_component_name("git::commit")
    assert not is_valid_component_name("Git:commit")


def test_parse_qualified_name_with_plugin() -> None:
    """`plugin:name` 拆分为 plugin + name；前导 `/` 被忽略。"""

    q = parse_qualified_name("/ui-design:design-review")
    assert q.plugin == "ui-design"
    assert q.name == "design-review"
    assert str(q) == "ui-design:design-review"


def test_parse_qualified_name_bare_name() -> None:
    """裸名没有 plugin 前缀。"""

    q = parse_qualified_name("frontend-aesthetics")
    assert q.plugin is None
    assert str(q) == "frontend-aesthetics"


def test_parse_qualified_name_unknown_prefix_is_nested_command() -> None:
    """首段不是已知 plugin 时整体视为组件名（嵌套 command）。"""

    q = parse_qualified_name("git:commit", known_plugins={"ui-design"})
    assert q.plugin is None
    assert q.name == "git:commit"

    q2 = parse_qualified_name("ui-design:git:commit", known_plugins={"ui-design"})
    assert q2.plugin == "ui-design"
    assert q2.name == "git:commit"


@pytest.mark.parametrize("raw", ["", "/", "a:", ":a", "Bad:Name", "a b"])
def test_parse_qualified_name_rejects_malformed(raw: str) -> None:
    """格式非法时抛出 COMPONENT_NAME_FORMAT_INVALID。"""

    with pytest.raises(FrameworkError) as ei:
        parse_qualified_name(raw)
    assert ei.value.code == "COMPONENT_NAME_FORMAT_INVALID"


def test_split_tool_list_respects_parentheses() -> None:
    """括号内的逗号不切分。"""

    assert split_tool_list("Read, Bash(git add:*, git commit:*), Grep") == [
        "Read",
        "Bash(git add:*, git commit:*)",
        "Grep",
    ]


def test_split_tool_list_accepts_list_and_none() -> None:
    """list 原样归一化；None/空串为空列表。"""

    assert split_tool_list([" Read ", "Edit"]) == ["Read", "Edit"]
    assert split_tool_list(None) == []
    assert split_tool_list("") == []


@pytest.mark.parametrize("value", [42, {"a": 1}, ["Read", ""], "Read,,Grep", "Bash(git", "Read)"])
def test_split_tool_list_rejects_bad_shapes(value: object) -> None:
    """类型不支持、空项、括号不配对时抛 ValueError。"""

    with pytest.raises(ValueError):
        split_tool_list(value)
