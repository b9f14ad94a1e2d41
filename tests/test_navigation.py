from __future__ import annotations

from pathlib import Path

from skills_marketplace.plugins.navigation import (
    NavigationEntry,
    extract_body_links,
    load_navigation_map,
    parse_navigation_map,
    resolve_entry,
)


def _write(path: Path, text: str = "x\n") -> Path:
    """写入 UTF-8 文本 fixture。"""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


_MAP = """\
# Navigation

| If refactoring... | Read |
| --- | --- |
| Swift naming | [naming](naming.md#rules) |
| Control flow | `references/control-flow.md` |
| Fonts | `${CLAUDE_PLUGIN_ROOT}/assets/fonts.md` |

- External docs: [Swift API guidelines](https://www.swift.org/documentation/api-design-guidelines/)
- Jump: [top](#navigation), mail [us](mailto:a@b.c)
- Inline code that is not a path: `guard let`, `--flag`, `$ARGUMENTS`

```markdown
[ignored](inside-fence.md)
`ignored/also.md`
```
"""


def test_parse_navigation_map_collects_links_and_code_paths() -> None:
    """链接与反引号路径都被识别；URL/锚点/mailto/非路径 code/fenced 内容被忽略。"""

    entries = parse_navigation_map(_MAP)
    assert [(e.target, e.syntax, e.line) for e in entries] == [
        ("naming.md", "link", 5),
        ("references/control-flow.md", "code", 6),
        ("${CLAUDE_PLUGIN_ROOT}/assets/fonts.md", "code", 7),
    ]
    assert entries[0].label == "naming"
    assert entries[1].label == "Control flow | `references/control-flow.md`"
    assert entries[2].is_plugin_root_ref


def test_code_span_inside_link_text_is_not_double_counted() -> None:
    """`[`a.md`](a.md)` 只计一次。"""

    entries = parse_navigation_map("see [`a.md`](a.md)\n")
    assert [(e.target, e.syntax) for e in entries] == [("a.md", "link")]


def test_extract_body_links_includes_images_but_not_code() -> None:
    """正文链接检查只看 Markdown 链接/图片。"""

    text = "![shot](img/shot.png) and [doc](doc.md) and `code.md`\n"
    entries = extract_body_links(text)
    assert sorted((e.target, e.syntax) for e in entries) == [("doc.md", "link"), ("img/shot.png", "image")]


def test_resolve_entry_falls_back_to_skill_dir(tmp_path: Path) -> None:
    """先相对引用所在目录，再回退到 skill 目录。"""

    plugin_root = tmp_path / "plugin"
    skill_dir = plugin_root / "skills" / "s"
    refs = skill_dir / "references"
    _write(refs / "naming.md")

    entry = NavigationEntry(target="references/naming.md", label="", line=1, syntax="code")
    resolved = resolve_entry(entry, base_dir=refs, skill_dir=skill_dir, plugin_root=plugin_root)
    assert resolved.exists
    assert resolved.resolved_path == (refs / "naming.md").resolve()


def test_resolve_entry_rejects_escape_from_plugin_root(tmp_path: Path) -> None:
    """解析结果逃逸 plugin 根目录时视为不存在（即使文件真实存在）。"""

    plugin_root = tmp_path / "plugin"
    skill_dir = plugin_root / "skills" / "s"
    skill_dir.mkdir(parents=True)
    _write(tmp_path / "outside.md")

    entry = NavigationEntry(target="../../../outside.md", label="", line=1, syntax="link")
    resolved = resolve_entry(entry, base_dir=skill_dir, skill_dir=skill_dir, plugin_root=plugin_root)
    assert not resolved.exists


def test_load_navigation_map_reports_missing_targets(tmp_path: Path) -> None:
    """navigation map 的缺失目标出现在 `missing` 中，JSON 视图可序列化。"""

    plugin_root = tmp_path / "plugin"
    skill_dir = plugin_root / "skills" / "swift"
    refs = skill_dir / "references"
    _write(refs / "naming.md")
    _write(plugin_root / "assets" / "fonts.md")
    nav_path = _write(refs / "navigation-map.md", _MAP)

    nav = load_navigation_map(nav_path, skill_dir=skill_dir, plugin_root=plugin_root)
    assert [e.target for e in nav.missing] == ["references/control-flow.md"]

    obj = nav.to_jsonable()
    assert obj["path"] == str(nav_path)
    assert [e["exists"] for e in obj["entries"]] == [True, False, True]
