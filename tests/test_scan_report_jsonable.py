from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

from skills_marketplace.core.errors import FrameworkIssue, make_issue
from skills_marketplace.plugins.models import Component, Plugin, ScanReport


def _component(tmp_path: Path) -> Component:
    """构造 body_loader 一旦被调用即失败的组件。"""

    def _boom() -> str:
        """正文不应在投影时被读取。"""

        raise AssertionError("body_loader must not be called")

    return Component(
        kind="skill",
        plugin="p",
        name="s",
        description="d",
        locator=str(tmp_path / "SKILL.md"),
        path=tmp_path / "SKILL.md",
        root_dir=tmp_path,
        plugin_root=tmp_path,
        body_size=10,
        body_loader=_boom,
        frontmatter={"name": "s", "description": "d", "metadata": {"released": dt.date(2026, 1, 2)}},
    )


def test_scan_report_to_jsonable_is_metadata_only_and_strict_json(tmp_path: Path) -> None:
    """投影不读取正文；NaN/Inf/set/date/非 FrameworkIssue 均降级为合法 JSON。"""

    comp = _component(tmp_path)
    plugin = Plugin(name="p", root=tmp_path, source="directory", manifest=None, entry=None, components=[comp])
    report = ScanReport(
        scan_id="abc",
        root=tmp_path,
        plugins=[plugin],
        components=[comp],
        errors=[make_issue(code="X", message="m", ratio=float("nan"), tags={"b"})],
        warnings=[FrameworkIssue(code="W", message="m", details={"level": "warning", "big": float("inf")}), "odd"],  # type: ignore[list-item]
        stats={"plugins_total": 1, "weird": "x"},  # type: ignore[dict-item]
    )

    obj = report.to_jsonable()
    json.dumps(obj, allow_nan=False)

    assert obj["components"][0]["frontmatter"]["metadata"]["released"] == "2026-01-02"
    assert obj["plugins"][0]["components"] == {"skill": 1, "agent": 0, "command": 0}
    assert obj["errors"][0]["details"]["ratio"] == "NaN"
    assert obj["errors"][0]["details"]["tags"] == ["b"]
    assert obj["warnings"][0]["details"]["big"] == "Infinity"
    assert obj["warnings"][1]["code"] == "UNKNOWN_ISSUE"
    assert obj["stats"] == {"plugins_total": 1, "weird": 0}


def test_plugin_version_prefers_manifest(tmp_path: Path) -> None:
    """plugin 版本优先取 plugin.json，其次 marketplace 条目。"""

    p = Plugin(name="p", root=tmp_path, source="marketplace", manifest={"version": "2.0.0"}, entry={"version": "1.0.0"})
    assert p.version == "2.0.0"
    q = Plugin(name="q", root=tmp_path, source="marketplace", manifest=None, entry={"version": "1.0.0"})
    assert q.version == "1.0.0"
