"""
Skills Marketplace CLI（preflight/scan/lint/show/render-command/navigate/read-ref/match）。

约束：
- 使用 argparse（不引入第三方 CLI 依赖）
- stdout 输出机器可读 JSON；失败时也输出 JSON

Exit codes：
- 0：成功
- 2：参数错误 / 根目录不存在
- 10：配置错误（preflight errors 或配置加载失败）
- 11：scan/lint 存在 errors（navigate：存在缺失目标）
- 12：仅有 warnings
- 20：参数校验失败（名称格式、reference 路径、正文过大）
- 22：目标不存在（组件、navigation map、reference 文件）
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
import sys
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError
import yaml

from skills_marketplace import bootstrap
from skills_marketplace.core.errors import FrameworkError, FrameworkIssue
from skills_marketplace.plugins.manager import MarketplaceManager
from skills_marketplace.core.jsonable import issue_to_jsonable, to_json_safe
from skills_marketplace.plugins.models import COMPONENT_KINDS, ScanReport


_NOT_FOUND_CODES = frozenset(
    {"COMPONENT_NOT_FOUND", "NAVIGATION_MAP_NOT_FOUND", "REFERENCE_NOT_FOUND"}
)


def _ensure_utf8_stdio() -> None:
    """best-effort 将 stdout/stderr reconfigure 为 UTF-8（`C` locale 下避免 UnicodeEncodeError）。"""

    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if not callable(reconfigure):
            continue
        try:
            reconfigure(encoding="utf-8", errors="replace")
        except (OSError, ValueError):
            continue


def _dump_json_to_stdout(obj: Dict[str, Any], *, pretty: bool) -> None:
    """
    将 dict 输出为 JSON 到 stdout（末尾包含换行）。

    参数：
    - obj：待输出对象（调用方需确保已做清洗）
    - pretty：是否启用 pretty-print（indent=2）
    """

    if pretty:
        text = json.dumps(obj, ensure_ascii=False, indent=2)
    else:
        text = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    print(text)


def _resolve_root(raw: str) -> Tuple[Optional[Path], Optional[FrameworkIssue]]:
    """解析 `--root` 为绝对路径；不存在或不是目录时返回 issue。"""

    root = Path(raw).expanduser().resolve()
    if not root.is_dir():
        return None, FrameworkIssue(
            code="CLI_ROOT_NOT_FOUND",
            message="Marketplace root is not found or not a directory.",
            details={"root": str(root)},
        )
    return root, None


def _load_manager(args: argparse.Namespace) -> Tuple[Optional[MarketplaceManager], List[str], Optional[FrameworkIssue]]:
    """
    解析根目录与配置（embedded default + 发现的 overlays + `--config`）并构造 manager。

    返回：
    - (manager, overlay_paths, issue)：失败时 manager 为 None
    """

    root, issue = _resolve_root(str(args.root))
    if issue is not None or root is None:
        return None, [], issue
    try:
        resolved = bootstrap.resolve_effective_config(
            root=root,
            extra_overlays=[Path(str(p)) for p in (args.config or [])],
        )
    except (ValueError, OSError, yaml.YAMLError, ValidationError) as exc:
        return None, [], FrameworkIssue(
            code="CLI_CONFIG_INVALID",
            message="Config is invalid.",
            details={"reason": str(exc), "overlays": [str(p) for p in (args.config or [])]},
        )
    return MarketplaceManager(root=root, config=resolved.config), list(resolved.overlay_paths), None


def _exit_code_for_setup_issue(issue: FrameworkIssue) -> int:
    """根目录问题 -> 2；配置问题 -> 10。"""

    return 2 if issue.code == "CLI_ROOT_NOT_FOUND" else 10


def _count_issue_levels(issues: List[FrameworkIssue]) -> Tuple[int, int]:
    """统计 (errors_total, warnings_total)（基于 details.level 约定）。"""

    warnings_total = sum(1 for it in issues if it.level == "warning")
    return len(issues) - warnings_total, warnings_total


def _exit_code_for_preflight(issues: List[FrameworkIssue]) -> int:
    """preflight exit code（0/10/12）。"""

    errors_total, warnings_total = _count_issue_levels(issues)
    if errors_total > 0:
        return 10
    if warnings_total > 0:
        return 12
    return 0


def _exit_code_for_report(report: ScanReport) -> int:
    """scan/lint exit code（0/11/12）。"""

    if report.errors:
        return 11
    if report.warnings:
        return 12
    return 0


def _exit_code_for_framework_error(exc: FrameworkError) -> int:
    """查找/渲染类 FrameworkError -> 22（不存在）或 20（校验失败）。"""

    return 22 if exc.code in _NOT_FOUND_CODES else 20


def _error_payload(issue: FrameworkIssue) -> Dict[str, Any]:
    """失败输出 envelope。"""

    return {"ok": False, "error": issue_to_jsonable(issue)}


def _build_parser() -> argparse.ArgumentParser:
    """构建 CLI argparse parser。"""

    parser = argparse.ArgumentParser(
        prog="skills-marketplace",
        description="Scan, lint and render a Claude Code plugin marketplace.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def _add_common_flags(p: argparse.ArgumentParser) -> None:
        """为子命令添加公共 flags。"""

        p.add_argument("--root", default=".", help="Marketplace root directory (default: .)")
        p.add_argument("--config", action="append", default=[], help="Overlay config YAML path (repeatable).")
        p.add_argument("--pretty", action="store_true", help="Pretty-print JSON output.")

    preflight = sub.add_parser("preflight", help="Zero-I/O config preflight")
    _add_common_flags(preflight)

    scan = sub.add_parser("scan", help="Scan plugins and components (metadata-only)")
    _add_common_flags(scan)

    lint = sub.add_parser("lint", aliases=["validate"], help="Scan and lint marketplace content")
    _add_common_flags(lint)

    show = sub.add_parser("show", help="Show a component (metadata and rendered body)")
    _add_common_flags(show)
    show.add_argument("--name", required=True, help="Component name (plugin:name or bare name).")
    show.add_argument("--kind", choices=list(COMPONENT_KINDS), default=None, help="Restrict lookup to one kind.")
    show.add_argument("--no-body", action="store_true", help="Do not render the body.")

    render = sub.add_parser("render-command", help="Render a command with arguments substituted")
    _add_common_flags(render)
    render.add_argument("--name", required=True, help="Command name (plugin:command or bare name).")
    render.add_argument("--arguments", default="", help="Raw argument string ($ARGUMENTS).")

    navigate = sub.add_parser("navigate", help="Show a skill navigation map with resolved targets")
    _add_common_flags(navigate)
    navigate.add_argument("--skill", required=True, help="Skill name (plugin:skill or bare name).")

    read_ref = sub.add_parser("read-ref", help="Read a reference file inside a skill directory")
    _add_common_flags(read_ref)
    read_ref.add_argument("--skill", required=True, help="Skill name (plugin:skill or bare name).")
    read_ref.add_argument("--path", required=True, help="Relative path, e.g. references/naming.md")
    read_ref.add_argument("--max-bytes", type=int, default=None, help="Truncate output to N bytes.")

    match = sub.add_parser("match", help="Rank components for a user message")
    _add_common_flags(match)
    match.add_argument("--message", required=True, help="User message text.")
    match.add_argument("--kind", choices=list(COMPONENT_KINDS), default="skill", help="Component kind (default: skill).")
    match.add_argument("--limit", type=int, default=5, help="Max results (default: 5).")

    return parser


def _handle_preflight(args: argparse.Namespace) -> int:
    """执行 `preflight` 并输出 issues JSON。"""

    mgr, overlay_paths, issue = _load_manager(args)
    issues: List[FrameworkIssue] = [issue] if issue is not None else []
    if mgr is not None:
        issues.extend(mgr.preflight())
    errors_total, warnings_total = _count_issue_levels(issues)
    payload = {
        "issues": [issue_to_jsonable(it) for it in issues],
        "stats": {
            "root": str(mgr.root) if mgr is not None else str(args.root),
            "overlay_paths": overlay_paths,
            "issues_total": len(issues),
            "errors_total": errors_total,
            "warnings_total": warnings_total,
        },
    }
    _dump_json_to_stdout(payload, pretty=bool(args.pretty))
    if issue is not None and issue.code == "CLI_ROOT_NOT_FOUND":
        return 2
    return _exit_code_for_preflight(issues)


def _handle_report(args: argparse.Namespace, *, lint: bool) -> int:
    """执行 `scan`/`lint` 并输出 ScanReport JSON。"""

    mgr, _, issue = _load_manager(args)
    if issue is not None or mgr is None:
        _dump_json_to_stdout(_error_payload(issue), pretty=bool(args.pretty))
        return _exit_code_for_setup_issue(issue)
    report = mgr.lint() if lint else mgr.scan()
    _dump_json_to_stdout(report.to_jsonable(), pretty=bool(args.pretty))
    return _exit_code_for_report(report)


def _handle_show(args: argparse.Namespace) -> int:
    """执行 `show`：输出组件 metadata（以及渲染后的正文）。"""

    mgr, _, issue = _load_manager(args)
    if issue is not None or mgr is None:
        _dump_json_to_stdout(_error_payload(issue), pretty=bool(args.pretty))
        return _exit_code_for_setup_issue(issue)
    try:
        component = mgr.get_component(str(args.name), kind=args.kind)
        payload: Dict[str, Any] = {"ok": True, "component": component.to_metadata_dict()}
        if not args.no_body:
            payload["body"] = mgr.render_component(component)
    except FrameworkError as exc:
        _dump_json_to_stdout(_error_payload(exc.to_issue()), pretty=bool(args.pretty))
        return _exit_code_for_framework_error(exc)
    _dump_json_to_stdout(payload, pretty=bool(args.pretty))
    return 0


def _handle_render_command(args: argparse.Namespace) -> int:
    """执行 `render-command`：输出参数替换后的 command 正文。"""

    mgr, _, issue = _load_manager(args)
    if issue is not None or mgr is None:
        _dump_json_to_stdout(_error_payload(issue), pretty=bool(args.pretty))
        return _exit_code_for_setup_issue(issue)
    try:
        component = mgr.get_component(str(args.name), kind="command")
        rendered = mgr.render_command(component.qualified_name, str(args.arguments or ""))
    except FrameworkError as exc:
        _dump_json_to_stdout(_error_payload(exc.to_issue()), pretty=bool(args.pretty))
        return _exit_code_for_framework_error(exc)
    payload = {
        "ok": True,
        "qualified_name": component.qualified_name,
        "arguments": str(args.arguments or ""),
        "rendered": rendered,
    }
    _dump_json_to_stdout(payload, pretty=bool(args.pretty))
    return 0


def _handle_navigate(args: argparse.Namespace) -> int:
    """执行 `navigate`：输出 navigation map（含目标存在性）。"""

    mgr, _, issue = _load_manager(args)
    if issue is not None or mgr is None:
        _dump_json_to_stdout(_error_payload(issue), pretty=bool(args.pretty))
        return _exit_code_for_setup_issue(issue)
    try:
        nav = mgr.navigation(str(args.skill))
    except FrameworkError as exc:
        _dump_json_to_stdout(_error_payload(exc.to_issue()), pretty=bool(args.pretty))
        return _exit_code_for_framework_error(exc)
    missing = nav.missing
    payload = {
        "ok": not missing,
        "navigation": nav.to_jsonable(),
        "stats": {"entries_total": len(nav.entries), "missing_total": len(missing)},
    }
    _dump_json_to_stdout(payload, pretty=bool(args.pretty))
    return 11 if missing else 0


def _handle_read_ref(args: argparse.Namespace) -> int:
    """执行 `read-ref`：读取 skill 目录内的 reference 文件。"""

    mgr, _, issue = _load_manager(args)
    if issue is not None or mgr is None:
        _dump_json_to_stdout(_error_payload(issue), pretty=bool(args.pretty))
        return _exit_code_for_setup_issue(issue)
    if args.max_bytes is not None and int(args.max_bytes) < 1:
        err = FrameworkIssue(
            code="CLI_ARGUMENT_INVALID",
            message="--max-bytes must be >= 1.",
            details={"max_bytes": args.max_bytes},
        )
        _dump_json_to_stdout(_error_payload(err), pretty=bool(args.pretty))
        return 20
    try:
        result = mgr.read_reference(str(args.skill), str(args.path), max_bytes=args.max_bytes)
    except FrameworkError as exc:
        _dump_json_to_stdout(_error_payload(exc.to_issue()), pretty=bool(args.pretty))
        return _exit_code_for_framework_error(exc)
    _dump_json_to_stdout({"ok": True, **result}, pretty=bool(args.pretty))
    return 0


def _handle_match(args: argparse.Namespace) -> int:
    """执行 `match`：按用户消息输出排序后的组件。"""

    mgr, _, issue = _load_manager(args)
    if issue is not None or mgr is None:
        _dump_json_to_stdout(_error_payload(issue), pretty=bool(args.pretty))
        return _exit_code_for_setup_issue(issue)
    results = mgr.match(str(args.message), kind=args.kind, limit=int(args.limit))
    payload = {
        "ok": True,
        "message": str(args.message),
        "matches": [to_json_safe(r.to_jsonable()) for r in results],
    }
    _dump_json_to_stdout(payload, pretty=bool(args.pretty))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    CLI 入口函数（用于 console_scripts 与测试）。

    参数：
    - argv：命令行参数列表（不含程序名）；为 None 时读取 sys.argv[1:]。

    返回：
    - int：exit code（不会直接 sys.exit，便于测试）。
    """

    _ensure_utf8_stdio()
    parser = _build_parser()
    try:
        args = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as exc:
        # argparse：`--help` 为 0，参数错误为 2
        code = getattr(exc, "code", 2)
        return 2 if code is None else int(code)

    if args.command == "preflight":
        return _handle_preflight(args)
    if args.command == "scan":
        return _handle_report(args, lint=False)
    if args.command in {"lint", "validate"}:
        return _handle_report(args, lint=True)
    if args.command == "show":
        return _handle_show(args)
    if args.command == "render-command":
        return _handle_render_command(args)
    if args.command == "navigate":
        return _handle_navigate(args)
    if args.command == "read-ref":
        return _handle_read_ref(args)
    if args.command == "match":
        return _handle_match(args)
    parser.print_help()
    return 2


def cli_entry() -> None:
    """console_scripts 入口（把 main 的返回值作为进程 exit code）。"""

    raise SystemExit(main())


if __name__ == "__main__":
    cli_entry()
