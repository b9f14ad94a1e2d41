"""
Marketplace config zero-I/O preflight.

Implemented as a pure function so it can be tested and reused without a
MarketplaceManager instance.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any, Dict, List

from skills_marketplace.config.loader import MarketplaceConfig
from skills_marketplace.core.errors import FrameworkIssue
from skills_marketplace.core.issue_codes import KNOWN_ISSUE_CODES


def preflight(config: MarketplaceConfig) -> List[FrameworkIssue]:
    """
    Zero-I/O static preflight for marketplace config.

    Constraints:
    - Must not touch the filesystem.
    - Returns issues tagged with `details.level` (error|warning).
    """

    def _issue(*, code: str, message: str, path: str, level: str, details: Dict[str, Any] | None = None) -> FrameworkIssue:
        """构造一个标准化 FrameworkIssue（用于 preflight 汇总）。"""
        payload: Dict[str, Any] = {"path": path, "level": level}
        if details:
            payload.update(details)
        return FrameworkIssue(code=code, message=message, details=payload)

    issues: List[FrameworkIssue] = []
    lint = config.lint

    for code in sorted(lint.severity_overrides.keys()):
        if code not in KNOWN_ISSUE_CODES:
            issues.append(
                _issue(
                    code="CONFIG_UNKNOWN_ISSUE_CODE",
                    message="Severity override references an unknown issue code.",
                    path=f"lint.severity_overrides.{code}",
                    level="warning",
                    details={"actual": code},
                )
            )

    if not lint.navigation_map_names and not lint.check_body_links:
        issues.append(
            _issue(
                code="CONFIG_REFERENCE_CHECKS_DISABLED",
                message="Both navigation map checks and body link checks are disabled.",
                path="lint",
                level="warning",
            )
        )

    for field in ("agent_colors", "agent_models", "navigation_map_names"):
        values = list(getattr(lint, field))
        seen: Dict[str, int] = {}
        for idx, value in enumerate(values):
            if value in seen:
                issues.append(
                    _issue(
                        code="CONFIG_DUPLICATE_ENTRY",
                        message="Duplicate entry in config list.",
                        path=f"lint.{field}[{idx}]",
                        level="warning",
                        details={"actual": value, "first_index": seen[value]},
                    )
                )
            else:
                seen[value] = idx

    for idx, raw in enumerate(config.render.allowed_reference_dirs):
        p = PurePosixPath(str(raw))
        if not str(raw).strip() or p.is_absolute() or ".." in p.parts:
            issues.append(
                _issue(
                    code="CONFIG_INVALID_REFERENCE_DIR",
                    message="Allowed reference dir must be a relative path without '..'.",
                    path=f"render.allowed_reference_dirs[{idx}]",
                    level="error",
                    details={"actual": raw},
                )
            )

    return issues
