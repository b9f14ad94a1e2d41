"""
Marketplace SDK 错误分类（异常类型 + 结构化问题对象）。

说明：
- scan/lint 阶段以 `FrameworkIssue` 聚合问题，不中断扫描；
- 查询/渲染等单点操作以 `FrameworkError` 抛出（英文 `code/message/details`）；
- 问题级别约定放在 `details["level"]`（`error` / `warning`），缺省视为 error。
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict


LEVEL_ERROR = "error"
LEVEL_WARNING = "warning"


class MarketplaceSdkError(Exception):
    """SDK 内部错误基类（不建议直接抛出）。"""


@dataclass(frozen=True)
class FrameworkIssue:
    """框架结构化问题对象（可用于 scan/lint 报告中的 errors/warnings）。"""

    code: str
    message: str
    details: Dict[str, Any]

    @property
    def level(self) -> str:
        """返回问题级别（`details.level`；缺省为 error）。"""

        if isinstance(self.details, dict) and self.details.get("level") == LEVEL_WARNING:
            return LEVEL_WARNING
        return LEVEL_ERROR


def make_issue(*, code: str, message: str, level: str = LEVEL_ERROR, **details: Any) -> FrameworkIssue:
    """构造带 level 的 FrameworkIssue（details 中 `level` 字段固定写入）。"""

    payload: Dict[str, Any] = {"level": level}
    payload.update(details)
    return FrameworkIssue(code=code, message=message, details=payload)


class FrameworkError(MarketplaceSdkError):
    """框架层结构化错误（英文 `code/message/details`）。"""

    def __init__(self, *, code: str, message: str, details: Dict[str, Any] | None = None) -> None:
        """创建框架错误。

        参数：
        - `code`：稳定错误码（英文大写下划线）
        - `message`：英文错误消息
        - `details`：结构化上下文信息
        """

        super().__init__(message)
        self.code = code
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def __str__(self) -> str:
        """返回用于日志的字符串表示。"""

        return f"{self.code}: {self.message}"

    def to_issue(self) -> FrameworkIssue:
        """把异常转换为可序列化问题对象。"""

        return FrameworkIssue(code=self.code, message=self.message, details=dict(self.details))


@dataclass(frozen=True)
class ComponentLoadError(MarketplaceSdkError):
    """组件（skill/agent/command）加载错误（用于控制流与错误聚合）。"""

    message: str
    path: Path

    def __str__(self) -> str:  # pragma: no cover
        """返回用于日志/UI 展示的错误信息（包含路径）。"""

        return f"{self.message} ({self.path})"
