"""
JSON 投影工具（报告/CLI 输出共用）。

目标：任意 frontmatter/details 值都能通过 `json.dumps(..., allow_nan=False)`，且投影本身不抛异常。
"""

from __future__ import annotations

import hashlib
import math
from pathlib import Path
from typing import Any, Dict, Mapping, Set

from skills_marketplace.core.errors import FrameworkIssue

MAX_DEPTH = 8


def _text(value: Any) -> str:
    """str(value)；`__str__` 自身抛错时返回占位符。"""

    try:
        return str(value)
    except Exception:
        # 第三方对象的 __str__ 可能抛出任意异常
        return "<unprintable>"


def _non_finite(value: float) -> str:
    """NaN/Inf 的字符串表示。"""

    if math.isnan(value):
        return "NaN"
    return "Infinity" if value > 0 else "-Infinity"


def to_json_safe(value: Any, *, max_depth: int = MAX_DEPTH) -> Any:
    """
    递归转换为 JSON 兼容值。

    规则：
    - 标量原样；float NaN/Inf 转字符串
    - Path -> str；bytes -> {__type__, len, sha256}；Exception -> {__type__, class, message}
    - mapping 的 key 转 str 并排序；list/tuple 保序；set 按字符串排序
    - date/datetime 等带 `isoformat()` 的对象转 ISO 字符串，其余对象转 str
    - 超过 max_depth 或遇到循环引用时以占位字符串截断
    """

    active: Set[int] = set()

    def walk(obj: Any, depth: int) -> Any:
        """单层转换（active 记录当前路径上的容器，用于循环检测）。"""

        if depth >= max_depth:
            return "<max_depth_reached>"
        if obj is None or isinstance(obj, (bool, int, str)):
            return obj
        if isinstance(obj, float):
            return obj if math.isfinite(obj) else _non_finite(obj)
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, bytes):
            return {"__type__": "bytes", "len": len(obj), "sha256": hashlib.sha256(obj).hexdigest()}
        if isinstance(obj, Exception):
            return {"__type__": "exception", "class": type(obj).__name__, "message": _text(obj)}

        if isinstance(obj, (Mapping, list, tuple, set, frozenset)):
            if id(obj) in active:
                return "<cycle>"
            active.add(id(obj))
            try:
                if isinstance(obj, Mapping):
                    converted = {_text(k): walk(v, depth + 1) for k, v in obj.items()}
                    return dict(sorted(converted.items()))
                items = [walk(v, depth + 1) for v in obj]
                if isinstance(obj, (set, frozenset)):
                    items.sort(key=_text)
                return items
            finally:
                active.discard(id(obj))

        isoformat = getattr(obj, "isoformat", None)
        if callable(isoformat):
            return _text(isoformat())
        return _text(obj)

    return walk(value, 0)


def coerce_int(value: Any) -> int:
    """尽力转换为 int（bool/整数值 float/数字字符串）；失败返回 0。"""

    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value.is_integer() else 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def issue_to_jsonable(issue: Any) -> Dict[str, object]:
    """把 FrameworkIssue 投影为 `{code, message, details}`；其它对象降级为 UNKNOWN_ISSUE。"""

    if not isinstance(issue, FrameworkIssue):
        return {"code": "UNKNOWN_ISSUE", "message": "Non-standard issue object.", "details": {"value": to_json_safe(issue)}}
    details = issue.details if isinstance(issue.details, Mapping) else {"value": issue.details}
    return {"code": _text(issue.code), "message": _text(issue.message), "details": to_json_safe(details)}
