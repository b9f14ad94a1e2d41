"""
YAML frontmatter 解析（SKILL.md / agents/*.md / commands/*.md）。

约定：
- frontmatter 必须以首行 `---` 开始并以下一个 `---` 行结束；
- `split_frontmatter` 为 fail-open（用于 command 等 frontmatter 可选的文件）；
- `read_frontmatter_only` 为 strict + 流式读取（scan 阶段 metadata-only，不读正文）。
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml

from skills_marketplace.core.errors import ComponentLoadError


def _parse_yaml_mapping(fm_text: str) -> Dict[str, Any] | None:
    """把 frontmatter 文本解析为 dict；YAML 非法或根节点非 mapping 时返回 None。"""

    try:
        obj = yaml.safe_load(fm_text)
    except yaml.YAMLError:
        return None
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        return None
    return {str(k): v for k, v in obj.items()}


def split_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """
    将 Markdown 文本拆分为 frontmatter 与 body。

    约定：
    - 若首行不是 `---`、未闭合、或 YAML 非法：视为无 frontmatter（返回空 dict + 原文）
    """

    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != "---":
        return {}, text

    fm_lines: List[str] = []
    end_idx = None
    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            end_idx = i
            break
        fm_lines.append(lines[i])
    if end_idx is None:
        return {}, text

    obj = _parse_yaml_mapping("".join(fm_lines))
    if obj is None:
        return {}, text
    return obj, "".join(lines[end_idx + 1 :])


def strip_frontmatter(text: str) -> str:
    """返回去掉 frontmatter 之后的正文（无 frontmatter 时原样返回）。"""

    _, body = split_frontmatter(text)
    return body


def read_frontmatter_only(path: Path, *, max_frontmatter_bytes: int) -> Dict[str, Any]:
    """
    以流式方式读取 YAML frontmatter（只读到第 2 个 `---`，不读取正文）。

    参数：
    - path：Markdown 文件
    - max_frontmatter_bytes：frontmatter 最大字节数上限（含边界行）

    异常：
    - ComponentLoadError：frontmatter_missing / frontmatter_unterminated /
      frontmatter_too_large / frontmatter_invalid_yaml / file_not_utf8 / file_read_failed
    """

    p = Path(path)
    if not p.exists() or not p.is_file():
        raise ComponentLoadError("file_not_found", p)

    if not isinstance(max_frontmatter_bytes, int) or max_frontmatter_bytes < 1:
        max_frontmatter_bytes = 1

    bytes_read = 0
    fm_lines: List[str] = []

    try:
        with p.open("r", encoding="utf-8") as f:
            first = f.readline()
            if not first:
                raise ComponentLoadError("frontmatter_missing", p)

            bytes_read += len(first.encode("utf-8"))
            if bytes_read > max_frontmatter_bytes:
                raise ComponentLoadError("frontmatter_too_large", p)

            if first.strip() != "---":
                raise ComponentLoadError("frontmatter_missing", p)

            while True:
                line = f.readline()
                if line == "":
                    raise ComponentLoadError("frontmatter_unterminated", p)

                bytes_read += len(line.encode("utf-8"))
                if bytes_read > max_frontmatter_bytes:
                    raise ComponentLoadError("frontmatter_too_large", p)

                if line.strip() == "---":
                    break
                fm_lines.append(line)
    except UnicodeDecodeError as exc:
        raise ComponentLoadError("file_not_utf8", p) from exc
    except OSError as exc:
        raise ComponentLoadError("file_read_failed", p) from exc

    obj = _parse_yaml_mapping("".join(fm_lines))
    if obj is None:
        raise ComponentLoadError("frontmatter_invalid_yaml", p)
    return obj
