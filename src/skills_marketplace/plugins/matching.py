"""
组件匹配：根据用户消息为组件打分（模拟宿主按 description 决定加载哪个 skill）。

打分规则：
- token 重叠：消息与 name/description 的小写词（>=3 字符、去停用词）交集大小
- 额外加分：组件 name 原样出现在消息中，或 description 中引号括起的触发短语出现在消息中
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Dict, FrozenSet, Iterable, List

from skills_marketplace.plugins.models import Component

_WORD_RE = re.compile(r"[a-z0-9][a-z0-9+#]*")
_QUOTED_RE = re.compile(r"\"([^\"]{3,})\"|“([^”]{3,})”")

NAME_BONUS = 5
TRIGGER_BONUS = 3

STOP_WORDS: FrozenSet[str] = frozenset(
    {
        "the", "and", "for", "with", "this", "that", "when", "use", "used", "using", "you",
        "your", "are", "was", "from", "into", "about", "should", "would", "could", "can",
        "will", "what", "which", "how", "why", "all", "any", "not", "but", "has", "have",
        "its", "our", "their", "them", "then", "than", "there", "these", "those", "also",
        "user", "asks", "ask", "need", "needs", "help", "please", "like", "make", "want",
    }
)


@dataclass(frozen=True)
class MatchResult:
    """单个匹配结果。"""

    component: Component
    score: int
    matched_tokens: List[str]

    def to_jsonable(self) -> Dict[str, object]:
        """投影为 JSON 视图。"""

        return {
            "qualified_name": self.component.qualified_name,
            "kind": self.component.kind,
            "score": self.score,
            "matched_tokens": list(self.matched_tokens),
            "description": self.component.description,
        }


def tokenize(text: str) -> FrozenSet[str]:
    """小写分词（>=3 字符；去停用词）。"""

    words = set()
    for w in _WORD_RE.findall(str(text or "").lower()):
        if len(w) >= 3 and w not in STOP_WORDS:
            words.add(w)
    return frozenset(words)


def trigger_phrases(description: str) -> List[str]:
    """提取 description 中引号括起的触发短语（小写）。"""

    out: List[str] = []
    for m in _QUOTED_RE.finditer(description or ""):
        phrase = (m.group(1) or m.group(2) or "").strip().lower()
        if phrase:
            out.append(phrase)
    return out


def score_component(component: Component, message: str) -> MatchResult:
    """计算单个组件对消息的得分。"""

    msg_lower = (message or "").lower()
    msg_tokens = tokenize(msg_lower)
    comp_tokens = tokenize(component.name.replace("-", " ").replace(":", " ")) | tokenize(component.description)
    overlap = sorted(msg_tokens & comp_tokens)

    score = len(overlap)
    if component.name.lower() in msg_lower:
        score += NAME_BONUS
    if any(phrase in msg_lower for phrase in trigger_phrases(component.description)):
        score += TRIGGER_BONUS
    return MatchResult(component=component, score=score, matched_tokens=overlap)


def match_components(components: Iterable[Component], message: str, limit: int = 5) -> List[MatchResult]:
    """
    按得分降序返回匹配结果（得分相同按 qualified_name 升序；得分为 0 的组件不返回）。
    """

    if not message or not message.strip() or limit <= 0:
        return []
    results = [score_component(c, message) for c in components]
    results = [r for r in results if r.score > 0]
    results.sort(key=lambda r: (-r.score, r.component.qualified_name))
    return results[:limit]
