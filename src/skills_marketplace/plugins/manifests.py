"""
Manifest schema（marketplace.json / plugin.json / 组件 frontmatter）。

说明：
- JSON manifest（marketplace/plugin）严格校验必填字段，但允许扩展字段（宿主生态会演进）；
- frontmatter 模型允许未知字段（load 阶段不拒绝），未知字段由 lint 以 warning 报告；
- 带连字符的 frontmatter 字段通过 alias 映射（`allowed-tools` / `argument-hint`）。
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Person(BaseModel):
    """owner/author 结构（`name` 必填）。"""

    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    email: Optional[str] = None
    url: Optional[str] = None


class RemoteSource(BaseModel):
    """远端 plugin source（github/url/git）；仅记录，不拉取。"""

    model_config = ConfigDict(extra="allow")

    source: str = Field(min_length=1)
    repo: Optional[str] = None
    url: Optional[str] = None
    ref: Optional[str] = None


class MarketplacePluginEntry(BaseModel):
    """marketplace.json 的 `plugins[]` 条目。"""

    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    source: Union[str, RemoteSource]
    description: Optional[str] = None
    version: Optional[str] = None
    author: Optional[Person] = None
    keywords: List[str] = Field(default_factory=list)
    category: Optional[str] = None

    @field_validator("source")
    @classmethod
    def _validate_source(cls, value: Union[str, RemoteSource]) -> Union[str, RemoteSource]:
        """本地 source 不得为空串。"""

        if isinstance(value, str) and not value.strip():
            raise ValueError("plugins[].source must be a non-empty path")
        return value

    @property
    def local_source(self) -> Optional[str]:
        """返回本地相对路径 source；远端 source 返回 None。"""

        if isinstance(self.source, str):
            return self.source
        return None


class MarketplaceMetadata(BaseModel):
    """marketplace.json 的可选 `metadata` 段。"""

    model_config = ConfigDict(extra="allow")

    description: Optional[str] = None
    version: Optional[str] = None
    plugin_root: Optional[str] = Field(default=None, alias="pluginRoot")


class MarketplaceManifest(BaseModel):
    """`.claude-plugin/marketplace.json`。"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(min_length=1)
    owner: Person
    metadata: MarketplaceMetadata = Field(default_factory=MarketplaceMetadata)
    plugins: List[MarketplacePluginEntry] = Field(default_factory=list)


class PluginManifest(BaseModel):
    """`<plugin>/.claude-plugin/plugin.json`。"""

    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    version: Optional[str] = None
    description: Optional[str] = None
    author: Optional[Person] = None
    keywords: List[str] = Field(default_factory=list)
    license: Optional[str] = None
    homepage: Optional[str] = None
    repository: Optional[Any] = None


class _FrontmatterBase(BaseModel):
    """frontmatter 公共基类（允许未知字段；保留原始 key）。"""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: Optional[Any] = None
    description: Optional[Any] = None

    # 子类覆盖：该 kind 认识的 frontmatter key（按原始写法，含连字符）
    KNOWN_KEYS: ClassVar[FrozenSet[str]] = frozenset()

    @classmethod
    def unknown_keys(cls, frontmatter: Dict[str, Any]) -> List[str]:
        """返回 frontmatter 中该 kind 未知的 key（排序）。"""

        return sorted(k for k in frontmatter.keys() if k not in cls.KNOWN_KEYS)


class SkillFrontmatter(_FrontmatterBase):
    """SKILL.md frontmatter。"""

    KNOWN_KEYS: ClassVar[FrozenSet[str]] = frozenset({"name", "description", "version", "allowed-tools", "license", "metadata"})

    version: Optional[Any] = None
    allowed_tools: Optional[Any] = Field(default=None, alias="allowed-tools")


class AgentFrontmatter(_FrontmatterBase):
    """agents/*.md frontmatter（`tools` 与 `allowed-tools` 均接受）。"""

    KNOWN_KEYS: ClassVar[FrozenSet[str]] = frozenset({"name", "description", "tools", "allowed-tools", "model", "color"})

    tools: Optional[Any] = None
    allowed_tools: Optional[Any] = Field(default=None, alias="allowed-tools")
    model: Optional[Any] = None
    color: Optional[Any] = None


class CommandFrontmatter(_FrontmatterBase):
    """commands/*.md frontmatter（全部字段可选）。"""

    KNOWN_KEYS: ClassVar[FrozenSet[str]] = frozenset(
        {"description", "allowed-tools", "argument-hint", "model", "disable-model-invocation"}
    )

    allowed_tools: Optional[Any] = Field(default=None, alias="allowed-tools")
    argument_hint: Optional[Any] = Field(default=None, alias="argument-hint")
    model: Optional[Any] = None


FRONTMATTER_MODELS: Dict[str, type[_FrontmatterBase]] = {
    "skill": SkillFrontmatter,
    "agent": AgentFrontmatter,
    "command": CommandFrontmatter,
}
