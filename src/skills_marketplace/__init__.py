"""
skills_marketplace：Claude Code plugin marketplace 的扫描、lint 与渲染工具。
"""

from __future__ import annotations

from skills_marketplace.config.loader import MarketplaceConfig
from skills_marketplace.core.errors import FrameworkError, FrameworkIssue
from skills_marketplace.plugins.manager import MarketplaceManager

__version__ = "0.1.0"

__all__ = ["FrameworkError", "FrameworkIssue", "MarketplaceConfig", "MarketplaceManager", "__version__"]
