"""
Plugin 系统（marketplace/plugin 扫描、lint、组件查找与渲染）。
"""

from __future__ import annotations

from skills_marketplace.plugins.manager import MarketplaceManager
from skills_marketplace.plugins.models import Component, Plugin, ScanReport
from skills_marketplace.plugins.navigation import NavigationEntry, NavigationMap

__all__ = [
    "Component",
    "MarketplaceManager",
    "NavigationEntry",
    "NavigationMap",
    "Plugin",
    "ScanReport",
]
