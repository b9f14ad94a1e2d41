"""配置（YAML overlays + pydantic schema + preflight）。"""

from __future__ import annotations

from skills_marketplace.config.defaults import load_default_config_dict
from skills_marketplace.config.loader import MarketplaceConfig, load_config, load_config_dicts

__all__ = ["MarketplaceConfig", "load_config", "load_config_dicts", "load_default_config_dict"]
