"""
Consolidation configuration (``consolidation_config``).

YAML-backed configuration for matching tolerances, fan-out width, the
group's special accounts and the elimination rule table.

Usage::

    from consolidation_config import ConsolidationConfig, load_config

    config = ConsolidationConfig.with_defaults()
    config = load_config("group_a.yaml")
    config = load_config(overrides="group_a_overrides.yaml")
"""

from consolidation_config.loader import load_config, load_yaml_file
from consolidation_config.schema import ConsolidationConfig, SpecialAccounts

__all__ = [
    "ConsolidationConfig",
    "SpecialAccounts",
    "load_config",
    "load_yaml_file",
]
