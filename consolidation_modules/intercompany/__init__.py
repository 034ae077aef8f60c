"""
Intercompany module.

Records intercompany dealings from either side, keeps their matching
status current, handles reviewer variance approval, and exposes the
period reconciliation list.
"""

from consolidation_modules.intercompany.service import IntercompanyService
from consolidation_modules.intercompany.workflows import MATCHING_WORKFLOW

__all__ = ["IntercompanyService", "MATCHING_WORKFLOW"]
