"""
Consolidation module.

Runs the consolidation pipeline for a group and fiscal period and keeps
the run record, its step log, its consolidated trial balance and its
reconciliation list.
"""

from consolidation_modules.consolidation.service import ConsolidationRunService
from consolidation_modules.consolidation.workflows import CONSOLIDATION_RUN_WORKFLOW

__all__ = ["CONSOLIDATION_RUN_WORKFLOW", "ConsolidationRunService"]
