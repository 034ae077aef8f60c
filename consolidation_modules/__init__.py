"""Consolidation modules: intercompany, consolidation runs and reporting."""
