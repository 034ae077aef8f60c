"""Consolidation kernel: shared primitives for the group consolidation engine."""
