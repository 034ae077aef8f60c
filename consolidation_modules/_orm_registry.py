"""
Module ORM registry (``consolidation_modules._orm_registry``).

Imports every ``consolidation_modules.*.orm`` module so that
``Base.metadata`` holds all table definitions before ``create_all()``.
Scripts, entrypoints and ``tests/conftest.py`` call
``import_all_orm_models()`` (directly or through ``create_tables()``).
"""


def import_all_orm_models() -> None:
    """Register all module ORM models. Idempotent."""
    import consolidation_modules.consolidation.orm  # noqa: F401
    import consolidation_modules.intercompany.orm  # noqa: F401
