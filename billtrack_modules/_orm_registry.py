"""
ORM Registry (``billtrack_modules._orm_registry``).

Ensures every SQLAlchemy model is imported so ``Base.metadata`` holds all
table definitions before ``create_tables()`` runs.  Scripts, entrypoints and
``tests/conftest.py`` all go through ``create_tables()``, which calls this.
"""


def import_all_orm_models() -> None:
    """Import every ORM model module.  Idempotent."""
    import billtrack_kernel.models  # noqa: F401
