"""
Module ORM Registry (``lpo_modules._orm_registry``).

Ensure every module's SQLAlchemy models are imported so that
``Base.metadata`` holds their tables before ``create_tables()`` runs.
Called lazily by ``lpo_kernel.db.engine``; idempotent.
"""


def import_all_orm_models() -> None:
    """Import the kernel sequence table and every ``lpo_modules.*.orm`` module."""
    # fmt: off
    import lpo_kernel.services.sequence_service  # noqa: F401  # sequence_counters
    import lpo_modules.orders.orm  # noqa: F401
    import lpo_modules.receiving.orm  # noqa: F401
    import lpo_modules.assets.orm  # noqa: F401
    # fmt: on
