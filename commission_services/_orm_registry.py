"""
ORM Registry (``commission_services._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table definition before tables are created.

Usage
-----
``commission_kernel.db.engine.create_tables()`` and ``tests/conftest.py``
call ``import_all_orm_models()``.
"""


def import_all_orm_models() -> None:
    """Import kernel, batch and service models.  Idempotent."""
    import commission_kernel.models  # noqa: F401
    import commission_batch.models  # noqa: F401
    import commission_services.orm  # noqa: F401
