"""Database Declarative Base: shared SQLAlchemy Base for the ORM models.

Invariants:
    - All sessions and connections are async (AsyncSession / AsyncConnection)
"""
