"""
Dialect-aware INSERT .. ON CONFLICT builders.

Production runs on PostgreSQL; local development and tests run on SQLite.
Both support ON CONFLICT with partial-index targets.
"""

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from cloudoptimizer.core.exceptions import ConfigurationError


def insert_for(db: AsyncSession, model):
    dialect = db.bind.dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise ConfigurationError(f"Upserts are not supported on the '{dialect}' dialect")
