"""
Registered models and auto-migration.

Models are schema descriptors: SQLModel classes declared with ``table=True``
(or any declarative class exposing ``__table__``) and plain SQLAlchemy
``Table`` objects. Auto-migration only ever adds: missing tables are created
and missing columns are added with alembic operations, together with the
index of an ``index=True`` column. Nothing is dropped or altered, so
migrating the same descriptor twice is a no-op. SQLite cannot ALTER in a
foreign key or unique constraint, so adding such a column there fails with
MigrationError.
"""

import logging
import threading
from collections.abc import Sequence
from typing import Any

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import Connection, Engine, MetaData, Table, inspect
from sqlalchemy.exc import SQLAlchemyError

from .errors import InvalidModelError, MigrationError

logger = logging.getLogger(__name__)


def describe(model: Any) -> Table:
    """Return the ``Table`` behind a model class or table object."""
    if isinstance(model, Table):
        return model
    table = getattr(model, "__table__", None)
    if isinstance(model, type) and isinstance(table, Table):
        return table
    raise InvalidModelError(
        f"{model!r} is not a table model (declare SQLModel classes with table=True)"
    )


class ModelRegistry:
    """Append-only, ordered, thread-safe set of tables to migrate."""

    def __init__(self) -> None:
        self._tables: list[Table] = []
        self._lock = threading.Lock()

    def register(self, *models: Any) -> int:
        """Append *models* in order; returns how many were new."""
        # validate everything first so a bad entry registers nothing
        tables = [describe(m) for m in models]
        added = 0
        with self._lock:
            for table in tables:
                if any(table is existing for existing in self._tables):
                    continue
                self._tables.append(table)
                added += 1
        return added

    def tables(self) -> list[Table]:
        with self._lock:
            return list(self._tables)

    def __len__(self) -> int:
        with self._lock:
            return len(self._tables)


def _create_missing_tables(conn: Connection, tables: Sequence[Table]) -> None:
    groups: dict[int, tuple[MetaData, list[Table]]] = {}
    for table in tables:
        groups.setdefault(id(table.metadata), (table.metadata, []))[1].append(table)
    for metadata, group in groups.values():
        metadata.create_all(conn, tables=group, checkfirst=True)


def _add_missing_columns(conn: Connection, tables: Sequence[Table]) -> int:
    inspector = inspect(conn)
    operations = Operations(MigrationContext.configure(conn))
    added = 0
    for table in tables:
        existing = {c["name"] for c in inspector.get_columns(table.name, schema=table.schema)}
        for column in table.columns:
            if column.name in existing:
                continue
            operations.add_column(table.name, column._copy(), schema=table.schema)
            logger.info("Added column %s.%s", table.name, column.name)
            added += 1
    return added


def auto_migrate(engine: Engine, tables: Sequence[Table]) -> int:
    """
    Bring the database schema up to the given tables, in one transaction.

    Returns the number of migrated models (0 when *tables* is empty).
    """
    if not tables:
        return 0
    try:
        with engine.begin() as conn:
            _create_missing_tables(conn, tables)
            columns = _add_missing_columns(conn, tables)
    except (SQLAlchemyError, NotImplementedError) as e:
        raise MigrationError(f"Auto-migration failed: {e}") from e
    logger.info(
        "Auto-migration finished, %d models migrated (%d columns added)",
        len(tables),
        columns,
    )
    return len(tables)
