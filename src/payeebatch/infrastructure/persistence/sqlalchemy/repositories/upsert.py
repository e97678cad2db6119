"""INSERT ... ON CONFLICT DO UPDATE for the supported dialects."""

from __future__ import annotations

from typing import Any, Sequence

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# Keeps one statement below the bind parameter limits of both backends
UPSERT_CHUNK_SIZE = 500


def upsert_statement(
    session: AsyncSession,
    table: Table,
    rows: Sequence[dict[str, Any]],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str],
):
    """Build an upsert of ``rows`` keyed on ``conflict_columns``.

    On conflict only ``update_columns`` take the incoming values; everything
    else keeps what is stored.
    """
    dialect = session.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        msg = f"Upsert is not supported for dialect '{dialect}'"
        raise NotImplementedError(msg)

    stmt = insert(table).values(list(rows))
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={column: stmt.excluded[column] for column in update_columns},
    )
