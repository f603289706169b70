"""Idempotent bootstrap for the ``users`` table.

Runs on every cold start, possibly from several processes at once. The table
is created only when missing; columns introduced by later releases are
appended with ``ADD COLUMN`` through Alembic's operations API, and the unique
email index is created if absent. Nothing is ever dropped or narrowed.
"""
import logging
from typing import Callable

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine

from storefront.core.exceptions import SchemaError
from storefront.models.user import EMAIL_INDEX_NAME, Account

logger = logging.getLogger(__name__)

TABLE = Account.__tablename__


def additive_columns() -> list[sa.Column]:
    # Columns added after the first release. is_verified defaults to true so
    # accounts created before email verification existed can still log in.
    return [
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("verification_token_hash", sa.String(length=64), nullable=True),
        sa.Column("verification_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _ops(conn: Connection) -> Operations:
    return Operations(MigrationContext.configure(conn))

def _table_exists(conn: Connection) -> bool:
    return inspect(conn).has_table(TABLE)

def _column_names(conn: Connection) -> set[str]:
    return {c["name"] for c in inspect(conn).get_columns(TABLE)}

def _has_email_index(conn: Connection) -> bool:
    insp = inspect(conn)
    for ix in insp.get_indexes(TABLE):
        if ix["name"] == EMAIL_INDEX_NAME or (ix.get("unique") and ix["column_names"] == ["email"]):
            return True
    return any(uc["column_names"] == ["email"] for uc in insp.get_unique_constraints(TABLE))


async def _apply(
    engine: AsyncEngine,
    description: str,
    step: Callable[[Connection], None],
    satisfied: Callable[[Connection], bool],
) -> None:
    """Run one DDL step in its own transaction.

    A failed step counts as done when re-inspection shows that another
    process applied the same change in the meantime.
    """
    try:
        async with engine.begin() as conn:
            await conn.run_sync(step)
    except DBAPIError as exc:
        try:
            async with engine.connect() as conn:
                done = await conn.run_sync(satisfied)
        except DBAPIError:
            done = False
        if not done:
            logger.error("users schema: %s failed: %s", description, exc.orig)
            raise SchemaError(f"Could not {description}.") from exc
        logger.info("users schema: %s already applied by another process", description)
        return
    logger.info("users schema: %s", description)


async def ensure_users_schema(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        exists = await conn.run_sync(_table_exists)

    if not exists:
        await _apply(
            engine,
            f"create table {TABLE}",
            lambda conn: Account.__table__.create(conn, checkfirst=True),
            _table_exists,
        )

    async with engine.connect() as conn:
        present = await conn.run_sync(_column_names)

    for column in additive_columns():
        if column.name in present:
            continue
        await _apply(
            engine,
            f"add column {TABLE}.{column.name}",
            lambda conn, column=column: _ops(conn).add_column(TABLE, column),
            lambda conn, name=column.name: name in _column_names(conn),
        )

    async with engine.connect() as conn:
        indexed = await conn.run_sync(_has_email_index)

    if not indexed:
        await _apply(
            engine,
            f"create unique index {EMAIL_INDEX_NAME}",
            lambda conn: _ops(conn).create_index(EMAIL_INDEX_NAME, TABLE, ["email"], unique=True),
            _has_email_index,
        )
