"""
Table definitions owned by the migration subsystem.

Head-office tables (one database shared by all branches):
    - branches: Branch registry records with connection coordinates
    - branch_migration_states: One migration state row per branch

Branch-database table (one per branch database):
    - __migration_history: Ledger of applied migration units

Timestamps are stored as naive UTC; repositories attach the UTC zone on
read so that SQLite and server engines behave the same.

Usage:
    >>> engine = create_async_engine("sqlite+aiosqlite:///head_office.db")
    >>> await create_head_office_schema(engine)
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

LEDGER_TABLE_NAME = "__migration_history"
PRODUCT_VERSION = "1.0.0"

head_office_metadata = MetaData()

branches_table = Table(
    "branches",
    head_office_metadata,
    Column("id", String(36), primary_key=True),
    Column("code", String(20), nullable=False, unique=True),
    Column("name", String(200), nullable=False, default=""),
    Column("provider", String(20), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("db_server", String(255), nullable=False, default=""),
    Column("db_name", String(255), nullable=False, default=""),
    Column("db_port", Integer, nullable=False, default=0),
    Column("db_username", String(255)),
    Column("db_password", String(255)),
    Column("db_additional_params", Text),
    Column("ssl_mode", String(20), nullable=False, default="disable"),
    Column("trust_server_certificate", Boolean, nullable=False, default=False),
)

migration_states_table = Table(
    "branch_migration_states",
    head_office_metadata,
    Column("branch_id", String(36), primary_key=True),
    Column("status", String(40), nullable=False),
    Column("last_migration_applied", String(255), nullable=False, default=""),
    Column("retry_count", Integer, nullable=False, default=0),
    Column("error_details", Text),
    Column("lock_owner_id", String(64)),
    Column("lock_expires_at", DateTime),
    Column("last_attempt_at", DateTime),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

branch_metadata = MetaData()

ledger_table = Table(
    LEDGER_TABLE_NAME,
    branch_metadata,
    Column("migration_id", String(150), primary_key=True),
    Column("product_version", String(32), nullable=False),
    Column("applied_at", DateTime, nullable=False),
)


async def create_head_office_schema(conn: AsyncConnection | AsyncEngine) -> None:
    """Create the head-office tables if they do not exist yet."""
    if isinstance(conn, AsyncEngine):
        async with conn.begin() as connection:
            await connection.run_sync(head_office_metadata.create_all, checkfirst=True)
    else:
        await conn.run_sync(head_office_metadata.create_all, checkfirst=True)


__all__ = [
    "LEDGER_TABLE_NAME",
    "PRODUCT_VERSION",
    "head_office_metadata",
    "branches_table",
    "migration_states_table",
    "branch_metadata",
    "ledger_table",
    "create_head_office_schema",
]
