"""
Migration runner for the billing schema.

The target URL comes from DATABASE_URL and is normalized by the same code
the application uses, so migrations and the app always agree on the async
driver. alembic.ini puts the repo root on sys.path.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

import billflow.infrastructure.db.models  # noqa: F401  (registers the tables)
from billflow.infrastructure.db.database import DatabaseManager
from billflow.infrastructure.db.models.base import UTCDateTime


config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def render_item(type_, obj, autogen_context):
    """Write UTCDateTime columns as plain timestamptz so revisions never import billflow."""
    if type_ == "type" and isinstance(obj, UTCDateTime):
        return "sa.DateTime(timezone=True)"
    return False


def _configure(**options) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_item=render_item,
        **options,
    )


def run_offline() -> None:
    """Emit the migration SQL to stdout instead of executing it."""
    _configure(
        url=DatabaseManager()._get_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection) -> None:
    # SQLite cannot ALTER most constraints in place
    _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
    with context.begin_transaction():
        context.run_migrations()


async def run_online() -> None:
    engine = create_async_engine(DatabaseManager()._get_database_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())
