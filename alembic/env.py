"""
Alembic environment for the TTip record store.

Migrations cover the server-of-record tables on ``Base`` (workers, tips) and
run through the async engine (asyncpg in production). A SQLite URL is also
accepted for local development; batch mode is enabled for it so ALTERs work.

The device-local tables on ``LocalBase`` (queue entries, cached workers) are
created by ``LocalDurableQueue.init()`` and are filtered out here so that
autogenerate never proposes dropping them when both share a database file.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from src.core.config import settings
from src.models import Base, LocalBase

config = context.config
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

_LOCAL_TABLES = frozenset(LocalBase.metadata.tables)


def include_object(obj, name, type_, reflected, compare_to) -> bool:
    if type_ == "table" and name in _LOCAL_TABLES:
        return False
    return True


def _context_options(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "include_object": include_object,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Emit the migration SQL without a database connection."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection) -> None:
    context.configure(connection=connection, **_context_options(settings.database_url))
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
