"""Alembic environment for the Fleetwarden schema.

Loads the database URL from FleetwardenConfig (optionally from a config
file given with ``alembic -x config=path/to/fleetwarden.toml upgrade head``)
and runs migrations through SQLAlchemy's async engine. SQLite URLs are
migrated in batch mode so that ALTER-style operations work there too.
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from fleetwarden.config import load_config
from fleetwarden.database.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

x_arguments = context.get_x_argument(as_dictionary=True)
config_path = x_arguments.get("config")
fleetwarden_config = load_config(Path(config_path) if config_path else None)
config.set_main_option("sqlalchemy.url", fleetwarden_config.database.url)

target_metadata = Base.metadata


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting to a database."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=_is_sqlite(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
