"""Alembic env.py: async migrations for the booking database.

Runs against Postgres (asyncpg) in production and SQLite (aiosqlite)
locally. Override the target with `alembic -x db_url=... upgrade head`.
"""

import asyncio
import os
import sys

# 'baroni' must be importable when alembic runs from another directory
_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

from baroni.core.config import settings
from baroni.core.database import Base
from baroni.models.user import User  # noqa: F401
from baroni.models.availability import Availability, TimeSlot  # noqa: F401
from baroni.models.transaction import Transaction  # noqa: F401
from baroni.models.star_wallet import StarWallet, StarTransaction  # noqa: F401
from baroni.models.appointment import Appointment  # noqa: F401
from baroni.models.message import Message  # noqa: F401
from baroni.models.notification import Notification  # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("db_url") or settings.DATABASE_URL


def _configure(**kwargs) -> None:
    url = database_url()
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # SQLite cannot ALTER most constraints in place
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(database_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(do_run_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
