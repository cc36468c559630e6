import asyncio
import os
import sys
from logging.config import fileConfig

from dotenv import load_dotenv

load_dotenv()
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

# Add project root to sys.path for model imports
project_root = os.path.realpath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from src.db.models import Base, convention as naming_convention  # noqa: E402
from src.db.session import normalise_async_url  # noqa: E402

target_metadata = Base.metadata

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# DATABASE_URL overrides sqlalchemy.url from alembic.ini
db_url_env = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
if not db_url_env:
    raise ValueError("DATABASE_URL environment variable not set.")
async_db_url = normalise_async_url(db_url_env)
config.set_main_option("sqlalchemy.url", async_db_url)

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=True,  # SQLite needs batch mode for ALTER
        naming_convention=naming_convention,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=True,
        naming_convention=naming_convention,
    )
    context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode using an async engine."""
    connectable = create_async_engine(async_db_url, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.begin()
        await connection.run_sync(do_run_migrations)
        await connection.commit()

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
