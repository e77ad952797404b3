import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection

import db.engine
import tables
from settings import db_settings


config = context.config

if config.config_file_name is not None and config.get_main_option('shut_alembic_logger') != 'true':
    fileConfig(config.config_file_name)

target_metadata = tables.Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=db_settings.get_url('psycopg'),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={'paramstyle': 'named'},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    engine = db.engine.create_engine(db_settings.get_url('psycopg'))

    async with engine.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
