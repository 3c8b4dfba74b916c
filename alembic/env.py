# alembic/env.py
from logging.config import fileConfig
from sqlalchemy import create_engine
from alembic import context

from vigora.core.config import settings
from vigora.models.base import Base  # metadata with every model registered

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# migrations run synchronously; async drivers map to their sync twin
SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg2",
    "sqlite+aiosqlite": "sqlite",
}


def migration_url() -> str:
    url = settings.DATABASE_URL
    for async_driver, sync_driver in SYNC_DRIVERS.items():
        if url.startswith(async_driver):
            return sync_driver + url[len(async_driver):]
    return url


def _configure(**kwargs) -> None:
    url = migration_url()
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # SQLite cannot ALTER most constraints in place
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=migration_url(), literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(migration_url(), pool_pre_ping=True)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
