import os
import re
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from punchin.app.core.constants import DATABASE_URL
from punchin.app.domain.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _sync_url() -> str:
    """DATABASE_URL with the async driver swapped for the default sync one."""
    database_url = os.getenv("DATABASE_URL") or DATABASE_URL
    # postgresql+asyncpg://... -> postgresql://... ; sqlite+aiosqlite://... -> sqlite://...
    return re.sub(r"^(postgresql|sqlite)\+[^:]+", r"\1", database_url)


def run_migrations_offline() -> None:
    """Run migrations without DB connection (generate SQL only)."""
    context.configure(
        url=_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations with sync DB engine."""
    config.set_main_option("sqlalchemy.url", _sync_url())

    connectable = engine_from_config(
        config.get_section(config.config_ini_section) or {},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
