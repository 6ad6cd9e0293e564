import os
import re
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

from booking.app.domain.models import Base

# -------------------------
# Alembic Config
# -------------------------
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _sync_url() -> str:
    database_url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. Add it to .env, e.g. "
            "DATABASE_URL=postgresql+asyncpg://booking_user:booking_pass@db:5432/booking_db"
        )
    # Alembic runs synchronously: strip the async driver (asyncpg / aiosqlite)
    url = re.sub(r"^(postgresql)\+[^:]+", r"\1", database_url)
    return re.sub(r"^(sqlite)\+[^:]+", r"\1", url)


# -------------------------
# Run migrations in offline mode
# -------------------------
def run_migrations_offline() -> None:
    """Run migrations without DB connection (generate SQL only)."""
    context.configure(
        url=_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations with sync DB engine."""
    config.set_main_option("sqlalchemy.url", _sync_url())

    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()


# -------------------------
# Entrypoint
# -------------------------
if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
