from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import cloudvault.models  # noqa: F401  registers every table on Base.metadata
from cloudvault.db import Base, get_database_url

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# An explicit sqlalchemy.url (tests, offline SQL) wins over POSTGRES_* settings
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", get_database_url())


def include_object(obj, name, type_, reflected, compare_to):
    # Tables that only exist in the database are left alone by autogenerate
    return not (type_ == "table" and reflected and compare_to is None)


def _configure(**kwargs) -> None:
    context.configure(target_metadata=Base.metadata, include_object=include_object, compare_type=True, **kwargs)


def run_migrations_offline() -> None:
    _configure(url=config.get_main_option("sqlalchemy.url"), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = engine_from_config(config.get_section(config.config_ini_section, {}), prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        # SQLite can only alter tables by copying them
        _configure(connection=connection, render_as_batch=connection.dialect.name == "sqlite")
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
