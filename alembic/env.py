"""
Alembic environment for the Search API schema.

The target URL is, in order: an explicit `sqlalchemy.url` on the Config
(set by `search_api.db.init_db`), the `-x dburl=...` command line argument,
then `settings.DATABASE_URL`.
"""
from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from search_api.config import settings  # noqa: E402
from search_api.models import Base  # noqa: E402

config = context.config
target_metadata = Base.metadata

# init_db() sets configure_logger=False; the app owns logging in that case.
if config.config_file_name and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def _database_url() -> str:
    return (
        config.get_main_option("sqlalchemy.url")
        or context.get_x_argument(as_dictionary=True).get("dburl")
        or settings.DATABASE_URL
    )


def _configure_kwargs(dialect_name: str) -> dict:
    # SQLite cannot ALTER constraints in place.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_offline() -> None:
    url = _database_url()
    context.configure(url=url, literal_binds=True, **_configure_kwargs(url.split(":", 1)[0].split("+")[0]))
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = _database_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool, future=True)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **_configure_kwargs(connection.dialect.name))
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
