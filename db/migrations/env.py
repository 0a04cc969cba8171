# NG-HEADER: Nombre de archivo: env.py
# NG-HEADER: Ubicación: db/migrations/env.py
# NG-HEADER: Descripción: Script de entorno Alembic: carga .env, prepara logging y ejecuta migraciones
# NG-HEADER: Lineamientos: Ver AGENTS.md
import logging
import os
import traceback
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from dotenv import load_dotenv
from sqlalchemy import String, engine_from_config
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool

# Logger estandar para todas las operaciones del módulo
logger = logging.getLogger("alembic.env")

config = context.config

# Logging (si alembic.ini tiene secciones de logging)
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

script = ScriptDirectory.from_config(config)

# === Cargar variables desde .env ===
# .env en la raíz del repo (dos niveles hacia arriba)
REPO_ROOT = Path(__file__).resolve().parents[2]
dotenv_path = REPO_ROOT / ".env"
load_dotenv(dotenv_path)
logger.info("Archivo .env: %s (exists=%s)", dotenv_path, dotenv_path.exists())

# === DB_URL: mismo valor que usa la app, con driver sync para Alembic ===
from core.config import settings  # noqa: E402

db_url = os.getenv("DB_URL") or settings.db_url
_url = make_url(db_url)
if _url.drivername == "sqlite+aiosqlite":
    _url = _url.set(drivername="sqlite")
logger.info("DB_URL: %s", _url.render_as_string(hide_password=True))

# === Importar metadatos del proyecto ===
from db.base import Base  # noqa: E402
import db.models  # noqa: E402,F401

target_metadata = Base.metadata


def _coerce_bool(val) -> bool:
    return str(val).lower() in {"1", "true", "t", "yes", "y", "on"}


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=_url.render_as_string(hide_password=False),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        version_table_column_type=String(255),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    x_args = context.get_x_argument(as_dictionary=True)
    log_sql = _coerce_bool(x_args.get("log_sql"))
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = _url.render_as_string(hide_password=False)
    if log_sql:
        section["sqlalchemy.echo"] = "true"
    connectable = engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=NullPool,
        future=True,
    )
    with connectable.connect() as connection:
        current_rev = MigrationContext.configure(connection).get_current_revision()
        logger.info("Revisión actual: %s", current_rev)
        logger.info("Heads: %s", ", ".join(script.get_heads()))

        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
            version_table_column_type=String(255),
        )

        try:
            with context.begin_transaction():
                context.run_migrations()
            logger.info("Migraciones aplicadas con éxito")
        except Exception:  # pragma: no cover - logging
            logger.error("Error al ejecutar migraciones:\n%s", traceback.format_exc())
            raise


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
