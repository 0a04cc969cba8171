# NG-HEADER: Nombre de archivo: config.py
# NG-HEADER: Ubicación: core/config.py
# NG-HEADER: Descripción: Configuración central leída de variables de entorno.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Configuración central del backend de Mapa de Ventas."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from dotenv import load_dotenv

# Marcadores que deben sustituirse en producción
SECRET_KEY_PLACEHOLDER = "REEMPLAZAR_SECRET_KEY"

# Carga automática de variables definidas en .env
load_dotenv()


def _expand_local(origins: list[str]) -> list[str]:
    """Duplica ``localhost``/``127.0.0.1`` para evitar errores de CORS en desarrollo."""
    out: set[str] = set()
    for o in origins:
        o = o.strip()
        if not o:
            continue
        out.add(o)
        if o.startswith("http://localhost:"):
            out.add(o.replace("http://localhost:", "http://127.0.0.1:"))
        if o.startswith("http://127.0.0.1:"):
            out.add(o.replace("http://127.0.0.1:", "http://localhost:"))
    return list(out)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class Settings:
    """Parámetros de configuración leídos de variables de entorno."""

    env: str = os.getenv("ENV", "dev")
    db_url: str = os.getenv("DB_URL", "")
    # Soporte para componer la URL si no se pasa DB_URL directamente
    db_host: str = os.getenv("DB_HOST", "localhost")
    db_port: str = os.getenv("DB_PORT", "5432")
    db_name: str = os.getenv("DB_NAME", "mapaventas")
    db_user: str = os.getenv("DB_USER", "mapaventas")
    db_pass: str = os.getenv("DB_PASS", "")
    secret_key: str = os.getenv("SECRET_KEY", SECRET_KEY_PLACEHOLDER)
    session_expire_minutes: int = int(
        os.getenv("SESSION_EXPIRE_MINUTES", "1440")
    )  # duración de la sesión en minutos (1 día por defecto)
    cookie_secure: bool = _env_bool("COOKIE_SECURE")
    cookie_domain: str | None = os.getenv("COOKIE_DOMAIN") or None
    allowed_origins: list[str] = field(default_factory=list)
    # Token secreto para autenticación entre servicios internos (cron externo, workers)
    internal_service_token: str = os.getenv("INTERNAL_SERVICE_TOKEN", "")

    # Snapshots de stock
    snapshot_timezone: str = os.getenv("SNAPSHOT_TIMEZONE", "America/Argentina/Buenos_Aires")
    snapshot_batch_size: int = int(os.getenv("SNAPSHOT_BATCH_SIZE", "5"))
    snapshot_slow_run_seconds: int = int(os.getenv("SNAPSHOT_SLOW_RUN_SECONDS", "300"))
    snapshot_scheduler_enabled: bool = _env_bool("SNAPSHOT_SCHEDULER_ENABLED")
    # Horarios HH:MM en la zona horaria de referencia
    snapshot_daily_at: str = os.getenv("SNAPSHOT_DAILY_AT", "00:00")
    snapshot_monthly_at: str = os.getenv("SNAPSHOT_MONTHLY_AT", "23:55")

    # Rate limiting en memoria (mono-proceso)
    rate_limit_disabled: bool = _env_bool("RATE_LIMIT_DISABLED")

    def __post_init__(self) -> None:
        if not self.db_url:
            # Intentar construir desde variables sueltas
            if self.db_pass:
                from urllib.parse import quote_plus as _qp
                pw_enc = _qp(self.db_pass)
            else:
                pw_enc = ""
            if self.db_user and pw_enc:
                candidate = f"postgresql+psycopg://{self.db_user}:{pw_enc}@{self.db_host}:{self.db_port}/{self.db_name}"
            elif self.db_user and self.env != "dev":
                candidate = f"postgresql+psycopg://{self.db_user}@{self.db_host}:{self.db_port}/{self.db_name}"
            else:
                candidate = ""
            if candidate:
                self.db_url = candidate
        if not self.db_url:
            if self.env == "dev":
                # Fallback amigable para no bloquear el arranque local sin Postgres
                self.db_url = "sqlite+aiosqlite:///./dev.db"
            else:
                raise RuntimeError("DB_URL debe definirse en el entorno")
        if self.secret_key == SECRET_KEY_PLACEHOLDER:
            if self.env == "dev":
                # En desarrollo se usa una clave predecible para simplificar pruebas
                self.secret_key = "dev-secret-key"
            else:
                raise RuntimeError(
                    "SECRET_KEY debe sobrescribirse; reemplace el placeholder 'REEMPLAZAR_SECRET_KEY'"
                )
        if self.snapshot_batch_size < 1:
            raise RuntimeError("SNAPSHOT_BATCH_SIZE debe ser mayor o igual a 1")

        raw = os.getenv("ALLOWED_ORIGINS", "").split(",")
        origins = [o.strip() for o in raw if o.strip()]
        if self.env == "dev":
            if not origins:
                origins = ["http://localhost:5173"]
            origins = _expand_local(origins)
        elif not origins:
            raise RuntimeError(
                "En producción, ALLOWED_ORIGINS debe definir al menos un origen"
            )
        self.allowed_origins = origins


settings = Settings()
