# NG-HEADER: Nombre de archivo: api.py
# NG-HEADER: Ubicación: services/api.py
# NG-HEADER: Descripción: Aplicación FastAPI principal (logging, middlewares y routers).
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Aplicación FastAPI principal del backend de Mapa de Ventas."""

# --- Windows psycopg async fix (no-op en otros SO) ---
import sys, asyncio
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
# --- end fix ---

import logging
import os
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi import HTTPException as FastHTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from core.config import settings
from db.base import Base
from db.session import engine
import db.models  # noqa: F401  registra las tablas en la metadata
from services.jobs import snapshots_scheduler
from .routers import auth, health, snapshots, snapshots_scheduler as snapshots_scheduler_router

raw_level = os.getenv("LOG_LEVEL", "INFO") or "INFO"
level_name = raw_level.strip().upper()
if level_name not in logging.getLevelNamesMapping():
    level_name = "INFO"
logger = logging.getLogger("mapaventas")
logger.setLevel(level_name)
LOG_DIR = Path(__file__).resolve().parents[1] / "logs"
fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
stream_handler = logging.StreamHandler()
stream_handler.setFormatter(fmt)

file_handler = None
try:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    # delay=True evita abrir el archivo hasta el primer log
    file_handler = RotatingFileHandler(
        str(LOG_DIR / "backend.log"), maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8", delay=True
    )
    file_handler.setFormatter(fmt)
    logger.addHandler(file_handler)
except OSError:
    # Sin permisos: continuar solo con consola
    file_handler = None

logger.addHandler(stream_handler)

handlers = [h for h in (file_handler, stream_handler) if h is not None]
for _name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    logging.getLogger(_name).handlers = handlers
    logging.getLogger(_name).setLevel(level_name)

# `redirect_slashes=False` evita redirecciones 307 entre `/ruta` y `/ruta/`,
# lo que rompe las solicitudes *preflight* de CORS.
app = FastAPI(title="Mapa de Ventas", redirect_slashes=False)

logger.info("DB effective URL: %s", engine.url.render_as_string(hide_password=True))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Registra cada solicitud y captura excepciones con un correlation-id."""
    start = time.perf_counter()
    corr = request.headers.get("x-correlation-id") or request.headers.get("x-request-id")
    if not corr:
        # id liviano: epoch-ms + pid
        corr = f"req-{int(time.time()*1000):x}-{os.getpid():x}"
    try:
        resp = await call_next(request)
    except (FastHTTPException, StarletteHTTPException):
        raise
    except Exception:
        dur = (time.perf_counter() - start) * 1000
        logger.exception("EXC %s %s cid=%s (%.2fms)", request.method, request.url.path, corr, dur)
        return JSONResponse(
            {
                "detail": "Uy, algo se rompió de nuestro lado. Probá de nuevo en unos minutos.",
                "correlation_id": corr,
            },
            status_code=500,
        )
    dur = (time.perf_counter() - start) * 1000
    resp.headers["X-Correlation-Id"] = corr
    logger.info("%s %s -> %s cid=%s (%.2fms)", request.method, request.url.path, resp.status_code, corr, dur)
    return resp


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
    """Registra detalles de validación por campo y devuelve el formato por defecto (422)."""
    flat = [
        {
            "loc": ".".join(str(p) for p in e.get("loc", [])),
            "msg": e.get("msg", ""),
            "type": e.get("type", ""),
        }
        for e in exc.errors()
    ]
    logger.warning("Validación fallida 422 %s %s: %s", request.method, request.url.path, flat)
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(health.router)
# El router del scheduler va antes para que /snapshots/scheduler/* no choque con /snapshots
app.include_router(snapshots_scheduler_router.router)
app.include_router(snapshots.router)


@app.on_event("startup")
async def _startup():
    """Crea el esquema en SQLite en memoria e inicia el scheduler si corresponde."""
    url = str(engine.url)
    if url.startswith("sqlite+") and ":memory:" in url:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    snapshots_scheduler.start_scheduler()


@app.on_event("shutdown")
async def _shutdown():
    snapshots_scheduler.stop_scheduler()
