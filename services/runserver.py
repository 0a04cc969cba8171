# NG-HEADER: Nombre de archivo: runserver.py
# NG-HEADER: Ubicación: services/runserver.py
# NG-HEADER: Descripción: Arranque local de uvicorn para desarrollo.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Servidor local de desarrollo.

En Windows fija la política Selector antes de arrancar uvicorn para que
psycopg async funcione.
"""

from __future__ import annotations

import asyncio
import os
import sys

import uvicorn


def main() -> None:
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    uvicorn.run(
        "services.api:app",
        host=os.getenv("MV_HOST", "127.0.0.1"),
        port=int(os.getenv("MV_PORT", "8000")),
        reload=os.getenv("ENV", "dev") == "dev",
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()
