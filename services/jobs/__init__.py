# NG-HEADER: Nombre de archivo: __init__.py
# NG-HEADER: Ubicación: services/jobs/__init__.py
# NG-HEADER: Descripción: Jobs programados del backend (APScheduler).
# NG-HEADER: Lineamientos: Ver AGENTS.md
