# app/modules/reports/__init__.py
"""
Módulo Reports - Dashboards BI por empresa

- CRUD de reportes con nombre y URL únicos
- Permisos de visualización por usuario (UserReport), reemplazo completo en update
- Contador de accesos que solo incrementan los usuarios finales con permiso
"""

from .router import router
from .service import ReportsService
from .repository import ReportRepository

__all__ = [
    "router",
    "ReportsService",
    "ReportRepository"
]
