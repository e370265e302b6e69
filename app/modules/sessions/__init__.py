# app/modules/sessions/__init__.py
"""
Módulo Sessions - Tiempo de actividad por usuario

Estados: sin sesión -> activa -> cerrada -> activa (reactivada) ...
La fila se reactiva en cada inicio y acumula los totales en cada cierre.
"""

from .router import router
from .service import SessionsService
from .repository import SessionRepository

__all__ = [
    "router",
    "SessionsService",
    "SessionRepository"
]
