# app/modules/users/__init__.py
"""
Módulo Users - Cuentas de superAdmin, admin y usuarios finales

Reglas:
- Un usuario final (rol 'user') siempre pertenece a una empresa activa
- Los admin se vinculan a empresas desde el módulo companies
- Un admin con empresas asignadas no se puede eliminar
"""

from .router import router
from .service import UsersService
from .repository import UserRepository

__all__ = [
    "router",
    "UsersService",
    "UserRepository"
]
