# app/modules/companies/__init__.py
"""
Módulo Companies - Ciclo de vida de empresas (tenants)

- Crear empresas con al menos un administrador vinculado
- Actualizar datos y reasignar administradores (con historial)
- Habilitar/deshabilitar sin reglas de transición
- Eliminar en cascada todo lo que pertenece a la empresa

Arquitectura:
- router.py: Endpoints /companies
- service.py: Autorización, invariantes y transacción
- repository.py: Consultas con visibilidad por actor
- schemas.py: Modelos de request/response
"""

from .router import router
from .service import CompaniesService
from .repository import CompanyRepository

__all__ = [
    "router",
    "CompaniesService",
    "CompanyRepository"
]
