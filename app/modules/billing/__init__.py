# app/modules/billing/__init__.py
"""
Módulo Billing - Facturas, suscripciones y métodos de pago

Las filas las escribe la integración con el proveedor de pagos usando el
actor `system` (header X-System-Key). Este servicio nunca llama al
proveedor: solo almacena lo que recibe y lo expone por empresa.

Operaciones adicionales:
- Resumen de facturación por empresa
- Ingresos totales y saldo pendiente (solo superAdmin)
"""

from .router import router
from .service import BillingService
from .repository import BillingRepository

__all__ = [
    "router",
    "BillingService",
    "BillingRepository"
]
