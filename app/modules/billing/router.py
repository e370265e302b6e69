# app/modules/billing/router.py
from fastapi import APIRouter, Depends, Query, Path, Body, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.dependencies import get_current_actor
from app.core.auth.policy import Actor
from app.shared.schemas.common import MessageResponse, PageResponse, SortOrder
from .service import BillingService
from .schemas import (
    BillingCreate, BillingResponse, BillingSort, BillingStatus, BillingUpdate,
    CompanyBillingSummary, OutstandingResponse, PaymentMethodResponse, PaymentMethodUpsert,
    RevenueResponse, SubscriptionResponse, SubscriptionUpsert
)

router = APIRouter()


# =====================================================
# FACTURAS - CONSULTAS
# =====================================================

@router.get("", response_model=PageResponse[BillingResponse])
async def list_billings(
    search: Optional[str] = Query(None, description="Buscar por nombre de empresa"),
    status: Optional[BillingStatus] = Query(None),
    company_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    sort_by: BillingSort = Query(BillingSort.BILLING_DATE),
    sort_order: SortOrder = Query(SortOrder.DESC),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Listar facturas visibles para el actor"""
    service = BillingService(db)
    return await service.list_billings(
        actor, search, status.value if status else None, company_id,
        start_date, end_date, page, page_size, sort_by, sort_order
    )


@router.get("/revenue", response_model=RevenueResponse)
async def get_total_revenue(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Ingresos totales (facturas pagadas)**

    **Permisos:** Solo superAdmin
    """
    service = BillingService(db)
    return await service.total_revenue(actor, start_date, end_date)


@router.get("/outstanding", response_model=OutstandingResponse)
async def get_outstanding_total(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Total pendiente de cobro (unpaid + past_due)**

    **Permisos:** Solo superAdmin
    """
    service = BillingService(db)
    return await service.outstanding_total(actor)


@router.get("/companies/{company_id}/summary", response_model=CompanyBillingSummary)
async def get_company_billing_summary(
    company_id: str = Path(..., description="ID de la empresa"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = BillingService(db)
    return await service.company_summary(actor, company_id)


# =====================================================
# SUSCRIPCIONES Y MÉTODOS DE PAGO
# =====================================================

@router.get("/subscriptions", response_model=List[SubscriptionResponse])
async def list_subscriptions(
    company_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = BillingService(db)
    return await service.list_subscriptions(actor, company_id)


@router.post("/subscriptions", response_model=SubscriptionResponse)
async def upsert_subscription(
    subscription_data: SubscriptionUpsert,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Sincronizar suscripción desde el proveedor de pagos**

    Idempotente por `external_subscription_id`.

    **Permisos:** system, superAdmin
    """
    service = BillingService(db)
    return await service.upsert_subscription(actor, subscription_data)


@router.get("/payment-methods", response_model=List[PaymentMethodResponse])
async def list_payment_methods(
    company_id: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = BillingService(db)
    return await service.list_payment_methods(actor, company_id)


@router.post("/payment-methods", response_model=PaymentMethodResponse)
async def upsert_payment_method(
    payment_method_data: PaymentMethodUpsert,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Sincronizar método de pago; `is_default` desmarca los demás de la empresa"""
    service = BillingService(db)
    return await service.upsert_payment_method(actor, payment_method_data)


# =====================================================
# FACTURAS - CRUD
# =====================================================

@router.get("/{billing_id}", response_model=BillingResponse)
async def get_billing(
    billing_id: str = Path(..., description="ID de la factura"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = BillingService(db)
    return await service.get_billing(actor, billing_id)


@router.post("", response_model=BillingResponse, status_code=status.HTTP_201_CREATED)
async def create_billing(
    billing_data: BillingCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Registrar factura (webhook del proveedor de pagos)**

    Si `external_invoice_id` ya existe la factura se actualiza.

    **Permisos:** system (header `X-System-Key`), superAdmin
    """
    service = BillingService(db)
    return await service.create_billing(actor, billing_data)


@router.patch("/{billing_id}", response_model=BillingResponse)
async def update_billing(
    billing_id: str = Path(..., description="ID de la factura"),
    billing_data: BillingUpdate = Body(...),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = BillingService(db)
    return await service.update_billing(actor, billing_id, billing_data)


@router.delete("/{billing_id}", response_model=MessageResponse)
async def delete_billing(
    billing_id: str = Path(..., description="ID de la factura"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = BillingService(db)
    await service.delete_billing(actor, billing_id)
    return MessageResponse(message=f"Factura {billing_id} eliminada")
