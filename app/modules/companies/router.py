# app/modules/companies/router.py
from fastapi import APIRouter, Depends, Query, Path, Body, status
from sqlalchemy.orm import Session
from typing import List, Optional

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.dependencies import get_current_actor
from app.core.auth.policy import Actor
from app.shared.schemas.common import MessageResponse, PageResponse, SortOrder
from .service import CompaniesService
from .schemas import (
    AdminHistoryResponse, AdminSummary, CompanyCreate, CompanyResponse,
    CompanySort, CompanyStatus, CompanyUpdate
)

router = APIRouter()


# =====================================================
# CONSULTAS
# =====================================================

@router.get("", response_model=PageResponse[CompanyResponse])
async def list_companies(
    search: Optional[str] = Query(None, description="Buscar por nombre de empresa"),
    status: Optional[CompanyStatus] = Query(None, description="Filtrar por estado"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    sort_by: CompanySort = Query(CompanySort.COMPANY_NAME),
    sort_order: SortOrder = Query(SortOrder.ASC),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Listar empresas**

    - superAdmin: todas las empresas
    - admin: las empresas que administra
    - user: su propia empresa
    """
    service = CompaniesService(db)
    return await service.list_companies(
        actor, search, status.value if status else None, page, page_size, sort_by, sort_order
    )


@router.get("/{company_id}", response_model=CompanyResponse)
async def get_company(
    company_id: str = Path(..., description="ID de la empresa"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Obtener detalles de una empresa visible para el actor"""
    service = CompaniesService(db)
    return await service.get_company(actor, company_id)


@router.get("/{company_id}/admins", response_model=List[AdminSummary])
async def list_company_admins(
    company_id: str = Path(..., description="ID de la empresa"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = CompaniesService(db)
    return await service.list_admins(actor, company_id)


@router.get("/{company_id}/admin-history", response_model=List[AdminHistoryResponse])
async def get_company_admin_history(
    company_id: str = Path(..., description="ID de la empresa"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Historial de cambios de administrador (más reciente primero)"""
    service = CompaniesService(db)
    return await service.get_admin_history(actor, company_id)


# =====================================================
# GESTIÓN (SOLO SUPERADMIN)
# =====================================================

@router.post("", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
async def create_company(
    company_data: CompanyCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Crear nueva empresa (tenant)**

    Requiere al menos un usuario con rol admin en `admin_ids`; la empresa y
    los vínculos de administradores se crean en la misma transacción.

    **Permisos:** Solo superAdmin
    """
    service = CompaniesService(db)
    return await service.create_company(actor, company_data)


@router.patch("/{company_id}", response_model=CompanyResponse)
async def update_company(
    company_id: str = Path(..., description="ID de la empresa"),
    company_data: CompanyUpdate = Body(...),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Actualizar empresa**

    Si se envía `admin_ids` se reemplaza el conjunto de administradores y se
    registra el cambio en el historial.

    **Permisos:** Solo superAdmin
    """
    service = CompaniesService(db)
    return await service.update_company(actor, company_id, company_data)


@router.post("/{company_id}/enable", response_model=CompanyResponse)
async def enable_company(
    company_id: str = Path(..., description="ID de la empresa"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = CompaniesService(db)
    return await service.set_status(actor, company_id, CompanyStatus.ACTIVE)


@router.post("/{company_id}/disable", response_model=CompanyResponse)
async def disable_company(
    company_id: str = Path(..., description="ID de la empresa"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = CompaniesService(db)
    return await service.set_status(actor, company_id, CompanyStatus.INACTIVE)


@router.delete("/{company_id}", response_model=MessageResponse)
async def delete_company(
    company_id: str = Path(..., description="ID de la empresa"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Eliminar empresa**

    Borra en cascada reportes, usuarios finales, facturación, suscripciones y
    métodos de pago. Las cuentas admin se conservan sin el vínculo.

    **Permisos:** Solo superAdmin
    """
    service = CompaniesService(db)
    await service.delete_company(actor, company_id)
    return MessageResponse(message=f"Empresa {company_id} eliminada")
