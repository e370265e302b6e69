# app/modules/reports/router.py
from fastapi import APIRouter, Depends, Query, Path, Body, status
from sqlalchemy.orm import Session
from typing import Optional

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.dependencies import get_current_actor
from app.core.auth.policy import Actor
from app.shared.schemas.common import MessageResponse, PageResponse, SortOrder
from .service import ReportsService
from .schemas import ReportCreate, ReportResponse, ReportSort, ReportStatus, ReportUpdate

router = APIRouter()


@router.get("", response_model=PageResponse[ReportResponse])
async def list_reports(
    search: Optional[str] = Query(None, description="Buscar por nombre de reporte"),
    status: Optional[ReportStatus] = Query(None),
    company_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    sort_by: ReportSort = Query(ReportSort.REPORT_NAME),
    sort_order: SortOrder = Query(SortOrder.ASC),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Listar reportes visibles**

    Los usuarios finales solo ven reportes de su empresa sobre los que tienen permiso.
    """
    service = ReportsService(db)
    return await service.list_reports(
        actor, search, status.value if status else None, company_id, page, page_size, sort_by, sort_order
    )


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: str = Path(..., description="ID del reporte"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = ReportsService(db)
    return await service.get_report(actor, report_id)


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    report_data: ReportCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Crear reporte**

    Nombre y URL son únicos (`duplicate_report`). Los `user_ids` deben ser
    usuarios finales de la empresa del reporte.

    **Permisos:** superAdmin, admin de la empresa
    """
    service = ReportsService(db)
    return await service.create_report(actor, report_data)


@router.patch("/{report_id}", response_model=ReportResponse)
async def update_report(
    report_id: str = Path(..., description="ID del reporte"),
    report_data: ReportUpdate = Body(...),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Actualizar reporte; `user_ids` reemplaza por completo los permisos"""
    service = ReportsService(db)
    return await service.update_report(actor, report_id, report_data)


@router.delete("/{report_id}", response_model=MessageResponse)
async def delete_report(
    report_id: str = Path(..., description="ID del reporte"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = ReportsService(db)
    await service.delete_report(actor, report_id)
    return MessageResponse(message=f"Reporte {report_id} eliminado")


@router.post("/{report_id}/views", response_model=ReportResponse)
async def register_report_view(
    report_id: str = Path(..., description="ID del reporte"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Registrar vista de reporte**

    Incrementa `access_count` en uno. Solo usuarios finales con permiso.
    """
    service = ReportsService(db)
    return await service.increment_access_count(actor, report_id)
