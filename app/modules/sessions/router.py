# app/modules/sessions/router.py
from fastapi import APIRouter, Depends, Query, Path, Body
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.dependencies import get_current_actor
from app.core.auth.policy import Actor
from app.shared.schemas.common import PageResponse
from .service import SessionsService
from .schemas import (
    ActiveCountResponse, MySessionResponse, SessionResponse, SessionStop, StaleSessionsResponse,
    TotalActiveTimeResponse
)

router = APIRouter()


# =====================================================
# SESIÓN PROPIA
# =====================================================

@router.post("/start", response_model=SessionResponse)
async def start_session(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Iniciar sesión de actividad**

    Crea la sesión del usuario o reactiva la existente; nunca hay más de una
    fila por usuario.
    """
    service = SessionsService(db)
    return await service.start(actor)


@router.post("/{session_id}/stop", response_model=SessionResponse)
async def stop_session(
    session_id: str = Path(..., description="ID de la sesión"),
    stop_data: SessionStop = Body(...),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Cerrar sesión de actividad**

    Suma el tiempo activo reportado y el inactivo (transcurrido - activo) a
    los totales acumulados.
    """
    service = SessionsService(db)
    return await service.stop(actor, session_id, stop_data.active_time_ms)


@router.get("/me", response_model=MySessionResponse)
async def get_my_session(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = SessionsService(db)
    return await service.current(actor)


# =====================================================
# AGREGADOS (SOLO SUPERADMIN)
# =====================================================

@router.get("/active-count", response_model=ActiveCountResponse)
async def get_active_count(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Número de usuarios con sesión activa"""
    service = SessionsService(db)
    return await service.active_count(actor)


@router.get("/total-active-time", response_model=TotalActiveTimeResponse)
async def get_total_active_time(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Suma de tiempo activo/inactivo de todos los usuarios (segundos)"""
    service = SessionsService(db)
    return await service.total_active_time(actor)


@router.post("/close-stale", response_model=StaleSessionsResponse)
async def close_stale_sessions(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Cerrar sesiones abandonadas** (solo superAdmin)

    Misma limpieza que ejecuta la tarea periódica: las sesiones abiertas sin
    actividad en las últimas horas se cierran y el intervalo cuenta como inactivo.
    """
    service = SessionsService(db)
    return await service.close_stale(actor)


@router.get("", response_model=PageResponse[SessionResponse])
async def list_sessions(
    active_only: bool = Query(False),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = SessionsService(db)
    return await service.list_sessions(actor, active_only, page, page_size)
