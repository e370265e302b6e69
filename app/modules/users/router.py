# app/modules/users/router.py
from fastapi import APIRouter, Depends, Query, Path, Body, status
from sqlalchemy.orm import Session
from typing import Optional

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.dependencies import get_current_actor
from app.core.auth.policy import Actor
from app.shared.schemas.common import MessageResponse, PageResponse, SortOrder
from .service import UsersService
from .schemas import UserCreate, UserResponse, UserRole, UserSort, UserStatus, UserUpdate

router = APIRouter()


@router.get("", response_model=PageResponse[UserResponse])
async def list_users(
    search: Optional[str] = Query(None, description="Buscar por nombre de usuario o email"),
    role: Optional[UserRole] = Query(None),
    status: Optional[UserStatus] = Query(None),
    company_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    sort_by: UserSort = Query(UserSort.USER_NAME),
    sort_order: SortOrder = Query(SortOrder.ASC),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Listar usuarios visibles**

    - superAdmin: todos
    - admin: usuarios finales de sus empresas
    - user: usuarios de su empresa
    """
    service = UsersService(db)
    return await service.list_users(
        actor, search,
        role.value if role else None,
        status.value if status else None,
        company_id, page, page_size, sort_by, sort_order
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str = Path(..., description="ID del usuario"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    service = UsersService(db)
    return await service.get_user(actor, user_id)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    **Crear usuario**

    - superAdmin: cualquier rol
    - admin: solo usuarios finales de una empresa que administra

    Un usuario con rol `user` requiere `company_id` de una empresa activa.
    """
    service = UsersService(db)
    return await service.create_user(actor, user_data)


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str = Path(..., description="ID del usuario"),
    user_data: UserUpdate = Body(...),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Actualizar usuario; cambiar de empresa revoca sus permisos sobre reportes"""
    service = UsersService(db)
    return await service.update_user(actor, user_id, user_data)


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str = Path(..., description="ID del usuario"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Eliminar usuario; un admin con empresas asignadas no se puede eliminar"""
    service = UsersService(db)
    await service.delete_user(actor, user_id)
    return MessageResponse(message=f"Usuario {user_id} eliminado")
