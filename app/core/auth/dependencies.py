import logging
import secrets
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.config.settings import settings
from app.core.auth.policy import Actor, Role
from app.core.auth.service import AuthService
from app.core.errors import Unauthenticated
from app.shared.database.models import CompanyAdmin, User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

SYSTEM_ACTOR_ID = "system"


def actor_from_user(db: Session, user: User) -> Actor:
    """Construye el Actor de la petición a partir del usuario autenticado"""
    role = Role(user.role)

    if role == Role.ADMIN:
        rows = db.query(CompanyAdmin.company_id).filter(CompanyAdmin.user_id == user.id).all()
        company_ids = frozenset(row.company_id for row in rows)
        return Actor(id=user.id, role=role, company_ids=company_ids, email=user.email)

    if role == Role.USER and user.company_id:
        return Actor(
            id=user.id, role=role, company_id=user.company_id,
            company_ids=frozenset([user.company_id]), email=user.email
        )

    return Actor(id=user.id, role=role, company_id=user.company_id, email=user.email)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Obtener usuario actual desde el token"""
    if credentials is None:
        raise Unauthenticated("Token de acceso requerido")

    payload = AuthService.verify_token(credentials.credentials)
    if payload is None:
        raise Unauthenticated("Token inválido o expirado")

    user_id = payload.get("user_id")
    if user_id is None:
        raise Unauthenticated("Payload del token inválido")

    user = db.query(User).filter(User.id == str(user_id)).first()

    if user is None:
        raise Unauthenticated("Usuario no encontrado")

    if not user.is_active:
        raise Unauthenticated("Usuario inactivo")

    return user


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_system_key: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> Actor:
    """
    Resuelve el actor de la petición.

    FastAPI cachea el resultado durante la petición, así que la consulta de
    empresas administradas se hace una sola vez y nunca se comparte entre
    peticiones ni actores.
    """
    if x_system_key is not None:
        expected = settings.system_api_key
        if not expected or not secrets.compare_digest(x_system_key, expected):
            logger.warning("Clave de sistema inválida")
            raise Unauthenticated("Clave de sistema inválida")
        return Actor(id=SYSTEM_ACTOR_ID, role=Role.SYSTEM)

    user = await get_current_user(credentials, db)
    return actor_from_user(db, user)
