# app/core/auth/policy.py
"""
Política de autorización

Decide, para un actor (id + rol), qué acciones puede ejecutar sobre cada tipo
de entidad y qué filas puede ver. Es el único lugar del código donde se
comparan roles: los servicios piden una decisión con `authorize()` y
restringen sus consultas con `visibility_clause()`.

Reglas (la primera que aplica gana):
- Auto-servicio sobre uno mismo (contraseña, sesión propia): permitido
- Contador de accesos de reportes: solo usuarios finales
- superAdmin: todo permitido
- system (integración de pagos): billing/subscription/payment_method sin
  verificación de propiedad, se registra en el log
- admin: solo sobre las empresas que administra (CompanyAdmin)
- user: lectura dentro de su empresa (reportes además requieren permiso)
- Por defecto: denegado
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional

from sqlalchemy import and_, exists, false
from sqlalchemy.sql.elements import ColumnElement

from app.core.errors import Unauthorized
from app.shared.database.models import (
    Billing, Company, PaymentMethod, Report, Subscription, User, UserReport, UserSession
)

logger = logging.getLogger(__name__)


class Role(str, Enum):
    SUPER_ADMIN = "superAdmin"
    ADMIN = "admin"
    USER = "user"
    SYSTEM = "system"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class EntityKind(str, Enum):
    COMPANY = "company"
    USER = "user"
    REPORT = "report"
    BILLING = "billing"
    SUBSCRIPTION = "subscription"
    PAYMENT_METHOD = "payment_method"
    SESSION = "session"


class DenyReason(str, Enum):
    INSUFFICIENT_ROLE = "insufficient_role"
    NOT_OWNER = "not_owner"
    MISSING_GRANT = "missing_grant"


class SelfService(str, Enum):
    INCREMENT_ACCESS = "increment_access"
    CHANGE_PASSWORD = "change_password"
    OWN_SESSION = "own_session"


@dataclass(frozen=True)
class Actor:
    """Identidad autenticada de una petición.

    `company_ids` se resuelve una sola vez al autenticar la petición: las
    empresas administradas (admin) o la empresa propia (user).
    """
    id: str
    role: Role
    company_id: Optional[str] = None
    company_ids: FrozenSet[str] = field(default_factory=frozenset)
    email: Optional[str] = None

    @property
    def label(self) -> str:
        return self.email or self.id


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "Decision":
        return cls(False, reason)


# Entidades de facturación que escribe la integración del proveedor de pagos
_BILLING_KINDS = (EntityKind.BILLING, EntityKind.SUBSCRIPTION, EntityKind.PAYMENT_METHOD)
_PRIVILEGED_ROLES = (Role.ADMIN, Role.SUPER_ADMIN)


def _owned(actor: Actor, owner_company_id: Optional[str]) -> Decision:
    if owner_company_id is not None and owner_company_id in actor.company_ids:
        return Decision.allow()
    return Decision.deny(DenyReason.NOT_OWNER)


def _admin_decision(actor: Actor, action: Action, kind: EntityKind,
                    owner_company_id: Optional[str], target_role: Optional[Role]) -> Decision:
    if kind == EntityKind.USER:
        # Las cuentas admin/superAdmin no pertenecen a ninguna empresa del admin
        if target_role in _PRIVILEGED_ROLES:
            return Decision.deny(DenyReason.INSUFFICIENT_ROLE)
        return _owned(actor, owner_company_id)

    if kind == EntityKind.REPORT:
        return _owned(actor, owner_company_id)

    if kind == EntityKind.BILLING:
        if action == Action.CREATE:
            return Decision.deny(DenyReason.INSUFFICIENT_ROLE)
        return _owned(actor, owner_company_id)

    if kind in (EntityKind.COMPANY, EntityKind.SUBSCRIPTION, EntityKind.PAYMENT_METHOD):
        if action != Action.READ:
            return Decision.deny(DenyReason.INSUFFICIENT_ROLE)
        return _owned(actor, owner_company_id)

    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


def _user_decision(actor: Actor, action: Action, kind: EntityKind, owner_company_id: Optional[str],
                   has_grant: bool, self_service: Optional[SelfService]) -> Decision:
    if kind == EntityKind.SESSION:
        return Decision.deny(DenyReason.INSUFFICIENT_ROLE)

    reading = action == Action.READ
    incrementing = (
        action == Action.UPDATE
        and kind == EntityKind.REPORT
        and self_service == SelfService.INCREMENT_ACCESS
    )
    if not (reading or incrementing):
        return Decision.deny(DenyReason.INSUFFICIENT_ROLE)

    if actor.company_id is None or owner_company_id != actor.company_id:
        return Decision.deny(DenyReason.NOT_OWNER)
    if kind == EntityKind.REPORT and not has_grant:
        return Decision.deny(DenyReason.MISSING_GRANT)
    return Decision.allow()


_SELF_SERVICE_KINDS = {
    SelfService.CHANGE_PASSWORD: EntityKind.USER,
    SelfService.OWN_SESSION: EntityKind.SESSION,
}


def _is_self_service(actor: Actor, kind: EntityKind, target_id: Optional[str],
                     self_service: Optional[SelfService]) -> bool:
    """Acciones de cualquier usuario interactivo sobre sí mismo"""
    return (
        self_service in _SELF_SERVICE_KINDS
        and _SELF_SERVICE_KINDS[self_service] == kind
        and target_id == actor.id
        and actor.role != Role.SYSTEM
    )


def can_access(
    actor: Actor,
    action: Action,
    kind: EntityKind,
    owner_company_id: Optional[str] = None,
    *,
    target_role: Optional[Role] = None,
    target_id: Optional[str] = None,
    has_grant: bool = False,
    self_service: Optional[SelfService] = None,
) -> Decision:
    """Decisión pura: no consulta la base de datos"""
    if _is_self_service(actor, kind, target_id, self_service):
        return Decision.allow()

    # El contador de accesos solo lo incrementan las vistas de usuarios finales
    if self_service == SelfService.INCREMENT_ACCESS and actor.role != Role.USER:
        return Decision.deny(DenyReason.INSUFFICIENT_ROLE)

    if actor.role == Role.SUPER_ADMIN:
        return Decision.allow()

    if actor.role == Role.SYSTEM:
        if kind in _BILLING_KINDS:
            return Decision.allow()
        return Decision.deny(DenyReason.INSUFFICIENT_ROLE)

    if actor.role == Role.ADMIN:
        return _admin_decision(actor, action, kind, owner_company_id, target_role)

    if actor.role == Role.USER:
        return _user_decision(actor, action, kind, owner_company_id, has_grant, self_service)

    return Decision.deny(DenyReason.INSUFFICIENT_ROLE)


def authorize(actor: Actor, action: Action, kind: EntityKind, owner_company_id: Optional[str] = None, **kwargs) -> None:
    """Igual que can_access pero lanza Unauthorized si la decisión es negativa"""
    decision = can_access(actor, action, kind, owner_company_id, **kwargs)

    if actor.role == Role.SYSTEM and decision.allowed:
        logger.info(f"Acceso de sistema: {action.value} {kind.value} company={owner_company_id}")

    if not decision.allowed:
        logger.info(
            f"Acceso denegado: actor={actor.id} rol={actor.role.value} "
            f"{action.value} {kind.value} company={owner_company_id} motivo={decision.reason.value}"
        )
        raise Unauthorized(decision.reason.value)


def authorize_global_read(actor: Actor, kind: EntityKind) -> None:
    """Agregados sobre todas las empresas (ingresos, sesiones activas): solo superAdmin"""
    if actor.role != Role.SUPER_ADMIN:
        logger.info(f"Acceso denegado: actor={actor.id} rol={actor.role.value} agregado {kind.value}")
        raise Unauthorized(DenyReason.INSUFFICIENT_ROLE.value)


def sees_all_companies(actor: Actor) -> bool:
    return actor.role in (Role.SUPER_ADMIN, Role.SYSTEM)


# =====================================================
# VISIBILIDAD DE FILAS (WHERE)
# =====================================================

_COMPANY_COLUMNS = {
    EntityKind.COMPANY: Company.id,
    EntityKind.USER: User.company_id,
    EntityKind.REPORT: Report.company_id,
    EntityKind.BILLING: Billing.company_id,
    EntityKind.SUBSCRIPTION: Subscription.company_id,
    EntityKind.PAYMENT_METHOD: PaymentMethod.company_id,
}


def visibility_clause(actor: Actor, kind: EntityKind) -> Optional[ColumnElement]:
    """Predicado SQL con las filas visibles para el actor (None = todas)"""
    if sees_all_companies(actor):
        return None

    if kind == EntityKind.SESSION:
        # Cada actor solo ve su propia sesión; los agregados son de superAdmin
        return UserSession.user_id == actor.id

    company_column = _COMPANY_COLUMNS[kind]

    if actor.role == Role.ADMIN:
        clause = company_column.in_(sorted(actor.company_ids))
        if kind == EntityKind.USER:
            clause = and_(clause, User.role == Role.USER.value)
        return clause

    if actor.role == Role.USER and actor.company_id is not None:
        clause = company_column == actor.company_id
        if kind == EntityKind.REPORT:
            granted = exists().where(
                and_(UserReport.report_id == Report.id, UserReport.user_id == actor.id)
            )
            clause = and_(clause, granted)
        return clause

    return false()
