# app/modules/users/service.py
import logging
from sqlalchemy.orm import Session
from typing import Optional

from app.core.auth.policy import Action, Actor, EntityKind, Role, authorize, visibility_clause
from app.core.auth.service import AuthService
from app.core.errors import Conflict, InvariantViolation, NotFound, ValidationFailed, store_errors
from app.shared.database.models import User
from app.shared.database.queries import check_page, coerce_enum
from app.shared.schemas.common import PageResponse, SortOrder
from .repository import UserRepository
from .schemas import UserCreate, UserResponse, UserRole, UserSort, UserStatus, UserUpdate

logger = logging.getLogger(__name__)


class UsersService:
    """Service para el ciclo de vida de usuarios"""

    def __init__(self, db: Session):
        self.db = db
        self.repository = UserRepository(db)

    def _to_response(self, user: User) -> UserResponse:
        response = UserResponse.model_validate(user)
        response.report_count = self.repository.count_grants(user.id)
        return response

    def _load(self, user_id: str) -> User:
        user = self.repository.get_by_id(user_id)
        if user is None:
            raise NotFound("Usuario", user_id)
        return user

    def _require_active_company(self, company_id: Optional[str]):
        """Un usuario final debe pertenecer a una empresa existente y activa"""
        company = self.repository.get_company(company_id) if company_id else None
        if company is None or company.status != "active":
            raise InvariantViolation(
                InvariantViolation.COMPANY_REQUIRED,
                "Los usuarios con rol 'user' requieren una empresa existente y activa",
                blocking=[company_id] if company_id else None
            )

    def _check_unique(self, user_name: Optional[str], email: Optional[str], exclude_id: Optional[str] = None):
        duplicate = self.repository.find_duplicate(user_name, email, exclude_id)
        if duplicate is None:
            return
        field = "email" if email and duplicate.email.lower() == email.lower() else "user_name"
        raise Conflict(f"Ya existe un usuario con ese {field}", code="duplicate_user", retryable=False)

    # =====================================================
    # LECTURA
    # =====================================================

    async def list_users(
        self,
        actor: Actor,
        search: Optional[str] = None,
        role: Optional[str] = None,
        status: Optional[str] = None,
        company_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
        sort_by: UserSort = UserSort.USER_NAME,
        sort_order: SortOrder = SortOrder.ASC
    ) -> PageResponse[UserResponse]:
        check_page(page, page_size)
        sort_by = coerce_enum(UserSort, sort_by, "sort_by")
        sort_order = coerce_enum(SortOrder, sort_order, "sort_order")
        if role is not None:
            role = coerce_enum(UserRole, role, "role").value
        if status is not None:
            status = coerce_enum(UserStatus, status, "status").value

        users, total = self.repository.list_users(
            visibility_clause(actor, EntityKind.USER),
            search, role, status, company_id, page, page_size, sort_by, sort_order
        )
        return PageResponse[UserResponse].build(
            [self._to_response(u) for u in users], total, page, page_size
        )

    async def get_user(self, actor: Actor, user_id: str) -> UserResponse:
        user = self.repository.get_by_id(user_id, visibility_clause(actor, EntityKind.USER))
        if user is None:
            raise NotFound("Usuario", user_id)
        return self._to_response(user)

    # =====================================================
    # ESCRITURA
    # =====================================================

    async def create_user(self, actor: Actor, data: UserCreate) -> UserResponse:
        """
        Crear usuario.

        - role=user: company_id debe apuntar a una empresa activa (company_required)
        - admin/superAdmin: se crean sin empresa; los vínculos se hacen desde companies
        """
        role = Role(data.role.value)
        company_id = data.company_id if role == Role.USER else None

        # Sin empresa no hay propietario que evaluar: falla la regla de negocio antes que el permiso
        if role == Role.USER and not company_id:
            self._require_active_company(None)

        authorize(actor, Action.CREATE, EntityKind.USER, company_id, target_role=role)

        if role == Role.USER:
            self._require_active_company(company_id)
        self._check_unique(data.user_name, data.email)

        with store_errors(self.db, "create_user"):
            password_hash = AuthService.get_password_hash(data.password)
            user = User(
                user_name=data.user_name.strip(),
                email=data.email.lower(),
                password_hash=password_hash,
                password_history=[password_hash],
                role=role.value,
                company_id=company_id,
                status=data.status.value,
                modified_by=actor.label
            )
            self.repository.add(user)
            self.db.commit()
            self.db.refresh(user)

        logger.info(f"Usuario creado: {user.email} ({user.role}) por {actor.label}")
        return self._to_response(user)

    async def update_user(self, actor: Actor, user_id: str, patch: UserUpdate) -> UserResponse:
        user = self._load(user_id)
        target_role = Role(user.role)
        authorize(actor, Action.UPDATE, EntityKind.USER, user.company_id, target_role=target_role)

        fields = patch.model_dump(mode="json", exclude_unset=True)
        fields = {field: value for field, value in fields.items() if value is not None}

        company_changed = "company_id" in fields and fields["company_id"] != user.company_id
        if company_changed:
            if target_role != Role.USER:
                raise ValidationFailed.for_field(
                    "company_id", "Solo los usuarios con rol 'user' pertenecen a una empresa"
                )
            # También debe poder gestionar la empresa destino
            authorize(actor, Action.UPDATE, EntityKind.USER, fields["company_id"], target_role=target_role)
            self._require_active_company(fields["company_id"])

        if "email" in fields:
            fields["email"] = fields["email"].lower()
        self._check_unique(fields.get("user_name"), fields.get("email"), exclude_id=user.id)

        with store_errors(self.db, "update_user"):
            for field, value in fields.items():
                setattr(user, field, value)
            if company_changed:
                # Los permisos sobre reportes de la empresa anterior dejan de aplicar
                self.repository.revoke_grants(user.id)
            user.modified_by = actor.label
            self.db.commit()
            self.db.refresh(user)

        logger.info(f"Usuario actualizado: {user.id} por {actor.label}")
        return self._to_response(user)

    async def delete_user(self, actor: Actor, user_id: str) -> None:
        user = self._load(user_id)
        authorize(actor, Action.DELETE, EntityKind.USER, user.company_id, target_role=Role(user.role))

        if user.role == Role.ADMIN.value:
            blocking = self.repository.admin_company_ids(user.id)
            if user.company_id:
                blocking.append(user.company_id)
            if blocking:
                raise InvariantViolation(
                    InvariantViolation.ADMIN_STILL_ASSIGNED,
                    "El administrador sigue asignado a empresas; reasigne antes de eliminar",
                    blocking=blocking
                )

        email = user.email
        with store_errors(self.db, "delete_user"):
            self.repository.delete(user)
            self.db.commit()

        logger.info(f"Usuario eliminado: {email} por {actor.label}")
