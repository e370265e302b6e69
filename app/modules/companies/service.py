# app/modules/companies/service.py
import logging
from itertools import zip_longest
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.auth.policy import Action, Actor, EntityKind, authorize, visibility_clause
from app.core.errors import Conflict, InvariantViolation, NotFound, store_errors
from app.shared.database.models import Company, CompanyAdminHistory, User, utcnow
from app.shared.database.queries import check_page, coerce_enum
from app.shared.schemas.common import PageResponse, SortOrder
from .repository import CompanyRepository
from .schemas import (
    AdminChangeType, AdminHistoryResponse, AdminSummary, CompanyCreate,
    CompanyResponse, CompanySort, CompanyStatus, CompanyUpdate
)

logger = logging.getLogger(__name__)

# Columnas NOT NULL que un patch con null no debe vaciar
REQUIRED_FIELDS = ("company_name", "email", "status", "num_of_employees", "has_additional_user_purchase")


class CompaniesService:
    """Service para el ciclo de vida de empresas (tenants)"""

    def __init__(self, db: Session):
        self.db = db
        self.repository = CompanyRepository(db)

    def _to_response(self, company: Company) -> CompanyResponse:
        return CompanyResponse(
            id=company.id,
            company_name=company.company_name,
            email=company.email,
            address=company.address,
            phone=company.phone,
            status=company.status,
            date_joined=company.date_joined,
            last_activity=company.last_activity,
            preferred_subscription_plan=company.preferred_subscription_plan,
            num_of_employees=company.num_of_employees,
            has_additional_user_purchase=company.has_additional_user_purchase,
            modified_by=company.modified_by,
            admins=[AdminSummary.model_validate(admin) for admin in company.admins],
            user_count=self.repository.count_users(company.id),
            report_count=self.repository.count_reports(company.id)
        )

    def _load(self, company_id: str) -> Company:
        """Carga sin restricción de visibilidad (update/delete autorizan después)"""
        company = self.repository.get_by_id(company_id)
        if company is None:
            raise NotFound("Empresa", company_id)
        return company

    def _require_admins(self, admin_ids: List[str]) -> List[User]:
        unique_ids = list(dict.fromkeys(admin_ids))
        if not unique_ids:
            raise InvariantViolation(
                InvariantViolation.ADMIN_REQUIRED,
                "La empresa debe tener al menos un administrador"
            )

        admins = self.repository.find_admin_users(unique_ids)
        found = {admin.id for admin in admins}
        missing = [admin_id for admin_id in unique_ids if admin_id not in found]
        if missing:
            raise InvariantViolation(
                InvariantViolation.ADMIN_REQUIRED,
                "Los administradores indicados no existen o no tienen rol admin",
                blocking=missing
            )
        return sorted(admins, key=lambda admin: unique_ids.index(admin.id))

    def _check_email(self, email: str, exclude_id: Optional[str] = None):
        if self.repository.email_taken(email, exclude_id):
            raise Conflict(f"Ya existe una empresa con el email {email}", code="duplicate_company", retryable=False)

    # =====================================================
    # LECTURA
    # =====================================================

    async def list_companies(
        self,
        actor: Actor,
        search: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
        sort_by: CompanySort = CompanySort.COMPANY_NAME,
        sort_order: SortOrder = SortOrder.ASC
    ) -> PageResponse[CompanyResponse]:
        """Listado paginado de las empresas visibles para el actor"""
        check_page(page, page_size)
        sort_by = coerce_enum(CompanySort, sort_by, "sort_by")
        sort_order = coerce_enum(SortOrder, sort_order, "sort_order")
        if status is not None:
            status = coerce_enum(CompanyStatus, status, "status").value

        companies, total = self.repository.list_companies(
            visibility_clause(actor, EntityKind.COMPANY), search, status, page, page_size, sort_by, sort_order
        )
        return PageResponse[CompanyResponse].build(
            [self._to_response(c) for c in companies], total, page, page_size
        )

    async def get_company(self, actor: Actor, company_id: str) -> CompanyResponse:
        company = self.repository.get_by_id(company_id, visibility_clause(actor, EntityKind.COMPANY))
        if company is None:
            raise NotFound("Empresa", company_id)
        return self._to_response(company)

    async def list_admins(self, actor: Actor, company_id: str) -> List[AdminSummary]:
        company = self.repository.get_by_id(company_id, visibility_clause(actor, EntityKind.COMPANY))
        if company is None:
            raise NotFound("Empresa", company_id)
        return [AdminSummary.model_validate(admin) for admin in company.admins]

    async def get_admin_history(self, actor: Actor, company_id: str) -> List[AdminHistoryResponse]:
        company = self.repository.get_by_id(company_id, visibility_clause(actor, EntityKind.COMPANY))
        if company is None:
            raise NotFound("Empresa", company_id)
        return [AdminHistoryResponse.model_validate(h) for h in self.repository.get_admin_history(company_id)]

    # =====================================================
    # ESCRITURA
    # =====================================================

    async def create_company(self, actor: Actor, data: CompanyCreate) -> CompanyResponse:
        """
        Crear empresa y vincular sus administradores en una sola transacción.

        Requiere al menos un usuario con rol admin existente (admin_required).
        """
        authorize(actor, Action.CREATE, EntityKind.COMPANY)

        admins = self._require_admins(data.admin_ids)
        self._check_email(data.email)

        with store_errors(self.db, "create_company"):
            company = Company(
                company_name=data.company_name.strip(),
                email=data.email.lower(),
                address=data.address,
                phone=data.phone,
                status=data.status.value,
                preferred_subscription_plan=data.preferred_subscription_plan,
                num_of_employees=data.num_of_employees,
                has_additional_user_purchase=data.has_additional_user_purchase,
                modified_by=actor.label
            )
            self.repository.add(company)
            self.repository.link_admins(company.id, [admin.id for admin in admins], actor.label)
            self.db.commit()
            self.db.refresh(company)

        logger.info(f"Empresa creada: {company.company_name} ({company.id}) por {actor.label}")
        return self._to_response(company)

    async def update_company(self, actor: Actor, company_id: str, patch: CompanyUpdate) -> CompanyResponse:
        company = self._load(company_id)
        authorize(actor, Action.UPDATE, EntityKind.COMPANY, company.id)

        fields = patch.model_dump(
            mode="json", exclude_unset=True, exclude={"admin_ids", "admin_change_type", "admin_change_reason"}
        )

        new_admins = None
        if patch.admin_ids is not None:
            new_admins = self._require_admins(patch.admin_ids)
        if "email" in fields and fields["email"] is not None:
            fields["email"] = fields["email"].lower()
            self._check_email(fields["email"], exclude_id=company.id)

        with store_errors(self.db, "update_company"):
            for field, value in fields.items():
                if value is None and field in REQUIRED_FIELDS:
                    continue
                setattr(company, field, value)

            if new_admins is not None:
                self._replace_admins(actor, company, new_admins, patch.admin_change_type, patch.admin_change_reason)

            company.modified_by = actor.label
            company.last_activity = utcnow()
            self.db.commit()
            self.db.refresh(company)

        logger.info(f"Empresa actualizada: {company.id} por {actor.label}")
        return self._to_response(company)

    def _replace_admins(
        self,
        actor: Actor,
        company: Company,
        new_admins: List[User],
        change_type: AdminChangeType,
        reason: Optional[str]
    ):
        current = {admin.id: admin for admin in company.admins}
        wanted = {admin.id: admin for admin in new_admins}

        removed = [current[i] for i in current if i not in wanted]
        added = [wanted[i] for i in wanted if i not in current]
        if not removed and not added:
            return

        self.repository.unlink_admins(company.id, [admin.id for admin in removed])
        self.repository.link_admins(company.id, [admin.id for admin in added], actor.label)

        for previous, new in zip_longest(removed, added):
            self.repository.add_history(CompanyAdminHistory(
                company_id=company.id,
                previous_admin_id=previous.id if previous else None,
                previous_admin_name=previous.user_name if previous else None,
                previous_admin_email=previous.email if previous else None,
                new_admin_id=new.id if new else None,
                new_admin_name=new.user_name if new else None,
                new_admin_email=new.email if new else None,
                change_type=change_type.value,
                change_reason=reason,
                changed_by=actor.id
            ))

        # Las relaciones cargadas ya no reflejan los vínculos
        self.db.expire(company, ["admin_links"])

    async def set_status(self, actor: Actor, company_id: str, status: CompanyStatus) -> CompanyResponse:
        """Atajo para habilitar/deshabilitar una empresa"""
        return await self.update_company(actor, company_id, CompanyUpdate(status=status))

    async def delete_company(self, actor: Actor, company_id: str) -> None:
        """
        Eliminar empresa en cascada: reportes y sus permisos, usuarios finales con
        sus sesiones, facturación, suscripciones, métodos de pago, historial y
        vínculos de administradores. Las cuentas admin se conservan.
        """
        company = self._load(company_id)
        authorize(actor, Action.DELETE, EntityKind.COMPANY, company.id)

        name = company.company_name
        with store_errors(self.db, "delete_company"):
            self.repository.delete_cascade(company.id)
            self.db.commit()

        logger.info(f"Empresa eliminada: {name} ({company_id}) por {actor.label}")
