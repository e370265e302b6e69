# app/modules/reports/service.py
import logging
from datetime import datetime
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Callable, List, Optional

from app.core.auth.policy import (
    Action, Actor, EntityKind, SelfService, authorize, visibility_clause
)
from app.core.errors import InvariantViolation, NotFound, ValidationFailed, store_errors
from app.shared.database.models import Report, utcnow
from app.shared.database.queries import check_page, coerce_enum
from app.shared.schemas.common import PageResponse, SortOrder
from .repository import ReportRepository
from .schemas import ReportCreate, ReportResponse, ReportSort, ReportStatus, ReportUpdate

logger = logging.getLogger(__name__)


class ReportsService:
    """Service de reportes: ciclo de vida, permisos de visualización y contador de accesos"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.repository = ReportRepository(db)

    def _to_response(self, report: Report) -> ReportResponse:
        user_ids = self.repository.grantee_ids(report.id)
        return ReportResponse(
            id=report.id,
            report_name=report.report_name,
            report_url=report.report_url,
            company_id=report.company_id,
            company_name=report.company.company_name if report.company else None,
            status=report.status,
            access_count=report.access_count or 0,
            user_count=len(user_ids),
            user_ids=user_ids,
            date_created=report.date_created,
            last_modified_at=report.last_modified_at,
            modified_by=report.modified_by
        )

    def _load(self, report_id: str) -> Report:
        report = self.repository.get_by_id(report_id)
        if report is None:
            raise NotFound("Reporte", report_id)
        return report

    def _duplicate_error(self, blocking: List[str]) -> InvariantViolation:
        return InvariantViolation(
            InvariantViolation.DUPLICATE_REPORT,
            "Ya existe un reporte con ese nombre o URL",
            blocking=blocking
        )

    def _check_unique(self, report_name: Optional[str], report_url: Optional[str], exclude_id: Optional[str] = None):
        duplicates = self.repository.find_duplicates(report_name, report_url, exclude_id)
        if duplicates:
            raise self._duplicate_error([d.id for d in duplicates])

    def _require_company(self, company_id: str):
        if self.repository.get_company(company_id) is None:
            raise ValidationFailed.for_field("company_id", f"La empresa {company_id} no existe")

    def _grantees(self, company_id: str, user_ids: List[str]) -> List[str]:
        """Los permisos solo se otorgan a usuarios finales de la empresa del reporte"""
        wanted = list(dict.fromkeys(user_ids))
        members = set(self.repository.company_members(company_id, wanted))
        invalid = [user_id for user_id in wanted if user_id not in members]
        if invalid:
            raise ValidationFailed(
                "Usuarios inválidos para este reporte",
                field_errors={"user_ids": [
                    f"El usuario {user_id} no es un usuario final de la empresa del reporte" for user_id in invalid
                ]}
            )
        return wanted

    # =====================================================
    # LECTURA
    # =====================================================

    async def list_reports(
        self,
        actor: Actor,
        search: Optional[str] = None,
        status: Optional[str] = None,
        company_id: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
        sort_by: ReportSort = ReportSort.REPORT_NAME,
        sort_order: SortOrder = SortOrder.ASC
    ) -> PageResponse[ReportResponse]:
        """
        Listado paginado de reportes visibles.

        Para usuarios finales solo aparecen reportes de su empresa sobre los que
        tienen permiso; el filtro va en el WHERE, así el total es correcto.
        """
        check_page(page, page_size)
        sort_by = coerce_enum(ReportSort, sort_by, "sort_by")
        sort_order = coerce_enum(SortOrder, sort_order, "sort_order")
        if status is not None:
            status = coerce_enum(ReportStatus, status, "status").value

        reports, total = self.repository.list_reports(
            visibility_clause(actor, EntityKind.REPORT),
            search, status, company_id, page, page_size, sort_by, sort_order
        )
        return PageResponse[ReportResponse].build(
            [self._to_response(r) for r in reports], total, page, page_size
        )

    async def get_report(self, actor: Actor, report_id: str) -> ReportResponse:
        report = self.repository.get_by_id(report_id, visibility_clause(actor, EntityKind.REPORT))
        if report is None:
            raise NotFound("Reporte", report_id)
        return self._to_response(report)

    # =====================================================
    # ESCRITURA
    # =====================================================

    async def create_report(self, actor: Actor, data: ReportCreate) -> ReportResponse:
        authorize(actor, Action.CREATE, EntityKind.REPORT, data.company_id)

        report_url = str(data.report_url)
        report_name = data.report_name.strip()
        self._require_company(data.company_id)
        self._check_unique(report_name, report_url)
        grantees = self._grantees(data.company_id, data.user_ids)

        with store_errors(self.db, "create_report"):
            try:
                report = Report(
                    report_name=report_name,
                    report_url=report_url,
                    company_id=data.company_id,
                    status=data.status.value,
                    access_count=0,
                    last_modified_at=self.clock(),
                    modified_by=actor.label
                )
                self.repository.add(report)
                self.repository.replace_grants(report.id, grantees)
                self.db.commit()
            except IntegrityError:
                # Otra petición creó el mismo nombre/URL entre la validación y el INSERT
                self.db.rollback()
                raise self._duplicate_error([])
            self.db.refresh(report)

        logger.info(f"Reporte creado: {report.report_name} ({report.id}) por {actor.label}")
        return self._to_response(report)

    async def update_report(self, actor: Actor, report_id: str, patch: ReportUpdate) -> ReportResponse:
        """
        Actualizar reporte.

        `user_ids` reemplaza por completo los permisos (no se fusiona). Si el
        reporte cambia de empresa se revocan los permisos que ya no aplican.
        """
        report = self._load(report_id)
        authorize(actor, Action.UPDATE, EntityKind.REPORT, report.company_id)

        fields = patch.model_dump(mode="json", exclude_unset=True, exclude={"user_ids"})
        fields = {field: value for field, value in fields.items() if value is not None}
        if "report_name" in fields:
            fields["report_name"] = fields["report_name"].strip()

        target_company = fields.get("company_id", report.company_id)
        company_changed = target_company != report.company_id
        if company_changed:
            authorize(actor, Action.UPDATE, EntityKind.REPORT, target_company)
            self._require_company(target_company)

        self._check_unique(fields.get("report_name"), fields.get("report_url"), exclude_id=report.id)

        grantees = None
        if patch.user_ids is not None:
            grantees = self._grantees(target_company, patch.user_ids)

        with store_errors(self.db, "update_report"):
            try:
                for field, value in fields.items():
                    setattr(report, field, value)
                report.last_modified_at = self.clock()
                report.modified_by = actor.label
                self.db.flush()

                if grantees is not None:
                    self.repository.replace_grants(report.id, grantees)
                elif company_changed:
                    self.repository.revoke_outside_company(report.id, target_company)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                raise self._duplicate_error([])
            self.db.refresh(report)

        logger.info(f"Reporte actualizado: {report.id} por {actor.label}")
        return self._to_response(report)

    async def delete_report(self, actor: Actor, report_id: str) -> None:
        report = self._load(report_id)
        authorize(actor, Action.DELETE, EntityKind.REPORT, report.company_id)

        name = report.report_name
        with store_errors(self.db, "delete_report"):
            self.repository.delete(report)
            self.db.commit()

        logger.info(f"Reporte eliminado: {name} ({report_id}) por {actor.label}")

    async def increment_access_count(self, actor: Actor, report_id: str) -> ReportResponse:
        """
        Registrar una vista del reporte.

        Solo usuarios finales con permiso sobre el reporte; el incremento es un
        UPDATE atómico así que las vistas concurrentes no se pierden.
        """
        report = self._load(report_id)
        authorize(
            actor, Action.UPDATE, EntityKind.REPORT, report.company_id,
            has_grant=self.repository.has_grant(report.id, actor.id),
            self_service=SelfService.INCREMENT_ACCESS
        )

        with store_errors(self.db, "increment_access_count"):
            self.repository.increment_access_count(report.id)
            self.db.commit()
            self.db.refresh(report)

        return self._to_response(report)
