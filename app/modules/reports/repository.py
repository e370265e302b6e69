# app/modules/reports/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import and_, exists, func, or_, select
from typing import List, Optional, Tuple

from app.core.auth.policy import Role
from app.shared.database.models import Company, Report, User, UserReport
from app.shared.database.queries import LIKE_ESCAPE, apply_sort, contains_pattern, paginate, restrict
from app.shared.schemas.common import SortOrder
from .schemas import ReportSort

SORT_COLUMNS = {
    ReportSort.REPORT_NAME: Report.report_name,
    ReportSort.DATE_CREATED: Report.date_created,
    ReportSort.ACCESS_COUNT: Report.access_count,
}


class ReportRepository:
    """Repository de reportes y permisos de visualización"""

    def __init__(self, db: Session):
        self.db = db

    # =====================================================
    # REPORTES
    # =====================================================

    def get_by_id(self, report_id: str, visibility=None) -> Optional[Report]:
        query = restrict(self.db.query(Report), visibility)
        return query.filter(Report.id == report_id).first()

    def list_reports(
        self,
        visibility,
        search: Optional[str],
        status: Optional[str],
        company_id: Optional[str],
        page: int,
        page_size: int,
        sort_by: ReportSort,
        sort_order: SortOrder
    ) -> Tuple[List[Report], int]:
        query = restrict(self.db.query(Report), visibility)

        if search:
            query = query.filter(Report.report_name.ilike(contains_pattern(search), escape=LIKE_ESCAPE))
        if status:
            query = query.filter(Report.status == status)
        if company_id:
            query = query.filter(Report.company_id == company_id)

        query = apply_sort(query, SORT_COLUMNS[sort_by], sort_order, tiebreaker=Report.id)
        return paginate(query, page, page_size)

    def find_duplicates(self, report_name: Optional[str], report_url: Optional[str],
                        exclude_id: Optional[str] = None) -> List[Report]:
        conditions = []
        if report_name:
            conditions.append(Report.report_name == report_name)
        if report_url:
            conditions.append(Report.report_url == report_url)
        if not conditions:
            return []

        query = self.db.query(Report).filter(or_(*conditions))
        if exclude_id:
            query = query.filter(Report.id != exclude_id)
        return query.all()

    def get_company(self, company_id: str) -> Optional[Company]:
        return self.db.query(Company).filter(Company.id == company_id).first()

    def add(self, report: Report) -> Report:
        self.db.add(report)
        self.db.flush()
        return report

    def delete(self, report: Report):
        self.db.query(UserReport).filter(UserReport.report_id == report.id).delete(synchronize_session=False)
        self.db.query(Report).filter(Report.id == report.id).delete(synchronize_session=False)
        self.db.flush()

    def increment_access_count(self, report_id: str) -> int:
        """UPDATE atómico en SQL; no hay lectura-modificación-escritura en Python"""
        updated = (
            self.db.query(Report)
            .filter(Report.id == report_id)
            .update({Report.access_count: Report.access_count + 1}, synchronize_session=False)
        )
        self.db.flush()
        return updated

    # =====================================================
    # PERMISOS (UserReport)
    # =====================================================

    def has_grant(self, report_id: str, user_id: str) -> bool:
        return self.db.query(
            exists().where(and_(UserReport.report_id == report_id, UserReport.user_id == user_id))
        ).scalar()

    def grantee_ids(self, report_id: str) -> List[str]:
        rows = (
            self.db.query(UserReport.user_id)
            .filter(UserReport.report_id == report_id)
            .order_by(UserReport.user_id)
            .all()
        )
        return [row.user_id for row in rows]

    def company_members(self, company_id: str, user_ids: List[str]) -> List[str]:
        """Ids (de los indicados) que son usuarios finales de la empresa"""
        if not user_ids:
            return []
        rows = (
            self.db.query(User.id)
            .filter(User.id.in_(user_ids), User.role == Role.USER.value, User.company_id == company_id)
            .all()
        )
        return [row.id for row in rows]

    def replace_grants(self, report_id: str, user_ids: List[str]):
        """Reemplazo completo: borra todos los permisos y crea los indicados"""
        self.db.query(UserReport).filter(UserReport.report_id == report_id).delete(synchronize_session="fetch")
        for user_id in user_ids:
            self.db.add(UserReport(report_id=report_id, user_id=user_id))
        self.db.flush()

    def revoke_outside_company(self, report_id: str, company_id: str):
        members = select(User.id).where(User.company_id == company_id)
        (
            self.db.query(UserReport)
            .filter(UserReport.report_id == report_id, ~UserReport.user_id.in_(members))
            .delete(synchronize_session="fetch")
        )
        self.db.flush()

    def count_grants(self, report_id: str) -> int:
        return self.db.query(func.count(UserReport.user_id)).filter(UserReport.report_id == report_id).scalar() or 0
