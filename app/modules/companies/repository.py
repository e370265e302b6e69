# app/modules/companies/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import func, select, or_
from typing import List, Optional, Tuple

from app.core.auth.policy import Role
from app.shared.database.models import (
    Billing, Company, CompanyAdmin, CompanyAdminHistory, PaymentMethod,
    Report, Subscription, User, UserReport, UserSession
)
from app.shared.database.queries import LIKE_ESCAPE, apply_sort, contains_pattern, paginate, restrict
from app.shared.schemas.common import SortOrder
from .schemas import CompanySort

SORT_COLUMNS = {
    CompanySort.COMPANY_NAME: Company.company_name,
    CompanySort.DATE_JOINED: Company.date_joined,
}


class CompanyRepository:
    """Repository de empresas; solo hace flush, el commit lo decide el service"""

    def __init__(self, db: Session):
        self.db = db

    # =====================================================
    # CONSULTAS
    # =====================================================

    def get_by_id(self, company_id: str, visibility=None) -> Optional[Company]:
        query = restrict(self.db.query(Company), visibility)
        return query.filter(Company.id == company_id).first()

    def list_companies(
        self,
        visibility,
        search: Optional[str],
        status: Optional[str],
        page: int,
        page_size: int,
        sort_by: CompanySort,
        sort_order: SortOrder
    ) -> Tuple[List[Company], int]:
        query = restrict(self.db.query(Company), visibility)

        if search:
            query = query.filter(Company.company_name.ilike(contains_pattern(search), escape=LIKE_ESCAPE))
        if status:
            query = query.filter(Company.status == status)

        query = apply_sort(query, SORT_COLUMNS[sort_by], sort_order, tiebreaker=Company.id)
        return paginate(query, page, page_size)

    def email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(Company.id).filter(func.lower(Company.email) == email.lower())
        if exclude_id:
            query = query.filter(Company.id != exclude_id)
        return query.first() is not None

    def find_admin_users(self, user_ids: List[str]) -> List[User]:
        if not user_ids:
            return []
        return self.db.query(User).filter(User.id.in_(user_ids), User.role == Role.ADMIN.value).all()

    def count_users(self, company_id: str) -> int:
        return self.db.query(func.count(User.id)).filter(User.company_id == company_id).scalar() or 0

    def count_reports(self, company_id: str) -> int:
        return self.db.query(func.count(Report.id)).filter(Report.company_id == company_id).scalar() or 0

    def get_admin_history(self, company_id: str) -> List[CompanyAdminHistory]:
        return (
            self.db.query(CompanyAdminHistory)
            .filter(CompanyAdminHistory.company_id == company_id)
            .order_by(CompanyAdminHistory.change_date.desc())
            .all()
        )

    # =====================================================
    # ESCRITURAS
    # =====================================================

    def add(self, company: Company) -> Company:
        self.db.add(company)
        self.db.flush()
        return company

    def link_admins(self, company_id: str, user_ids: List[str], modified_by: str):
        for user_id in user_ids:
            self.db.add(CompanyAdmin(company_id=company_id, user_id=user_id, modified_by=modified_by))
        self.db.flush()

    def unlink_admins(self, company_id: str, user_ids: List[str]):
        if not user_ids:
            return
        (
            self.db.query(CompanyAdmin)
            .filter(CompanyAdmin.company_id == company_id, CompanyAdmin.user_id.in_(user_ids))
            .delete(synchronize_session=False)
        )
        self.db.flush()

    def add_history(self, entry: CompanyAdminHistory):
        self.db.add(entry)
        self.db.flush()

    def delete_cascade(self, company_id: str):
        """
        Borra la empresa y todo lo que le pertenece, hijos primero.

        Los usuarios admin se conservan: solo se elimina su vínculo.
        """
        member_ids = select(User.id).where(User.company_id == company_id)
        report_ids = select(Report.id).where(Report.company_id == company_id)

        self.db.query(UserReport).filter(
            or_(UserReport.report_id.in_(report_ids), UserReport.user_id.in_(member_ids))
        ).delete(synchronize_session=False)
        self.db.query(UserSession).filter(UserSession.user_id.in_(member_ids)).delete(synchronize_session=False)
        self.db.query(Report).filter(Report.company_id == company_id).delete(synchronize_session=False)
        self.db.query(User).filter(User.company_id == company_id).delete(synchronize_session=False)

        for model in (Billing, Subscription, PaymentMethod, CompanyAdminHistory, CompanyAdmin):
            self.db.query(model).filter(model.company_id == company_id).delete(synchronize_session=False)

        self.db.query(Company).filter(Company.id == company_id).delete(synchronize_session=False)
        self.db.flush()
