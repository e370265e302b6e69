# app/modules/users/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from typing import List, Optional, Tuple

from app.shared.database.models import Company, CompanyAdmin, User, UserReport, UserSession
from app.shared.database.queries import LIKE_ESCAPE, apply_sort, contains_pattern, paginate, restrict
from app.shared.schemas.common import SortOrder
from .schemas import UserSort

SORT_COLUMNS = {
    UserSort.USER_NAME: User.user_name,
    UserSort.EMAIL: User.email,
    UserSort.DATE_CREATED: User.date_created,
}


class UserRepository:
    """Repository de usuarios"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str, visibility=None) -> Optional[User]:
        query = restrict(self.db.query(User), visibility)
        return query.filter(User.id == user_id).first()

    def list_users(
        self,
        visibility,
        search: Optional[str],
        role: Optional[str],
        status: Optional[str],
        company_id: Optional[str],
        page: int,
        page_size: int,
        sort_by: UserSort,
        sort_order: SortOrder
    ) -> Tuple[List[User], int]:
        query = restrict(self.db.query(User), visibility)

        if search:
            pattern = contains_pattern(search)
            query = query.filter(or_(
                User.user_name.ilike(pattern, escape=LIKE_ESCAPE),
                User.email.ilike(pattern, escape=LIKE_ESCAPE)
            ))
        if role:
            query = query.filter(User.role == role)
        if status:
            query = query.filter(User.status == status)
        if company_id:
            query = query.filter(User.company_id == company_id)

        query = apply_sort(query, SORT_COLUMNS[sort_by], sort_order, tiebreaker=User.id)
        return paginate(query, page, page_size)

    def get_company(self, company_id: str) -> Optional[Company]:
        return self.db.query(Company).filter(Company.id == company_id).first()

    def find_duplicate(self, user_name: Optional[str], email: Optional[str],
                       exclude_id: Optional[str] = None) -> Optional[User]:
        conditions = []
        if user_name:
            conditions.append(func.lower(User.user_name) == user_name.lower())
        if email:
            conditions.append(func.lower(User.email) == email.lower())
        if not conditions:
            return None

        query = self.db.query(User).filter(or_(*conditions))
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        return query.first()

    def admin_company_ids(self, user_id: str) -> List[str]:
        rows = (
            self.db.query(CompanyAdmin.company_id)
            .filter(CompanyAdmin.user_id == user_id)
            .order_by(CompanyAdmin.company_id)
            .all()
        )
        return [row.company_id for row in rows]

    def count_grants(self, user_id: str) -> int:
        return self.db.query(func.count(UserReport.report_id)).filter(UserReport.user_id == user_id).scalar() or 0

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def revoke_grants(self, user_id: str):
        self.db.query(UserReport).filter(UserReport.user_id == user_id).delete(synchronize_session="fetch")
        self.db.flush()

    def delete(self, user: User):
        self.revoke_grants(user.id)
        self.db.query(UserSession).filter(UserSession.user_id == user.id).delete(synchronize_session=False)
        self.db.query(User).filter(User.id == user.id).delete(synchronize_session=False)
        self.db.flush()
