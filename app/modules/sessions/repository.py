# app/modules/sessions/repository.py
from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from datetime import datetime
from typing import List, Optional, Tuple

from app.shared.database.models import User, UserSession
from app.shared.database.queries import paginate


class SessionRepository:
    """Repository de sesiones (una fila por usuario)"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_user(self, user_id: str) -> Optional[UserSession]:
        return self.db.query(UserSession).filter(UserSession.user_id == user_id).first()

    def get_by_id(self, session_id: str) -> Optional[UserSession]:
        return self.db.query(UserSession).filter(UserSession.id == session_id).first()

    def add(self, session: UserSession) -> UserSession:
        self.db.add(session)
        self.db.flush()
        return session

    def count_active(self) -> int:
        return self.db.query(func.count(UserSession.id)).filter(UserSession.end_time.is_(None)).scalar() or 0

    def stale_sessions(self, cutoff: datetime) -> List[UserSession]:
        """Sesiones abiertas sin actividad del usuario desde antes de `cutoff`"""
        return self.db.query(UserSession).join(User, User.id == UserSession.user_id).filter(
            UserSession.end_time.is_(None),
            UserSession.start_time < cutoff,
            or_(User.last_activity.is_(None), User.last_activity < cutoff)
        ).all()

    def sum_totals(self) -> Tuple[int, int]:
        active, inactive = self.db.query(
            func.coalesce(func.sum(UserSession.total_active_time), 0),
            func.coalesce(func.sum(UserSession.total_inactive_time), 0)
        ).one()
        return int(active), int(inactive)

    def list_sessions(self, active_only: bool, page: int, page_size: int) -> Tuple[List[UserSession], int]:
        query = self.db.query(UserSession)
        if active_only:
            query = query.filter(UserSession.end_time.is_(None))
        query = query.order_by(UserSession.start_time.desc(), UserSession.id)
        return paginate(query, page, page_size)
