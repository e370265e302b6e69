# app/modules/sessions/service.py
import logging
from datetime import datetime, timedelta
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Callable, Tuple

from app.config.settings import settings
from app.core.auth.policy import Action, Actor, EntityKind, SelfService, authorize, authorize_global_read
from app.core.errors import Conflict, NotFound, store_errors
from app.shared.database.models import UserSession, utcnow
from app.shared.database.queries import check_page
from app.shared.schemas.common import PageResponse
from .repository import SessionRepository
from .schemas import (
    ActiveCountResponse, MySessionResponse, SessionResponse, StaleSessionsResponse, TotalActiveTimeResponse
)

logger = logging.getLogger(__name__)


class SessionsService:
    """
    Acumulador de tiempo de sesión por usuario.

    Cada usuario tiene como máximo una fila (user_id único). Un nuevo login
    reactiva la fila existente en lugar de insertar otra, y cada cierre suma
    los segundos activos/inactivos del intervalo a los totales acumulados.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.repository = SessionRepository(db)

    def _authorize_own(self, actor: Actor, action: Action):
        authorize(actor, action, EntityKind.SESSION, target_id=actor.id, self_service=SelfService.OWN_SESSION)

    # =====================================================
    # SESIÓN PROPIA
    # =====================================================

    async def start(self, actor: Actor) -> SessionResponse:
        """Crear o reactivar la sesión del actor (start_time=now, end_time=None)"""
        self._authorize_own(actor, Action.CREATE)
        now = self.clock()

        with store_errors(self.db, "start_session"):
            session = self.repository.get_by_user(actor.id)

            if session is None:
                try:
                    session = self.repository.add(UserSession(
                        user_id=actor.id,
                        start_time=now,
                        end_time=None,
                        total_active_time=0,
                        total_inactive_time=0
                    ))
                    self.db.commit()
                    self.db.refresh(session)
                    logger.info(f"Sesión creada: usuario={actor.id}")
                    return SessionResponse.model_validate(session)
                except IntegrityError:
                    # Otro login concurrente creó la fila: se relee y se reactiva
                    self.db.rollback()
                    logger.info(f"Sesión creada en paralelo, se reutiliza: usuario={actor.id}")
                    session = self.repository.get_by_user(actor.id)
                    if session is None:
                        raise Conflict()

            session.start_time = now
            session.end_time = None
            self.db.commit()
            self.db.refresh(session)

        logger.info(f"Sesión reactivada: usuario={actor.id}")
        return SessionResponse.model_validate(session)

    async def stop(self, actor: Actor, session_id: str, active_time_ms: int) -> SessionResponse:
        """
        Cerrar la sesión del actor.

        inactivo = transcurrido - activo (nunca negativo); ambos se suman en
        segundos enteros a los totales acumulados.
        """
        self._authorize_own(actor, Action.UPDATE)

        session = self.repository.get_by_id(session_id)
        if session is None or session.user_id != actor.id:
            raise NotFound("Sesión", session_id)
        if session.end_time is not None:
            raise Conflict("La sesión ya está cerrada", code="session_closed", retryable=False)

        now = self.clock()
        elapsed_ms = max(0, int((now - session.start_time).total_seconds() * 1000))
        active_ms = max(0, active_time_ms)
        inactive_ms = max(0, elapsed_ms - active_ms)

        with store_errors(self.db, "stop_session"):
            session.total_active_time = (session.total_active_time or 0) + active_ms // 1000
            session.total_inactive_time = (session.total_inactive_time or 0) + inactive_ms // 1000
            session.end_time = now
            self.db.commit()
            self.db.refresh(session)

        logger.info(
            f"Sesión cerrada: usuario={actor.id} activo={active_ms // 1000}s inactivo={inactive_ms // 1000}s"
        )
        return SessionResponse.model_validate(session)

    async def current(self, actor: Actor) -> MySessionResponse:
        self._authorize_own(actor, Action.READ)
        session = self.repository.get_by_user(actor.id)
        if session is None:
            return MySessionResponse(active=False)
        return MySessionResponse(active=session.is_active, session=SessionResponse.model_validate(session))

    async def is_active(self, actor: Actor) -> bool:
        return (await self.current(actor)).active

    # =====================================================
    # LIMPIEZA DE SESIONES ABANDONADAS
    # =====================================================

    def sweep_stale(self) -> Tuple[int, datetime]:
        """
        Cierra las sesiones abiertas sin actividad en las últimas
        `settings.session_stale_hours` horas.

        El cliente nunca reportó tiempo activo para ellas, así que todo el
        intervalo desde start_time se suma como inactivo.
        """
        now = self.clock()
        cutoff = now - timedelta(hours=settings.session_stale_hours)

        with store_errors(self.db, "close_stale_sessions"):
            stale = self.repository.stale_sessions(cutoff)
            for session in stale:
                elapsed = max(0, int((now - session.start_time).total_seconds()))
                session.total_inactive_time = (session.total_inactive_time or 0) + elapsed
                session.end_time = now
            self.db.commit()

        if stale:
            logger.info(f"Sesiones abandonadas cerradas: {len(stale)} (sin actividad desde {cutoff.isoformat()})")
        return len(stale), cutoff

    async def close_stale(self, actor: Actor) -> StaleSessionsResponse:
        authorize(actor, Action.UPDATE, EntityKind.SESSION)
        closed, cutoff = self.sweep_stale()
        return StaleSessionsResponse(closed_sessions=closed, cutoff=cutoff)

    # =====================================================
    # AGREGADOS (SOLO SUPERADMIN)
    # =====================================================

    async def active_count(self, actor: Actor) -> ActiveCountResponse:
        authorize_global_read(actor, EntityKind.SESSION)
        return ActiveCountResponse(active_users=self.repository.count_active())

    async def total_active_time(self, actor: Actor) -> TotalActiveTimeResponse:
        authorize_global_read(actor, EntityKind.SESSION)
        active, inactive = self.repository.sum_totals()
        return TotalActiveTimeResponse(total_active_time=active, total_inactive_time=inactive)

    async def list_sessions(
        self,
        actor: Actor,
        active_only: bool = False,
        page: int = 1,
        page_size: int = 10
    ) -> PageResponse[SessionResponse]:
        authorize_global_read(actor, EntityKind.SESSION)
        check_page(page, page_size)
        sessions, total = self.repository.list_sessions(active_only, page, page_size)
        return PageResponse[SessionResponse].build(
            [SessionResponse.model_validate(s) for s in sessions], total, page, page_size
        )
