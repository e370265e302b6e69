# app/modules/sessions/tasks.py
import asyncio
import logging
from typing import Callable

from sqlalchemy.orm import Session

from app.config.settings import settings
from app.core.errors import AppError
from .service import SessionsService

logger = logging.getLogger(__name__)


def close_stale_sessions(session_factory: Callable[[], Session]) -> int:
    """Una pasada de limpieza con su propia sesión de base de datos"""
    db = session_factory()
    try:
        closed, _ = SessionsService(db).sweep_stale()
        return closed
    finally:
        db.close()


async def run_stale_session_sweeper(session_factory: Callable[[], Session], interval_minutes: int) -> None:
    """
    Cierra sesiones abandonadas al arrancar y luego cada `interval_minutes`.

    La consulta es síncrona, así que cada pasada corre en un hilo aparte para
    no bloquear el event loop. Un fallo se registra y no detiene el servicio.
    """
    logger.info(
        f"Limpieza de sesiones iniciada: cada {interval_minutes} min, "
        f"inactividad máxima {settings.session_stale_hours}h"
    )
    while True:
        try:
            await asyncio.to_thread(close_stale_sessions, session_factory)
        except AppError as e:
            logger.error(f"Error en la limpieza de sesiones: {e.message}")
        await asyncio.sleep(interval_minutes * 60)
