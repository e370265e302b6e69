# app/core/errors.py
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    """Error base de la API: {code, message, field_errors?, details?}"""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        field_errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code or self.code
        self.message = message
        self.field_errors = field_errors
        self.details = details
        super().__init__(status_code=self.status_code, detail=self.to_dict(), headers=headers)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field_errors:
            body["field_errors"] = self.field_errors
        if self.details:
            body["details"] = self.details
        return body


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"

    def __init__(self, message: str = "Autenticación requerida"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Unauthorized(AppError):
    """Actor válido pero la política de acceso lo rechaza; code es el motivo"""
    status_code = status.HTTP_403_FORBIDDEN
    code = "insufficient_role"

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Acceso denegado ({reason})", code=reason)


class ValidationFailed(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"

    def __init__(self, message: str = "Datos inválidos", field_errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message, field_errors=field_errors)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(message, field_errors={field: [message]})


class InvariantViolation(AppError):
    status_code = status.HTTP_409_CONFLICT

    # Códigos de invariantes de negocio
    ADMIN_REQUIRED = "admin_required"
    ADMIN_STILL_ASSIGNED = "admin_still_assigned"
    COMPANY_REQUIRED = "company_required"
    DUPLICATE_REPORT = "duplicate_report"

    def __init__(self, code: str, message: str, blocking: Optional[List[str]] = None):
        self.blocking = blocking or []
        details = {"blocking": self.blocking} if blocking else None
        super().__init__(message, code=code, details=details)


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"

    def __init__(self, entity: str, entity_id: Any = None):
        message = f"{entity} no encontrado" if entity_id is None else f"{entity} {entity_id} no encontrado"
        super().__init__(message)


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"

    def __init__(
        self,
        message: str = "Conflicto de escritura concurrente, reintente la operación",
        code: Optional[str] = None,
        retryable: bool = True,
    ):
        super().__init__(message, code=code, details={"retryable": retryable})


class Internal(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

    def __init__(self, message: str = "Error interno del servidor"):
        super().__init__(message)


@contextmanager
def store_errors(db: Session, operation: str):
    """Mapea errores del almacenamiento a la taxonomía de la API.

    Cualquier error hace rollback de la transacción en curso. Los AppError se
    propagan tal cual; IntegrityError se reporta como Conflict y el resto como
    Internal con el mensaje redactado (el detalle queda en el log).
    """
    try:
        yield
    except AppError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Conflicto de integridad en {operation}: {e.orig}")
        raise Conflict()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Error de base de datos en {operation}")
        raise Internal()
    except Exception:
        db.rollback()
        logger.exception(f"Error inesperado en {operation}")
        raise Internal()


def _field_errors_from_pydantic(errors) -> Dict[str, List[str]]:
    field_errors: Dict[str, List[str]] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "__root__"
        field_errors.setdefault(field, []).append(error.get("msg", "Valor inválido"))
    return field_errors


def setup_error_handlers(app: FastAPI):
    """Registra el formato de error {code, message, field_errors?} para toda la API"""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = ValidationFailed(field_errors=_field_errors_from_pydantic(exc.errors()))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Error no controlado en {request.method} {request.url.path}")
        error = Internal()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
