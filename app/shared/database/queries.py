# app/shared/database/queries.py
"""Utilidades de consulta compartidas por los repositorios: visibilidad, orden y paginación"""
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from sqlalchemy.orm import Query
from sqlalchemy.sql.elements import ColumnElement

from app.config.settings import settings
from app.core.errors import ValidationFailed
from app.shared.schemas.common import SortOrder

E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: Type[E], value: Any, field: str) -> E:
    """Convierte un valor al enum o lanza ValidationFailed sobre el campo"""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationFailed.for_field(field, f"Valor '{value}' no permitido. Valores válidos: {allowed}")


def check_page(page: int, page_size: int) -> None:
    field_errors: Dict[str, List[str]] = {}
    if page < 1:
        field_errors["page"] = ["La página debe ser mayor o igual a 1"]
    if page_size < 1 or page_size > settings.max_page_size:
        field_errors["page_size"] = [f"El tamaño de página debe estar entre 1 y {settings.max_page_size}"]
    if field_errors:
        raise ValidationFailed(field_errors=field_errors)


LIKE_ESCAPE = "\\"


def contains_pattern(text: str) -> str:
    """Patrón LIKE de subcadena literal: `%` y `_` del usuario no actúan como comodines"""
    escaped = (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def restrict(query: Query, clause: Optional[ColumnElement]) -> Query:
    """Aplica el predicado de visibilidad (None = sin restricción)"""
    if clause is None:
        return query
    return query.filter(clause)


def apply_sort(query: Query, column, sort_order: SortOrder, tiebreaker=None) -> Query:
    ordered = column.desc() if sort_order == SortOrder.DESC else column.asc()
    if tiebreaker is not None:
        return query.order_by(ordered, tiebreaker.asc())
    return query.order_by(ordered)


def paginate(query: Query, page: int, page_size: int) -> Tuple[List[Any], int]:
    """Devuelve (filas de la página, total); el total usa el mismo WHERE sin orden ni límite"""
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * page_size).limit(page_size).all()
    return rows, total
