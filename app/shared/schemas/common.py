# app/shared/schemas/common.py
import math
from enum import Enum
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, StringConstraints

T = TypeVar("T")

# Identificadores UUID en formato texto
EntityId = Annotated[
    str,
    StringConstraints(pattern=r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
]


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ErrorResponse(BaseModel):
    code: str
    message: str
    field_errors: Optional[Dict[str, List[str]]] = None
    details: Optional[Dict[str, Any]] = None


class MessageResponse(BaseModel):
    success: bool = True
    message: str = ""


class PageResponse(BaseModel, Generic[T]):
    """Página de resultados: el total cuenta solo las filas visibles para el actor"""
    rows: List[T]
    total: int
    page: int
    page_size: int
    pages: int

    @classmethod
    def build(cls, rows: List[Any], total: int, page: int, page_size: int) -> "PageResponse":
        pages = math.ceil(total / page_size) if total else 0
        return cls(rows=rows, total=total, page=page, page_size=page_size, pages=pages)
