# app/modules/reports/schemas.py
from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from typing import Optional, List
from datetime import datetime
from enum import Enum

from app.shared.schemas.common import EntityId


class ReportStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ReportSort(str, Enum):
    REPORT_NAME = "report_name"
    DATE_CREATED = "date_created"
    ACCESS_COUNT = "access_count"


class ReportCreate(BaseModel):
    """Schema para crear reporte; user_ids son los usuarios con permiso de visualización"""
    report_name: str = Field(..., min_length=2, max_length=255)
    report_url: HttpUrl
    company_id: EntityId
    status: ReportStatus = ReportStatus.ACTIVE
    user_ids: List[EntityId] = Field(default_factory=list)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "report_name": "Ventas mensuales",
            "report_url": "https://app.powerbi.com/view?r=abc123",
            "company_id": "1b9d6bcd-bbfd-4b2d-9b5d-ab8dfbbd4bed",
            "user_ids": []
        }
    })


class ReportUpdate(BaseModel):
    """Patch de reporte; user_ids reemplaza por completo el conjunto de permisos"""
    report_name: Optional[str] = Field(None, min_length=2, max_length=255)
    report_url: Optional[HttpUrl] = None
    company_id: Optional[EntityId] = None
    status: Optional[ReportStatus] = None
    user_ids: Optional[List[EntityId]] = None


class ReportResponse(BaseModel):
    """Representación canónica de un reporte"""
    id: str
    report_name: str
    report_url: str
    company_id: str
    company_name: Optional[str] = None
    status: str
    access_count: int = 0
    user_count: int = 0
    user_ids: List[str] = []
    date_created: datetime
    last_modified_at: Optional[datetime] = None
    modified_by: Optional[str] = None
