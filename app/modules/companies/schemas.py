# app/modules/companies/schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum

from app.shared.schemas.common import EntityId


# =====================================================
# ENUMS
# =====================================================

class CompanyStatus(str, Enum):
    """Estados de empresa (sin restricciones de transición)"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    SUSPENDED = "suspended"


class CompanySort(str, Enum):
    COMPANY_NAME = "company_name"
    DATE_JOINED = "date_joined"


class AdminChangeType(str, Enum):
    OWNERSHIP_TRANSFER = "ownership_transfer"
    ADMIN_CHANGE = "admin_change"
    COMPANY_SALE = "company_sale"


# =====================================================
# REQUEST SCHEMAS
# =====================================================

class CompanyCreate(BaseModel):
    """Schema para crear una nueva empresa (tenant)"""
    company_name: str = Field(..., min_length=2, max_length=255, description="Nombre de la empresa")
    email: EmailStr = Field(..., description="Email principal de la empresa")
    address: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    status: CompanyStatus = CompanyStatus.ACTIVE
    preferred_subscription_plan: Optional[str] = Field(None, max_length=100)
    num_of_employees: int = Field(default=0, ge=0)
    has_additional_user_purchase: bool = False
    admin_ids: List[EntityId] = Field(default_factory=list, description="Usuarios admin a vincular")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "company_name": "Acme Analytics",
            "email": "contacto@acme.com",
            "phone": "+57 300 1234567",
            "num_of_employees": 25,
            "admin_ids": ["1b9d6bcd-bbfd-4b2d-9b5d-ab8dfbbd4bed"]
        }
    })


class CompanyUpdate(BaseModel):
    """Schema para actualizar una empresa; admin_ids reemplaza el conjunto de admins"""
    company_name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    status: Optional[CompanyStatus] = None
    preferred_subscription_plan: Optional[str] = Field(None, max_length=100)
    num_of_employees: Optional[int] = Field(None, ge=0)
    has_additional_user_purchase: Optional[bool] = None

    admin_ids: Optional[List[EntityId]] = None
    admin_change_type: AdminChangeType = AdminChangeType.ADMIN_CHANGE
    admin_change_reason: Optional[str] = Field(None, max_length=500)


# =====================================================
# RESPONSE SCHEMAS
# =====================================================

class AdminSummary(BaseModel):
    id: str
    user_name: str
    email: str
    status: str

    model_config = ConfigDict(from_attributes=True)


class CompanyResponse(BaseModel):
    """Representación canónica de una empresa"""
    id: str
    company_name: str
    email: str
    address: Optional[str] = None
    phone: Optional[str] = None
    status: str
    date_joined: datetime
    last_activity: Optional[datetime] = None
    preferred_subscription_plan: Optional[str] = None
    num_of_employees: int
    has_additional_user_purchase: bool
    modified_by: Optional[str] = None
    admins: List[AdminSummary] = []
    user_count: int = 0
    report_count: int = 0


class AdminHistoryResponse(BaseModel):
    id: str
    company_id: str
    previous_admin_id: Optional[str] = None
    previous_admin_name: Optional[str] = None
    previous_admin_email: Optional[str] = None
    new_admin_id: Optional[str] = None
    new_admin_name: Optional[str] = None
    new_admin_email: Optional[str] = None
    change_type: str
    change_reason: Optional[str] = None
    changed_by: str
    change_date: datetime

    model_config = ConfigDict(from_attributes=True)
