# app/modules/users/schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum

from app.shared.schemas.common import EntityId


class UserRole(str, Enum):
    """Roles interactivos (el rol system no tiene cuenta de usuario)"""
    SUPER_ADMIN = "superAdmin"
    ADMIN = "admin"
    USER = "user"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class UserSort(str, Enum):
    USER_NAME = "user_name"
    EMAIL = "email"
    DATE_CREATED = "date_created"


class UserCreate(BaseModel):
    """Schema para crear usuario; role=user requiere company_id"""
    user_name: str = Field(..., min_length=3, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    role: UserRole = UserRole.USER
    company_id: Optional[EntityId] = None
    status: UserStatus = UserStatus.ACTIVE

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "user_name": "maria.garcia",
            "email": "maria@acme.com",
            "password": "segura12345",
            "role": "user",
            "company_id": "1b9d6bcd-bbfd-4b2d-9b5d-ab8dfbbd4bed"
        }
    })


class UserUpdate(BaseModel):
    """Patch de usuario; el rol no se cambia por esta vía"""
    user_name: Optional[str] = Field(None, min_length=3, max_length=255)
    email: Optional[EmailStr] = None
    status: Optional[UserStatus] = None
    company_id: Optional[EntityId] = None


class UserResponse(BaseModel):
    id: str
    user_name: str
    email: str
    role: str
    status: str
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    date_created: datetime
    last_login: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    modified_by: Optional[str] = None
    report_count: int = 0

    model_config = ConfigDict(from_attributes=True)
