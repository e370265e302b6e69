from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import List, Optional
from datetime import datetime


class UserLogin(BaseModel):
    """Schema para login de usuario"""
    email: EmailStr = Field(..., description="Email del usuario")
    password: str = Field(..., min_length=1, description="Contraseña del usuario")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "email": "admin@acme.com",
            "password": "admin12345"
        }
    })


class UserResponse(BaseModel):
    """Schema para respuesta de usuario autenticado"""
    id: str
    user_name: str
    email: str
    role: str
    status: str
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    # Empresas administradas (solo admin)
    company_ids: List[str] = []
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    """Schema para respuesta de token"""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class ChangePasswordRequest(BaseModel):
    """Schema para cambio de contraseña"""
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=72)
    confirm_password: str = Field(..., min_length=8, max_length=72)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Las contraseñas no coinciden")
        return self
