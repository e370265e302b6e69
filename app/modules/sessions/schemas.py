# app/modules/sessions/schemas.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime


class SessionStop(BaseModel):
    """Cierre de sesión: tiempo activo medido por el cliente en milisegundos"""
    active_time_ms: int = Field(..., ge=0)


class SessionResponse(BaseModel):
    id: str
    user_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    total_active_time: int
    total_inactive_time: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class MySessionResponse(BaseModel):
    active: bool
    session: Optional[SessionResponse] = None


class ActiveCountResponse(BaseModel):
    active_users: int


class StaleSessionsResponse(BaseModel):
    closed_sessions: int
    cutoff: datetime


class TotalActiveTimeResponse(BaseModel):
    total_active_time: int
    total_inactive_time: int
