from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from uuid import UUID
from datetime import datetime
from app.modules.auth.models import UserRole


class UserSummary(BaseModel):
    """Datos mínimos del usuario para incrustar en otras respuestas"""
    id: UUID
    email: str
    full_name: str

    class Config:
        from_attributes = True


class AuthContext(BaseModel):
    user_id: UUID
    user_role: Optional[UserRole] = None
    email: Optional[str] = None


# User Schemas
class UserCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=200)
    role: UserRole = UserRole.VIEWER
    is_active: bool = True


class UserUpdate(BaseModel):
    """El email no se modifica; solo nombre, rol y estado"""
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class UserOut(BaseModel):
    id: UUID
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
