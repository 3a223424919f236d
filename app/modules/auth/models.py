from sqlalchemy import Column, String, Boolean, Enum
from app.database.database import Base
from app.common.mixins import BaseMixin
import enum


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"        # Acceso completo
    EMPLOYEE = "EMPLOYEE"  # Crea y edita facturas
    VIEWER = "VIEWER"      # Solo lectura


class User(Base, BaseMixin):
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False)
    full_name = Column(String(200), nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.VIEWER)
    is_active = Column(Boolean, default=True, nullable=False)
