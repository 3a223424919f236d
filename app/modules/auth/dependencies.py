"""
Dependencias de autenticación para FastAPI.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import jwt

from app.database.database import get_db
from app.modules.auth.models import User
from app.modules.auth.schemas import AuthContext
from app.core.config import settings

# Security scheme
security = HTTPBearer()

class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación (usuario y rol) desde el token JWT.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.APP_SECRET_STRING,
                algorithms=[settings.ALGORITHM]
            )
            user_id: str = payload.get("sub")
            if user_id is None:
                raise credentials_exception
            user_uuid = UUID(user_id)
        except (jwt.PyJWTError, ValueError):
            raise credentials_exception

        user = db.query(User).filter(User.id == user_uuid).first()
        if user is None or not user.is_active:
            raise credentials_exception

        return AuthContext(
            user_id=user.id,
            user_role=user.role,
            email=user.email
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if auth_context.user_role is None or auth_context.user_role.value not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Requires one of these roles: {', '.join(allowed_roles)}"
                )
            return auth_context
        return role_checker

    @staticmethod
    def require_admin():
        """Dependencia para requerir rol de administrador."""
        return AuthDependencies.require_role(["ADMIN"])

    @staticmethod
    def require_editor():
        """Dependencia para roles que pueden modificar datos."""
        return AuthDependencies.require_role(["ADMIN", "EMPLOYEE"])

    @staticmethod
    def require_any_role():
        """Dependencia que requiere cualquier rol activo."""
        return AuthDependencies.require_role(["ADMIN", "EMPLOYEE", "VIEWER"])

# Instancias de dependencias
get_auth_context = AuthDependencies.get_auth_context
require_admin = AuthDependencies.require_admin
require_editor = AuthDependencies.require_editor
require_any_role = AuthDependencies.require_any_role
