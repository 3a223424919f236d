from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from app.modules.auth.models import User
from app.modules.auth.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class UserService:
    """
    Gestión de cuentas de usuario (solo administradores)

    No maneja contraseñas: el acceso es por token emitido a la cuenta.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_user(self, user_data: UserCreate) -> User:
        """Crear usuario; el email debe ser único"""
        try:
            existing = self.db.query(User).filter(User.email == user_data.email).first()
            if existing:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Email already exists"
                )

            user = User(**user_data.model_dump())
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)

            logger.info(f"User {user.email} created with role {user.role.value}")
            return user

        except HTTPException:
            raise
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email already exists"
            )
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating user: {str(e)}"
            )

    def get_users(self) -> List[User]:
        return self.db.query(User).order_by(User.email).all()

    def get_user(self, user_id: UUID) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )
        return user

    def update_user(self, user_id: UUID, user_update: UserUpdate) -> User:
        """Actualizar nombre, rol o estado de la cuenta"""
        user = self.get_user(user_id)
        try:
            for field, value in user_update.model_dump(exclude_unset=True, exclude_none=True).items():
                setattr(user, field, value)

            self.db.commit()
            self.db.refresh(user)
            return user

        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating user: {str(e)}"
            )

    def delete_user(self, user_id: UUID) -> dict:
        """Eliminar usuario; falla con 409 si creó facturas o cambios de estado"""
        user = self.get_user(user_id)
        try:
            self.db.delete(user)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot delete user. It may be referenced by other records."
            )

        logger.info(f"User {user_id} deleted")
        return {"message": "User deleted"}
