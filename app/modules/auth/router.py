from fastapi import APIRouter, Depends, status
from typing import List
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext, UserCreate, UserUpdate, UserOut
from app.modules.auth.service import UserService

users_router = APIRouter(prefix="/users", tags=["Users"])


def get_user_service(db: db_dependency) -> UserService:
    return UserService(db)


@users_router.get("/me", response_model=UserOut)
def get_current_user(
    service: UserService = Depends(get_user_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Obtener la cuenta del token actual"""
    return service.get_user(auth_context.user_id)


@users_router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    service: UserService = Depends(get_user_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """
    Crear una cuenta de usuario

    Solo administradores. El email debe ser único.
    """
    return service.create_user(user_data)


@users_router.get("/", response_model=List[UserOut])
def list_users(
    service: UserService = Depends(get_user_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    return service.get_users()


@users_router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: UUID,
    service: UserService = Depends(get_user_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    return service.get_user(user_id)


@users_router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: UUID,
    user_update: UserUpdate,
    service: UserService = Depends(get_user_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """Actualizar nombre, rol o estado (is_active) de un usuario"""
    return service.update_user(user_id, user_update)


@users_router.delete("/{user_id}")
def delete_user(
    user_id: UUID,
    service: UserService = Depends(get_user_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    return service.delete_user(user_id)
