from fastapi import APIRouter, Depends, status
from typing import List
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.clients.crud import ClientCrud
from app.modules.clients.service import ClientService
from app.modules.clients.schemas import (
    ClientCreate, ClientUpdate, ClientOut, BranchCreate, BranchUpdate, BranchOut
)

clients_router = APIRouter(prefix="/clients", tags=["Clients"])


def get_client_service(db: db_dependency) -> ClientService:
    return ClientService(ClientCrud(db))


@clients_router.post("/", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
def create_client(
    client_data: ClientCreate,
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    """
    Crear cliente o proveedor

    El par nombre + tipo debe ser único.
    """
    return service.create_client(client_data)


@clients_router.get("/", response_model=List[ClientOut])
def list_clients(
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return service.get_clients()


@clients_router.get("/{client_id}", response_model=ClientOut)
def get_client(
    client_id: UUID,
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return service.get_client(client_id)


@clients_router.put("/{client_id}", response_model=ClientOut)
def update_client(
    client_id: UUID,
    client_update: ClientUpdate,
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    return service.update_client(client_id, client_update)


@clients_router.delete("/{client_id}")
def delete_client(
    client_id: UUID,
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """
    Eliminar cliente junto con sus sucursales

    Falla con 409 si el cliente tiene facturas asociadas.
    """
    return service.delete_client(client_id)


# --- SUCURSALES ---

@clients_router.post("/{client_id}/branches", response_model=BranchOut, status_code=status.HTTP_201_CREATED)
def create_branch(
    client_id: UUID,
    branch_data: BranchCreate,
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    return service.create_branch(client_id, branch_data)


@clients_router.get("/{client_id}/branches", response_model=List[BranchOut])
def list_branches(
    client_id: UUID,
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return service.get_branches(client_id)


@clients_router.put("/{client_id}/branches/{branch_id}", response_model=BranchOut)
def update_branch(
    client_id: UUID,
    branch_id: UUID,
    branch_update: BranchUpdate,
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    return service.update_branch(client_id, branch_id, branch_update)


@clients_router.delete("/{client_id}/branches/{branch_id}")
def delete_branch(
    client_id: UUID,
    branch_id: UUID,
    service: ClientService = Depends(get_client_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    return service.delete_branch(client_id, branch_id)
