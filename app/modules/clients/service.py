from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from typing import List
from uuid import UUID
import logging

from app.modules.clients.crud import ClientCrud
from app.modules.clients.models import Client, Branch
from app.modules.clients.schemas import ClientCreate, ClientUpdate, BranchCreate, BranchUpdate

logger = logging.getLogger(__name__)


class ClientService:
    def __init__(self, crud: ClientCrud):
        self.crud = crud

    def create_client(self, client_data: ClientCreate) -> Client:
        """Crear cliente o proveedor"""
        try:
            if self.crud.get_by_name_and_type(client_data.name, client_data.type):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Client with this name and type already exists"
                )

            client = self.crud.create(client_data.model_dump())
            self.crud.commit()
            self.crud.refresh(client)
            return client

        except HTTPException:
            raise
        except IntegrityError:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Client with this name and type already exists"
            )
        except Exception as e:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating client: {str(e)}"
            )

    def get_clients(self) -> List[Client]:
        return self.crud.get_all()

    def get_client(self, client_id: UUID) -> Client:
        client = self.crud.get_by_id(client_id)
        if not client:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )
        return client

    def get_client_branch(self, client_id: UUID, branch_id: UUID) -> Branch:
        """
        Validar que el cliente exista y que la sucursal le pertenezca

        Usado por facturación antes de crear o reasignar una factura.
        """
        self.get_client(client_id)
        branch = self.crud.get_branch(client_id, branch_id)
        if not branch:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Branch not found for this client"
            )
        return branch

    def update_client(self, client_id: UUID, client_update: ClientUpdate) -> Client:
        """Actualizar cliente validando unicidad de nombre y tipo"""
        try:
            client = self.get_client(client_id)
            changes = client_update.model_dump(exclude_unset=True, exclude_none=True)

            if "name" in changes or "type" in changes:
                duplicate = self.crud.get_by_name_and_type(
                    changes.get("name", client.name),
                    changes.get("type", client.type),
                    exclude_id=client.id
                )
                if duplicate:
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail="Client with this name and type already exists"
                    )

            for field, value in changes.items():
                setattr(client, field, value)

            self.crud.commit()
            self.crud.refresh(client)
            return client

        except HTTPException:
            raise
        except Exception as e:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating client: {str(e)}"
            )

    def delete_client(self, client_id: UUID) -> dict:
        """Eliminar cliente y sus sucursales (falla si tiene facturas)"""
        client = self.get_client(client_id)
        try:
            self.crud.delete(client)
            self.crud.commit()
            logger.info(f"Client {client_id} deleted")
            return {"message": "Client deleted successfully"}
        except Exception as e:
            self.crud.rollback()
            logger.warning(f"Client {client_id} could not be deleted: {e}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot delete client. It may be referenced by invoices."
            )

    # --- SUCURSALES ---

    def create_branch(self, client_id: UUID, branch_data: BranchCreate) -> Branch:
        try:
            self.get_client(client_id)
            if self.crud.get_branch_by_name(client_id, branch_data.name):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Branch with this name already exists for this client"
                )

            branch = self.crud.create_branch(client_id, branch_data.model_dump())
            self.crud.commit()
            self.crud.refresh(branch)
            return branch

        except HTTPException:
            raise
        except IntegrityError:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Branch with this name already exists for this client"
            )
        except Exception as e:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating branch: {str(e)}"
            )

    def get_branches(self, client_id: UUID) -> List[Branch]:
        return list(self.get_client(client_id).branches)

    def update_branch(self, client_id: UUID, branch_id: UUID, branch_update: BranchUpdate) -> Branch:
        try:
            branch = self.crud.get_branch(client_id, branch_id)
            if not branch:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Branch not found"
                )

            changes = branch_update.model_dump(exclude_unset=True, exclude_none=True)
            if "name" in changes and self.crud.get_branch_by_name(client_id, changes["name"], exclude_id=branch_id):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Branch with this name already exists for this client"
                )

            for field, value in changes.items():
                setattr(branch, field, value)

            self.crud.commit()
            self.crud.refresh(branch)
            return branch

        except HTTPException:
            raise
        except Exception as e:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating branch: {str(e)}"
            )

    def delete_branch(self, client_id: UUID, branch_id: UUID) -> dict:
        branch = self.crud.get_branch(client_id, branch_id)
        if not branch:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Branch not found"
            )
        try:
            self.crud.delete(branch)
            self.crud.commit()
            return {"message": "Branch deleted successfully"}
        except Exception as e:
            self.crud.rollback()
            logger.warning(f"Branch {branch_id} could not be deleted: {e}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot delete branch. It may be referenced by invoices."
            )
