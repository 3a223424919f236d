"""
Operaciones de base de datos para clientes y sucursales
"""

from sqlalchemy.orm import Session, selectinload
from typing import List, Optional
from uuid import UUID

from app.modules.clients.models import Client, Branch, ClientType


class ClientCrud:
    """Operaciones CRUD para clientes y sus sucursales"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, client_id: UUID) -> Optional[Client]:
        return self.db.query(Client).options(
            selectinload(Client.branches)
        ).filter(Client.id == client_id).first()

    def get_all(self) -> List[Client]:
        return self.db.query(Client).options(
            selectinload(Client.branches)
        ).order_by(Client.name).all()

    def get_by_name_and_type(self, name: str, client_type: ClientType,
                             exclude_id: Optional[UUID] = None) -> Optional[Client]:
        query = self.db.query(Client).filter(Client.name == name, Client.type == client_type)
        if exclude_id:
            query = query.filter(Client.id != exclude_id)
        return query.first()

    def get_branch(self, client_id: UUID, branch_id: UUID) -> Optional[Branch]:
        """Obtener sucursal solo si pertenece al cliente"""
        return self.db.query(Branch).filter(
            Branch.id == branch_id,
            Branch.client_id == client_id
        ).first()

    def get_branch_by_name(self, client_id: UUID, name: str,
                           exclude_id: Optional[UUID] = None) -> Optional[Branch]:
        query = self.db.query(Branch).filter(Branch.client_id == client_id, Branch.name == name)
        if exclude_id:
            query = query.filter(Branch.id != exclude_id)
        return query.first()

    def create(self, data: dict) -> Client:
        client = Client(**data)
        self.db.add(client)
        self.db.flush()
        return client

    def create_branch(self, client_id: UUID, data: dict) -> Branch:
        branch = Branch(client_id=client_id, **data)
        self.db.add(branch)
        self.db.flush()
        return branch

    def delete(self, instance) -> None:
        self.db.delete(instance)
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, instance) -> None:
        self.db.refresh(instance)
