from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.modules.clients.models import ClientType


# Branch Schemas
class BranchBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    province: str = Field(..., min_length=1, max_length=100, description="Provincia, define la regla de impuesto")


class BranchCreate(BranchBase):
    pass


class BranchUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    province: Optional[str] = Field(None, min_length=1, max_length=100)


class BranchOut(BranchBase):
    id: UUID
    client_id: UUID
    created_at: datetime

    class Config:
        from_attributes = True


# Client Schemas
class ClientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: ClientType = ClientType.CLIENT
    contact: str = Field(..., min_length=1, max_length=200)


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[ClientType] = None
    contact: Optional[str] = Field(None, min_length=1, max_length=200)


class ClientSummary(BaseModel):
    id: UUID
    name: str
    type: ClientType

    class Config:
        from_attributes = True


class ClientOut(ClientBase):
    id: UUID
    created_at: datetime
    branches: List[BranchOut] = []

    class Config:
        from_attributes = True
