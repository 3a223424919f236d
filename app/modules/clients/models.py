from sqlalchemy import Column, String, Enum, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from app.database.database import Base
from app.common.mixins import BaseMixin
import enum


class ClientType(str, enum.Enum):
    CLIENT = "CLIENT"  # Clientes a los que se factura
    VENDOR = "VENDOR"  # Proveedores


class Client(Base, BaseMixin):
    __tablename__ = "clients"

    name = Column(String(200), nullable=False)
    type = Column(Enum(ClientType), nullable=False, default=ClientType.CLIENT)
    contact = Column(String(200), nullable=False)

    # Relationships
    branches = relationship("Branch", back_populates="client", cascade="all, delete-orphan",
                            order_by="Branch.name")

    __table_args__ = (
        UniqueConstraint("name", "type", name="uq_client_name_type"),
    )


class Branch(Base, BaseMixin):
    __tablename__ = "branches"

    client_id = Column(Uuid, ForeignKey("clients.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    city = Column(String(100), nullable=False)
    # Jurisdicción usada para resolver la regla de impuesto
    province = Column(String(100), nullable=False)

    # Relationships
    client = relationship("Client", back_populates="branches")

    __table_args__ = (
        UniqueConstraint("client_id", "name", name="uq_branch_client_name"),
    )
