from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Enum, Text, Uuid, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from uuid import uuid4
from app.common.mixins import BaseMixin, TimestampMixin
import enum

RECENT_HISTORY_LIMIT = 10


class InvoiceStatus(str, enum.Enum):
    UNPAID = "UNPAID"      # Estado inicial
    PAID = "PAID"          # Pagada
    DUE_SOON = "DUE_SOON"  # Vence dentro del umbral configurado
    OVERDUE = "OVERDUE"    # Fecha de vencimiento superada


class Invoice(Base, BaseMixin):
    __tablename__ = "invoices"

    invoice_number = Column(String(50), unique=True, nullable=False)

    # References
    client_id = Column(Uuid, ForeignKey("clients.id"), nullable=False, index=True)
    branch_id = Column(Uuid, ForeignKey("branches.id"), nullable=False, index=True)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.UNPAID, index=True)

    # Dates
    issue_date = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=True, index=True)

    notes = Column(Text, nullable=True)

    # Totals (calculated)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Relationships
    client = relationship("Client")
    branch = relationship("Branch")
    created_by = relationship("User")
    items = relationship("InvoiceItem", back_populates="invoice", order_by="InvoiceItem.position")
    status_history = relationship(
        "InvoiceStatusHistory",
        back_populates="invoice",
        order_by="InvoiceStatusHistory.created_at.desc()"
    )

    __table_args__ = (
        CheckConstraint("subtotal >= 0 AND tax_amount >= 0 AND total_amount >= 0", name="ck_invoice_amounts_non_negative"),
    )

    @property
    def recent_status_history(self):
        """Últimos cambios de estado (más recientes primero)"""
        return list(self.status_history[:RECENT_HISTORY_LIMIT])


class InvoiceItem(Base, BaseMixin):
    __tablename__ = "invoice_items"

    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    line_total = Column(Numeric(15, 2), nullable=False)  # quantity * unit_price

    # Relationships
    invoice = relationship("Invoice", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_invoice_item_unit_price_non_negative"),
    )


class InvoiceStatusHistory(Base):
    """Registro append-only de cambios de estado. changed_by nulo = sistema"""
    __tablename__ = "invoice_status_history"

    id = Column(Uuid, primary_key=True, default=uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=False, index=True)
    status = Column(Enum(InvoiceStatus), nullable=False)
    changed_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="status_history")
    changed_by = relationship("User")

    @property
    def invoice_number(self):
        return self.invoice.invoice_number if self.invoice else None


class InvoiceSequence(Base):
    """Contador para numeración de facturas por prefijo"""
    __tablename__ = "invoice_sequences"

    id = Column(Uuid, primary_key=True, default=uuid4)
    prefix = Column(String(10), unique=True, nullable=False)
    current_number = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class SystemConfig(Base, TimestampMixin):
    """Configuración clave -> valor (texto)"""
    __tablename__ = "system_config"

    id = Column(Uuid, primary_key=True, default=uuid4)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    updated_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
