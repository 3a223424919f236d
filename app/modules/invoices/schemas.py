from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import datetime
from app.common.clock import ensure_utc
from app.modules.invoices.models import InvoiceStatus
from app.modules.auth.schemas import UserSummary
from app.modules.clients.schemas import ClientSummary, BranchOut


# Invoice Item Schemas
class InvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(..., gt=0, max_digits=12, decimal_places=3, description="Cantidad debe ser mayor a 0, hasta 3 decimales")
    unit_price: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2, description="Precio unitario sin impuestos, en centavos exactos")


class InvoiceItemOut(BaseModel):
    id: UUID
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


# Invoice Schemas
class InvoiceCreate(BaseModel):
    client_id: UUID
    branch_id: UUID  # Debe pertenecer al cliente
    tax_rule_id: Optional[UUID] = Field(None, description="Si se omite se usa la regla de la provincia de la sucursal")
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[InvoiceItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")

    @model_validator(mode='after')
    def validate_due_date(self):
        # Naive datetimes are taken as UTC
        if self.due_date and self.issue_date and ensure_utc(self.due_date) < ensure_utc(self.issue_date):
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


class InvoiceUpdate(BaseModel):
    """
    Comando de actualización: solo los campos enviados se aplican.

    items reemplaza el conjunto completo de ítems. El estado no se modifica
    aquí, usar los endpoints de estado.
    """
    client_id: Optional[UUID] = None
    branch_id: Optional[UUID] = None
    tax_rule_id: Optional[UUID] = None
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    items: Optional[List[InvoiceItemCreate]] = None

    @field_validator('items')
    @classmethod
    def validate_items(cls, v):
        if v is not None and not v:
            raise ValueError('Debe incluir al menos un item en la factura')
        return v

    @model_validator(mode='after')
    def validate_due_date(self):
        # Naive datetimes are taken as UTC
        if self.due_date and self.issue_date and ensure_utc(self.due_date) < ensure_utc(self.issue_date):
            raise ValueError('La fecha de vencimiento no puede ser anterior a la fecha de emisión')
        return self


class StatusHistoryOut(BaseModel):
    id: UUID
    invoice_id: UUID
    invoice_number: Optional[str] = None
    status: InvoiceStatus
    reason: str
    changed_by_id: Optional[UUID] = None  # None = cambio automático
    changed_by: Optional[UserSummary] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InvoiceOut(BaseModel):
    id: UUID
    invoice_number: str
    status: InvoiceStatus
    issue_date: datetime
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    client_id: UUID
    branch_id: UUID
    created_by_id: UUID
    client: Optional[ClientSummary] = None
    branch: Optional[BranchOut] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut):
    """Factura con ítems, creador y los últimos cambios de estado"""
    created_by: Optional[UserSummary] = None
    items: List[InvoiceItemOut] = []
    recent_status_history: List[StatusHistoryOut] = []

    class Config:
        from_attributes = True


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    page: int
    limit: int
    total_pages: int


class InvoiceFilters(BaseModel):
    """Filtros para búsqueda de facturas"""
    search: Optional[str] = Field(None, description="Buscar en número, cliente, sucursal o descripción de ítems")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    client_id: Optional[UUID] = None
    branch_id: Optional[UUID] = None


# Status Schemas
class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus
    reason: Optional[str] = Field(None, max_length=500)


class InvoiceStatusReason(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class DueSoonThresholdUpdate(BaseModel):
    days: int = Field(..., ge=1, description="Días antes del vencimiento para marcar DUE_SOON")


class DueSoonThresholdOut(BaseModel):
    days: int


class StatusSweepResult(BaseModel):
    """Resultado de una ejecución del barrido automático de estados"""
    updated: int = 0
    checked: int = 0
    failed: int = 0
    skipped: bool = False  # Otra ejecución tenía el candado
    ran_at: datetime


StatusStats = Dict[str, int]
