from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class TaxRuleBase(BaseModel):
    province: str = Field(..., min_length=1, max_length=100, description="Jurisdicción (ej. 'ON', 'Quebec')")
    percentage: Decimal = Field(..., ge=0, le=100, description="Porcentaje del impuesto (ej. 13 para 13%)")
    is_active: bool = True

    @field_validator('province')
    @classmethod
    def strip_province(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('La provincia no puede estar vacía')
        return v


class TaxRuleCreate(TaxRuleBase):
    """Esquema para crear una regla de impuesto"""
    pass


class TaxRuleUpdate(BaseModel):
    """Esquema para actualizar una regla de impuesto"""
    province: Optional[str] = Field(None, min_length=1, max_length=100)
    percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class TaxRuleOut(TaxRuleBase):
    id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TaxRuleList(BaseModel):
    tax_rules: List[TaxRuleOut]
    total: int


class InvoiceTotals(BaseModel):
    """Resultado del cálculo de totales de una factura"""
    line_totals: List[Decimal]
    subtotal: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal
