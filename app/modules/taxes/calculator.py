"""
Helper para cálculo de totales de factura

Función pura: no consulta la base de datos. Se usa al crear una factura y
cada vez que cambian sus ítems o la regla de impuesto aplicable.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Union

from app.modules.taxes.schemas import InvoiceTotals

CENT = Decimal('0.01')

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convertir a Decimal pasando por str para no arrastrar errores de float"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(amount: Decimal) -> Decimal:
    """Redondear a 2 decimales usando ROUND_HALF_UP (redondeo comercial)"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_line_total(quantity: Number, unit_price: Number) -> Decimal:
    return round_money(to_decimal(quantity) * to_decimal(unit_price))


def calculate_tax_amount(subtotal: Decimal, tax_percentage: Number) -> Decimal:
    return round_money(subtotal * to_decimal(tax_percentage) / Decimal('100'))


def calculate_invoice_totals(items: Iterable, tax_percentage: Number) -> InvoiceTotals:
    """
    Calcular subtotal, impuesto y total de una factura

    Args:
        items: ítems con atributos (o llaves) quantity y unit_price
        tax_percentage: porcentaje de la regla de impuesto (ej. 15 para 15%)

    Returns:
        InvoiceTotals con total_amount == subtotal + tax_amount
    """
    line_totals = []
    for item in items:
        if isinstance(item, dict):
            quantity, unit_price = item['quantity'], item['unit_price']
        else:
            quantity, unit_price = item.quantity, item.unit_price
        line_totals.append(calculate_line_total(quantity, unit_price))

    subtotal = sum(line_totals, Decimal('0.00'))
    tax_amount = calculate_tax_amount(subtotal, tax_percentage)

    return InvoiceTotals(
        line_totals=line_totals,
        subtotal=subtotal,
        tax_percentage=to_decimal(tax_percentage),
        tax_amount=tax_amount,
        total_amount=subtotal + tax_amount
    )
