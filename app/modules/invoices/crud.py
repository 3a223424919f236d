"""
Operaciones de base de datos para facturas, historial de estados y configuración
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import func, or_, case
from sqlalchemy.orm import Session, selectinload
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from app.modules.clients.models import Client, Branch
from app.modules.invoices.models import (
    Invoice, InvoiceItem, InvoiceStatus, InvoiceStatusHistory, InvoiceSequence, SystemConfig
)
from app.modules.invoices.schemas import InvoiceFilters


class InvoiceCrud:
    """Puerto de persistencia de facturas"""

    def __init__(self, db: Session):
        self.db = db

    def _detail_options(self):
        return (
            selectinload(Invoice.client),
            selectinload(Invoice.branch),
            selectinload(Invoice.created_by),
            selectinload(Invoice.items),
            selectinload(Invoice.status_history).selectinload(InvoiceStatusHistory.changed_by),
        )

    def get_by_id(self, invoice_id: UUID) -> Optional[Invoice]:
        return self.db.query(Invoice).filter(Invoice.id == invoice_id).first()

    def get_detail(self, invoice_id: UUID) -> Optional[Invoice]:
        """Factura con cliente, sucursal, creador, ítems e historial"""
        return self.db.query(Invoice).options(
            *self._detail_options()
        ).filter(Invoice.id == invoice_id).first()

    def list_invoices(self, filters: InvoiceFilters, offset: int, limit: int) -> Tuple[List[Invoice], int]:
        query = self.db.query(Invoice)

        if filters.client_id:
            query = query.filter(Invoice.client_id == filters.client_id)
        if filters.branch_id:
            query = query.filter(Invoice.branch_id == filters.branch_id)
        if filters.start_date:
            query = query.filter(Invoice.issue_date >= filters.start_date)
        if filters.end_date:
            query = query.filter(Invoice.issue_date <= filters.end_date)
        if filters.search:
            term = f"%{filters.search.strip()}%"
            query = query.outerjoin(Client, Invoice.client_id == Client.id).outerjoin(
                Branch, Invoice.branch_id == Branch.id
            ).filter(
                or_(
                    Invoice.invoice_number.ilike(term),
                    Client.name.ilike(term),
                    Branch.name.ilike(term),
                    Invoice.items.any(InvoiceItem.description.ilike(term)),
                )
            )

        total = query.count()
        invoices = query.options(
            selectinload(Invoice.client),
            selectinload(Invoice.branch),
        ).order_by(Invoice.created_at.desc()).offset(offset).limit(limit).all()
        return invoices, total

    def list_by_status(self, status: InvoiceStatus, offset: int, limit: int) -> Tuple[List[Invoice], int]:
        query = self.db.query(Invoice).filter(Invoice.status == status)
        total = query.count()
        invoices = query.options(
            selectinload(Invoice.client),
            selectinload(Invoice.branch),
        ).order_by(Invoice.created_at.desc()).offset(offset).limit(limit).all()
        return invoices, total

    def count_by_status(self) -> Dict[InvoiceStatus, int]:
        rows = self.db.query(Invoice.status, func.count(Invoice.id)).group_by(Invoice.status).all()
        return {row[0]: row[1] for row in rows}

    def list_urgent(self) -> List[Invoice]:
        """DUE_SOON y OVERDUE; primero las vencidas, luego por fecha de vencimiento"""
        overdue_first = case((Invoice.status == InvoiceStatus.OVERDUE, 0), else_=1)
        return self.db.query(Invoice).options(
            selectinload(Invoice.client),
            selectinload(Invoice.branch),
        ).filter(
            Invoice.status.in_([InvoiceStatus.DUE_SOON, InvoiceStatus.OVERDUE])
        ).order_by(overdue_first, Invoice.due_date.asc()).all()

    def list_sweep_candidates(self) -> List[Invoice]:
        return self.db.query(Invoice).filter(
            Invoice.status.in_([InvoiceStatus.UNPAID, InvoiceStatus.DUE_SOON]),
            Invoice.due_date.isnot(None)
        ).order_by(Invoice.due_date.asc()).all()

    def get_status_history(self, invoice_id: UUID) -> List[InvoiceStatusHistory]:
        return self.db.query(InvoiceStatusHistory).options(
            selectinload(InvoiceStatusHistory.changed_by),
            selectinload(InvoiceStatusHistory.invoice),
        ).filter(
            InvoiceStatusHistory.invoice_id == invoice_id
        ).order_by(InvoiceStatusHistory.created_at.desc()).all()

    def next_invoice_number(self, prefix: str) -> str:
        """Incrementar el consecutivo del prefijo bajo bloqueo de fila"""
        sequence = self.db.query(InvoiceSequence).filter(
            InvoiceSequence.prefix == prefix
        ).with_for_update().first()

        if not sequence:
            sequence = InvoiceSequence(prefix=prefix, current_number=0)
            self.db.add(sequence)

        sequence.current_number += 1
        self.db.flush()
        return f"{prefix}{sequence.current_number:06d}"

    def create(self, data: dict) -> Invoice:
        invoice = Invoice(**data)
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def add_items(self, invoice_id: UUID, items: Iterable, line_totals: List[Decimal]) -> List[InvoiceItem]:
        created = []
        for position, (item, line_total) in enumerate(zip(items, line_totals)):
            invoice_item = InvoiceItem(
                invoice_id=invoice_id,
                position=position,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=line_total
            )
            self.db.add(invoice_item)
            created.append(invoice_item)
        self.db.flush()
        return created

    def replace_items(self, invoice: Invoice, items: Iterable, line_totals: List[Decimal]) -> List[InvoiceItem]:
        """Borrar todos los ítems de la factura y crear los nuevos"""
        self.db.query(InvoiceItem).filter(
            InvoiceItem.invoice_id == invoice.id
        ).delete(synchronize_session=False)
        self.db.expire(invoice, ["items"])
        return self.add_items(invoice.id, items, line_totals)

    def add_status_history(self, invoice_id: UUID, status: InvoiceStatus, changed_by_id: Optional[UUID],
                           reason: str, created_at: datetime) -> InvoiceStatusHistory:
        entry = InvoiceStatusHistory(
            invoice_id=invoice_id,
            status=status,
            changed_by_id=changed_by_id,
            reason=reason,
            created_at=created_at
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete_with_dependents(self, invoice_id: UUID) -> None:
        """Eliminar historial, luego ítems y por último la factura"""
        self.db.query(InvoiceStatusHistory).filter(
            InvoiceStatusHistory.invoice_id == invoice_id
        ).delete(synchronize_session=False)
        self.db.query(InvoiceItem).filter(
            InvoiceItem.invoice_id == invoice_id
        ).delete(synchronize_session=False)
        self.db.query(Invoice).filter(
            Invoice.id == invoice_id
        ).delete(synchronize_session=False)
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, instance) -> None:
        self.db.refresh(instance)


class SystemConfigCrud:
    """Almacén clave -> valor de configuración del sistema"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> Optional[SystemConfig]:
        return self.db.query(SystemConfig).filter(SystemConfig.key == key).first()

    def upsert(self, key: str, value: str, description: Optional[str] = None,
               updated_by_id: Optional[UUID] = None) -> SystemConfig:
        config = self.get(key)
        if config:
            config.value = value
            config.updated_by_id = updated_by_id
            if description is not None:
                config.description = description
        else:
            config = SystemConfig(key=key, value=value, description=description, updated_by_id=updated_by_id)
            self.db.add(config)
        self.db.flush()
        return config

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
