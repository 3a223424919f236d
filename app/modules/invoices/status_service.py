"""
Motor de estados de factura

Cambios manuales de estado, historial, umbral DUE_SOON y el barrido
automático que recalcula DUE_SOON / OVERDUE según la fecha de vencimiento.
"""
from datetime import datetime, timedelta
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional, Dict
from uuid import UUID
import logging
import math

from app.core.config import settings
from app.common.clock import Clock, system_clock, ensure_utc
from app.modules.invoices.crud import InvoiceCrud, SystemConfigCrud
from app.modules.invoices.models import Invoice, InvoiceStatus, InvoiceStatusHistory
from app.modules.invoices.schemas import StatusSweepResult
from app.modules.invoices.sweep_guard import get_sweep_guard

logger = logging.getLogger(__name__)

DUE_SOON_THRESHOLD_KEY = "DUE_SOON_THRESHOLD_DAYS"

DEFAULT_STATUS_REASONS = {
    InvoiceStatus.PAID: "Payment received",
    InvoiceStatus.UNPAID: "Status reset to unpaid",
    InvoiceStatus.DUE_SOON: "Automatically marked as due soon based on due date",
    InvoiceStatus.OVERDUE: "Automatically marked as overdue - past due date",
}


def evaluate_due_status(current: InvoiceStatus, due_date: datetime, now: datetime,
                        due_soon_cutoff: datetime) -> Optional[InvoiceStatus]:
    """
    Estado al que debe pasar una factura candidata, o None si no cambia.

    OVERDUE tiene prioridad sobre DUE_SOON.
    """
    due_date = ensure_utc(due_date)
    if due_date < now and current != InvoiceStatus.OVERDUE:
        return InvoiceStatus.OVERDUE
    if now <= due_date <= due_soon_cutoff and current == InvoiceStatus.UNPAID:
        return InvoiceStatus.DUE_SOON
    return None


class InvoiceStatusService:
    def __init__(self, crud: InvoiceCrud, config_crud: SystemConfigCrud,
                 clock: Clock = system_clock, sweep_guard=None):
        self.crud = crud
        self.config_crud = config_crud
        self.clock = clock
        # Resolved on the first sweep
        self.sweep_guard = sweep_guard

    def _get_invoice_or_404(self, invoice_id: UUID) -> Invoice:
        invoice = self.crud.get_by_id(invoice_id)
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )
        return invoice

    def update_status(self, invoice_id: UUID, new_status: InvoiceStatus,
                      user_id: Optional[UUID] = None, reason: Optional[str] = None) -> Invoice:
        """
        Cambiar el estado de una factura y registrar el historial

        Si el estado nuevo es igual al actual no se escribe nada.

        Args:
            invoice_id: factura a modificar
            new_status: estado destino
            user_id: usuario que hace el cambio (None = sistema)
            reason: motivo; si se omite se usa el motivo por defecto del estado
        """
        invoice = self._get_invoice_or_404(invoice_id)
        new_status = InvoiceStatus(new_status)

        if invoice.status == new_status:
            return self.crud.get_detail(invoice_id)

        previous_status = invoice.status
        try:
            invoice.status = new_status
            self.crud.add_status_history(
                invoice_id=invoice.id,
                status=new_status,
                changed_by_id=user_id,
                reason=reason or DEFAULT_STATUS_REASONS[new_status],
                created_at=self.clock.now()
            )
            self.crud.commit()
        except Exception as e:
            self.crud.rollback()
            logger.error(f"Error updating status of invoice {invoice_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating invoice status: {str(e)}"
            )

        logger.info(f"Invoice {invoice_id} status changed from {previous_status.value} to {new_status.value}")
        return self.crud.get_detail(invoice_id)

    def mark_as_paid(self, invoice_id: UUID, user_id: Optional[UUID] = None,
                     reason: Optional[str] = None) -> Invoice:
        return self.update_status(invoice_id, InvoiceStatus.PAID, user_id, reason or "Payment received")

    def mark_as_unpaid(self, invoice_id: UUID, user_id: Optional[UUID] = None,
                       reason: Optional[str] = None) -> Invoice:
        return self.update_status(invoice_id, InvoiceStatus.UNPAID, user_id, reason or "Payment reversed or cancelled")

    def get_due_soon_threshold(self) -> int:
        """Días del umbral DUE_SOON; valor por defecto si no existe o no es un entero positivo"""
        default_days = settings.DUE_SOON_THRESHOLD_DAYS_DEFAULT
        config = self.config_crud.get(DUE_SOON_THRESHOLD_KEY)
        if not config:
            return default_days

        try:
            days = int(str(config.value).strip())
        except ValueError:
            logger.warning(f"Invalid {DUE_SOON_THRESHOLD_KEY} value '{config.value}', using default {default_days}")
            return default_days

        if days < 1:
            logger.warning(f"Non-positive {DUE_SOON_THRESHOLD_KEY} value '{config.value}', using default {default_days}")
            return default_days
        return days

    def set_due_soon_threshold(self, days: int, user_id: Optional[UUID] = None) -> int:
        try:
            self.config_crud.upsert(
                key=DUE_SOON_THRESHOLD_KEY,
                value=str(days),
                description="Number of days before due date to mark invoice as DUE_SOON",
                updated_by_id=user_id
            )
            self.config_crud.commit()
        except Exception as e:
            self.config_crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating due soon threshold: {str(e)}"
            )

        logger.info(f"Due soon threshold set to {days} days")
        return days

    def run_automated_status_update(self) -> StatusSweepResult:
        """
        Barrido automático de estados (Celery beat cada hora o bajo demanda)

        Solo una pasada a la vez; si otra tiene el candado se omite.
        """
        if self.sweep_guard is None:
            self.sweep_guard = get_sweep_guard()

        with self.sweep_guard.hold() as acquired:
            if not acquired:
                logger.warning("Automated status update already running, skipping")
                return StatusSweepResult(skipped=True, ran_at=self.clock.now())
            return self._sweep()

    def _sweep(self) -> StatusSweepResult:
        logger.info("Running automated invoice status update...")

        threshold_days = self.get_due_soon_threshold()
        now = self.clock.now()
        due_soon_cutoff = now + timedelta(days=threshold_days)

        candidates = [
            (invoice.id, invoice.status, invoice.due_date)
            for invoice in self.crud.list_sweep_candidates()
        ]

        updated = 0
        failed = 0
        for invoice_id, current_status, due_date in candidates:
            try:
                new_status = evaluate_due_status(current_status, due_date, now, due_soon_cutoff)
                if new_status is None:
                    continue

                self.update_status(
                    invoice_id,
                    new_status,
                    None,
                    f"Automatically updated based on due date: {ensure_utc(due_date):%a %b %d %Y}"
                )
                updated += 1
            except Exception as e:
                # One bad invoice must not abort the pass
                self.crud.rollback()
                failed += 1
                logger.error(f"Failed to update status for invoice {invoice_id}: {e}")

        logger.info(
            f"Automated status update completed: {updated} updated, "
            f"{failed} failed, {len(candidates)} checked (threshold {threshold_days} days)"
        )
        return StatusSweepResult(updated=updated, checked=len(candidates), failed=failed, ran_at=now)

    def get_status_stats(self) -> Dict[str, int]:
        stats = {invoice_status.value: 0 for invoice_status in InvoiceStatus}
        for invoice_status, count in self.crud.count_by_status().items():
            stats[InvoiceStatus(invoice_status).value] = count
        return stats

    def get_urgent_invoices(self) -> List[Invoice]:
        return self.crud.list_urgent()

    def get_invoices_by_status(self, invoice_status: InvoiceStatus, page: int = 1,
                               limit: int = settings.DEFAULT_PAGE_SIZE) -> dict:
        page = max(page, 1)
        invoices, total = self.crud.list_by_status(invoice_status, (page - 1) * limit, limit)
        return {
            "invoices": invoices,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0
        }

    def get_invoice_status_history(self, invoice_id: UUID) -> List[InvoiceStatusHistory]:
        self._get_invoice_or_404(invoice_id)
        return self.crud.get_status_history(invoice_id)


def build_status_service(db: Session, clock: Clock = system_clock) -> InvoiceStatusService:
    return InvoiceStatusService(InvoiceCrud(db), SystemConfigCrud(db), clock)
