from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from uuid import UUID
import logging
import math

from app.core.config import settings
from app.common.clock import Clock, system_clock, ensure_utc
from app.modules.clients.service import ClientService
from app.modules.invoices.crud import InvoiceCrud
from app.modules.invoices.models import Invoice, InvoiceStatus
from app.modules.invoices.schemas import InvoiceCreate, InvoiceUpdate, InvoiceFilters
from app.modules.taxes.calculator import calculate_invoice_totals
from app.modules.taxes.service import TaxRuleService

logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Orquestador del ciclo de vida de la factura

    Valida cliente/sucursal/regla de impuesto, calcula totales y siembra el
    historial de estados al crear. El estado solo cambia vía InvoiceStatusService.
    """

    def __init__(self, crud: InvoiceCrud, client_service: ClientService,
                 tax_service: TaxRuleService, clock: Clock = system_clock):
        self.crud = crud
        self.client_service = client_service
        self.tax_service = tax_service
        self.clock = clock

    def create_invoice(self, invoice_data: InvoiceCreate, user_id: UUID) -> Invoice:
        """Crear factura con sus ítems y el primer registro de historial (UNPAID)"""
        branch = self.client_service.get_client_branch(invoice_data.client_id, invoice_data.branch_id)
        tax_rule = self.tax_service.resolve_for_invoice(invoice_data.tax_rule_id, branch.province)
        totals = calculate_invoice_totals(invoice_data.items, tax_rule.percentage)

        now = self.clock.now()
        try:
            invoice_number = self.crud.next_invoice_number(settings.INVOICE_NUMBER_PREFIX)
            invoice = self.crud.create({
                "invoice_number": invoice_number,
                "client_id": invoice_data.client_id,
                "branch_id": invoice_data.branch_id,
                "created_by_id": user_id,
                "status": InvoiceStatus.UNPAID,
                "issue_date": ensure_utc(invoice_data.issue_date) or now,
                "due_date": ensure_utc(invoice_data.due_date),
                "notes": invoice_data.notes,
                "subtotal": totals.subtotal,
                "tax_amount": totals.tax_amount,
                "total_amount": totals.total_amount,
                "created_at": now,
            })
            invoice_id = invoice.id

            self.crud.add_items(invoice_id, invoice_data.items, totals.line_totals)
            self.crud.add_status_history(
                invoice_id=invoice_id,
                status=InvoiceStatus.UNPAID,
                changed_by_id=user_id,
                reason="Invoice created",
                created_at=now
            )
            self.crud.commit()

        except IntegrityError as e:
            self.crud.rollback()
            logger.error(f"Integrity error creating invoice: {e}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Invoice could not be created due to a conflicting record, please retry"
            )
        except Exception as e:
            self.crud.rollback()
            logger.error(f"Error creating invoice: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating invoice: {str(e)}"
            )

        logger.info(f"Invoice {invoice_number} created: total {totals.total_amount} ({tax_rule.province} {tax_rule.percentage}%)")
        return self.crud.get_detail(invoice_id)

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        invoice = self.crud.get_detail(invoice_id)
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )
        return invoice

    def list_invoices(self, filters: InvoiceFilters, page: int = 1,
                      limit: int = settings.DEFAULT_PAGE_SIZE) -> dict:
        """Listar facturas (más recientes primero) con filtros y paginación"""
        page = max(page, 1)
        filters = filters.model_copy(update={
            "start_date": ensure_utc(filters.start_date),
            "end_date": ensure_utc(filters.end_date),
        })
        invoices, total = self.crud.list_invoices(filters, (page - 1) * limit, limit)
        return {
            "invoices": invoices,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if limit else 0
        }

    def update_invoice(self, invoice_id: UUID, invoice_update: InvoiceUpdate) -> Invoice:
        """
        Actualizar factura

        Si cambia el cliente o la sucursal se valida la relación de nuevo. Los
        totales se recalculan solo si vienen items o tax_rule_id; en otro caso
        se conservan tal cual. No modifica el estado ni el historial.
        """
        invoice = self.crud.get_by_id(invoice_id)
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )

        try:
            client_id = invoice_update.client_id or invoice.client_id
            branch_id = invoice_update.branch_id or invoice.branch_id
            relationship_changed = invoice_update.client_id is not None or invoice_update.branch_id is not None
            if relationship_changed:
                branch = self.client_service.get_client_branch(client_id, branch_id)
            else:
                branch = invoice.branch

            recompute = invoice_update.items is not None or invoice_update.tax_rule_id is not None
            if recompute:
                tax_rule = self.tax_service.resolve_for_invoice(invoice_update.tax_rule_id, branch.province)
                items = invoice_update.items if invoice_update.items is not None else invoice.items
                totals = calculate_invoice_totals(items, tax_rule.percentage)

                if invoice_update.items is not None:
                    self.crud.replace_items(invoice, invoice_update.items, totals.line_totals)

                invoice.subtotal = totals.subtotal
                invoice.tax_amount = totals.tax_amount
                invoice.total_amount = totals.total_amount

            if relationship_changed:
                invoice.client_id = client_id
                invoice.branch_id = branch_id

            fields_set = invoice_update.model_fields_set
            if "notes" in fields_set:
                invoice.notes = invoice_update.notes
            if invoice_update.issue_date is not None:
                invoice.issue_date = ensure_utc(invoice_update.issue_date)
            if "due_date" in fields_set:
                # An explicit null clears the due date
                invoice.due_date = ensure_utc(invoice_update.due_date)

            self.crud.commit()

        except HTTPException:
            self.crud.rollback()
            raise
        except Exception as e:
            self.crud.rollback()
            logger.error(f"Error updating invoice {invoice_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating invoice: {str(e)}"
            )

        logger.info(f"Invoice {invoice_id} updated (totals recomputed: {recompute})")
        return self.crud.get_detail(invoice_id)

    def remove_invoice(self, invoice_id: UUID) -> dict:
        """Eliminar factura junto con su historial e ítems"""
        invoice = self.crud.get_by_id(invoice_id)
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )

        invoice_number = invoice.invoice_number
        try:
            self.crud.delete_with_dependents(invoice_id)
            self.crud.commit()
        except Exception as e:
            self.crud.rollback()
            logger.error(f"Error deleting invoice {invoice_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot delete invoice. It may be referenced by other records."
            )

        logger.info(f"Invoice {invoice_number} deleted")
        return {"message": "Invoice deleted successfully"}
