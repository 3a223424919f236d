from fastapi import APIRouter, Depends, status, Query
from typing import Dict, List, Optional
from uuid import UUID
from datetime import datetime

from app.core.config import settings
from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.clients.crud import ClientCrud
from app.modules.clients.service import ClientService
from app.modules.invoices.crud import InvoiceCrud
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.status_service import InvoiceStatusService, build_status_service
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceOut, InvoiceDetail, InvoiceList, InvoiceFilters,
    InvoiceStatusUpdate, InvoiceStatusReason, StatusHistoryOut,
    DueSoonThresholdUpdate, DueSoonThresholdOut, StatusSweepResult
)
from app.modules.taxes.crud import TaxRuleCrud
from app.modules.taxes.service import TaxRuleService

# Router principal del módulo de facturas
invoices_router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(db: db_dependency) -> InvoiceService:
    return InvoiceService(
        InvoiceCrud(db),
        ClientService(ClientCrud(db)),
        TaxRuleService(TaxRuleCrud(db))
    )


def get_invoice_status_service(db: db_dependency) -> InvoiceStatusService:
    return build_status_service(db)


@invoices_router.post("/", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    service: InvoiceService = Depends(get_invoice_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    """
    Crear una nueva factura

    La sucursal debe pertenecer al cliente. Si no se envía tax_rule_id se usa
    la regla de impuesto de la provincia de la sucursal. La factura inicia en UNPAID.
    """
    return service.create_invoice(invoice_data, auth_context.user_id)


@invoices_router.get("/", response_model=InvoiceList)
def list_invoices(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    search: Optional[str] = Query(None, description="Buscar por número, cliente, sucursal o ítems"),
    start_date: Optional[datetime] = Query(None, description="Fecha de emisión desde"),
    end_date: Optional[datetime] = Query(None, description="Fecha de emisión hasta"),
    client_id: Optional[UUID] = Query(None, description="Filtrar por cliente"),
    branch_id: Optional[UUID] = Query(None, description="Filtrar por sucursal"),
    service: InvoiceService = Depends(get_invoice_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Listar facturas con filtros

    Ordenadas de la más reciente a la más antigua.
    """
    filters = InvoiceFilters(
        search=search,
        start_date=start_date,
        end_date=end_date,
        client_id=client_id,
        branch_id=branch_id
    )
    return service.list_invoices(filters, page, limit)


# ===== Status endpoints (declared before /{invoice_id}) =====

@invoices_router.get("/status/stats", response_model=Dict[str, int])
def get_status_stats(
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Cantidad de facturas por estado (siempre incluye los cuatro estados)"""
    return service.get_status_stats()


@invoices_router.get("/status/urgent", response_model=List[InvoiceOut])
def get_urgent_invoices(
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Facturas DUE_SOON y OVERDUE, primero las vencidas"""
    return service.get_urgent_invoices()


@invoices_router.post("/status/update-all", response_model=StatusSweepResult)
def run_status_update(
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """
    Ejecutar el barrido automático de estados bajo demanda

    Si ya hay un barrido en curso la respuesta trae skipped=true.
    """
    return service.run_automated_status_update()


@invoices_router.get("/status/{invoice_status}", response_model=InvoiceList)
def get_invoices_by_status(
    invoice_status: InvoiceStatus,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return service.get_invoices_by_status(invoice_status, page, limit)


@invoices_router.get("/config/due-soon-threshold", response_model=DueSoonThresholdOut)
def get_due_soon_threshold(
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return {"days": service.get_due_soon_threshold()}


@invoices_router.put("/config/due-soon-threshold", response_model=DueSoonThresholdOut)
def set_due_soon_threshold(
    threshold: DueSoonThresholdUpdate,
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """
    Configurar los días antes del vencimiento para marcar una factura DUE_SOON

    Solo administradores. Aplica a partir del siguiente barrido.
    """
    return {"days": service.set_due_soon_threshold(threshold.days, auth_context.user_id)}


# ===== Single invoice endpoints =====

@invoices_router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    service: InvoiceService = Depends(get_invoice_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Obtener la factura con ítems y los últimos 10 cambios de estado"""
    return service.get_invoice(invoice_id)


@invoices_router.put("/{invoice_id}", response_model=InvoiceDetail)
def update_invoice(
    invoice_id: UUID,
    invoice_update: InvoiceUpdate,
    service: InvoiceService = Depends(get_invoice_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    """
    Actualizar una factura

    Enviar items reemplaza todos los ítems. Los totales se recalculan solo
    cuando vienen items o tax_rule_id. El estado no se modifica aquí.
    """
    return service.update_invoice(invoice_id, invoice_update)


@invoices_router.delete("/{invoice_id}")
def delete_invoice(
    invoice_id: UUID,
    service: InvoiceService = Depends(get_invoice_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """Eliminar una factura con sus ítems e historial"""
    return service.remove_invoice(invoice_id)


@invoices_router.put("/{invoice_id}/status", response_model=InvoiceDetail)
def update_invoice_status(
    invoice_id: UUID,
    status_update: InvoiceStatusUpdate,
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    """
    Cambiar el estado de una factura

    Si el estado es igual al actual no se registra historial.
    """
    return service.update_status(invoice_id, status_update.status, auth_context.user_id, status_update.reason)


@invoices_router.put("/{invoice_id}/mark-paid", response_model=InvoiceDetail)
def mark_invoice_paid(
    invoice_id: UUID,
    body: Optional[InvoiceStatusReason] = None,
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    return service.mark_as_paid(invoice_id, auth_context.user_id, body.reason if body else None)


@invoices_router.put("/{invoice_id}/mark-unpaid", response_model=InvoiceDetail)
def mark_invoice_unpaid(
    invoice_id: UUID,
    body: Optional[InvoiceStatusReason] = None,
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_editor())
):
    return service.mark_as_unpaid(invoice_id, auth_context.user_id, body.reason if body else None)


@invoices_router.get("/{invoice_id}/status-history", response_model=List[StatusHistoryOut])
def get_invoice_status_history(
    invoice_id: UUID,
    service: InvoiceStatusService = Depends(get_invoice_status_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Historial completo de estados, del más reciente al más antiguo"""
    return service.get_invoice_status_history(invoice_id)
