"""
Módulo de Facturación (Invoices)

- Creación y edición de facturas con ítems y cálculo de totales
- Motor de estados: UNPAID, PAID, DUE_SOON, OVERDUE con historial
- Barrido automático de estados por fecha de vencimiento (Celery beat)
- Configuración del umbral DUE_SOON (system_config)

Roles:
- ADMIN: CRUD completo, configuración y barrido manual
- EMPLOYEE: Crear, editar y cambiar estados
- VIEWER: Solo lectura

Tablas principales:
- invoices: Facturas
- invoice_items: Ítems de factura
- invoice_status_history: Historial de cambios de estado
- invoice_sequences: Consecutivo de numeración
- system_config: Configuración clave/valor
"""

from .models import Invoice, InvoiceItem, InvoiceStatus, InvoiceStatusHistory, InvoiceSequence, SystemConfig
from .schemas import InvoiceCreate, InvoiceUpdate, InvoiceOut, InvoiceDetail
from .service import InvoiceService
from .status_service import InvoiceStatusService
from .router import invoices_router

__all__ = [
    "Invoice", "InvoiceItem", "InvoiceStatus", "InvoiceStatusHistory", "InvoiceSequence", "SystemConfig",
    "InvoiceCreate", "InvoiceUpdate", "InvoiceOut", "InvoiceDetail",
    "InvoiceService", "InvoiceStatusService",
    "invoices_router"
]
