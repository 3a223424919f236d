"""
Tests para el módulo de Facturación

Tests que cubren:
- Creación con validación cliente/sucursal y resolución de impuesto
- Actualización con recálculo (o conservación) de totales
- Eliminación en cascada sin registros huérfanos
- Motor de estados: no-op, motivos por defecto, historial
- Barrido automático: corrección, idempotencia, candado single-flight
- Endpoints y permisos por rol
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from fastapi import HTTPException
from uuid import uuid4

from app.core.config import settings
from app.modules.clients.crud import ClientCrud
from app.modules.clients.models import Client, Branch, ClientType
from app.modules.clients.service import ClientService
from app.modules.invoices.crud import InvoiceCrud, SystemConfigCrud
from app.modules.invoices.models import (
    Invoice, InvoiceItem, InvoiceStatus, InvoiceStatusHistory, SystemConfig
)
from app.modules.invoices.schemas import InvoiceCreate, InvoiceUpdate, InvoiceFilters
from app.modules.invoices.service import InvoiceService
from app.modules.invoices import status_service as status_service_module
from app.modules.invoices import sweep_guard as sweep_guard_module
from app.modules.invoices.status_service import (
    InvoiceStatusService, DUE_SOON_THRESHOLD_KEY, evaluate_due_status, build_status_service
)
from app.modules.invoices.sweep_guard import LocalSweepGuard, RedisSweepGuard, get_sweep_guard
from app.modules.taxes.calculator import round_money
from app.modules.taxes.crud import TaxRuleCrud
from app.modules.taxes.models import TaxRule
from app.modules.taxes.service import TaxRuleService


# ===== FIXTURES =====

@pytest.fixture
def invoice_service(db_session, frozen_clock):
    return InvoiceService(
        InvoiceCrud(db_session),
        ClientService(ClientCrud(db_session)),
        TaxRuleService(TaxRuleCrud(db_session)),
        frozen_clock
    )


@pytest.fixture
def sweep_guard():
    return LocalSweepGuard()


@pytest.fixture
def status_service(db_session, frozen_clock, sweep_guard):
    return InvoiceStatusService(InvoiceCrud(db_session), SystemConfigCrud(db_session), frozen_clock, sweep_guard)


@pytest.fixture
def nova_scotia_rule(db_session):
    tax_rule = TaxRule(province="NS", percentage=Decimal("15.00"), is_active=True)
    db_session.add(tax_rule)
    db_session.commit()
    db_session.refresh(tax_rule)
    return tax_rule


@pytest.fixture
def other_client_branch(db_session):
    client = Client(name="Harbour Foods", type=ClientType.CLIENT, contact="ops@harbour.test")
    db_session.add(client)
    db_session.flush()
    branch = Branch(client_id=client.id, name="Pier 21", city="Halifax", province="NS")
    db_session.add(branch)
    db_session.commit()
    db_session.refresh(branch)
    return branch


@pytest.fixture
def make_invoice(invoice_service, sample_branch, sample_tax_rule, sample_user, frozen_clock):
    """Crear facturas con vencimiento relativo al 'día 0' del reloj congelado"""
    day_zero = frozen_clock.now()

    def _make(due_in_days=None, items=None, **kwargs):
        due_date = day_zero + timedelta(days=due_in_days) if due_in_days is not None else None
        data = InvoiceCreate(
            client_id=sample_branch.client_id,
            branch_id=sample_branch.id,
            due_date=due_date,
            items=items or [{"description": "Widget", "quantity": 2, "unit_price": "100.00"}],
            **kwargs
        )
        invoice = invoice_service.create_invoice(data, sample_user.id)
        frozen_clock.advance(seconds=1)
        return invoice

    return _make


def history_count(db_session, invoice_id) -> int:
    return db_session.query(InvoiceStatusHistory).filter(InvoiceStatusHistory.invoice_id == invoice_id).count()


# ===== TESTS DE CREACIÓN =====

class TestInvoiceCreate:
    """Tests para InvoiceService.create_invoice"""

    def test_create_uses_branch_province_tax(self, make_invoice, sample_user):
        invoice = make_invoice(notes="First order")

        assert invoice.invoice_number == "INV-000001"
        assert invoice.status == InvoiceStatus.UNPAID
        assert invoice.subtotal == Decimal("200.00")
        assert invoice.tax_amount == Decimal("26.00")
        assert invoice.total_amount == Decimal("226.00")
        assert invoice.notes == "First order"
        assert invoice.created_by.id == sample_user.id
        assert [item.line_total for item in invoice.items] == [Decimal("200.00")]

    def test_create_seeds_single_history_row(self, db_session, make_invoice, sample_user):
        """Test la creación registra exactamente un historial UNPAID"""
        invoice = make_invoice()

        history = invoice.recent_status_history
        assert len(history) == 1
        assert history[0].status == InvoiceStatus.UNPAID
        assert history[0].reason == "Invoice created"
        assert history[0].changed_by_id == sample_user.id
        assert history_count(db_session, invoice.id) == 1

    def test_invoice_numbers_are_sequential(self, make_invoice):
        first = make_invoice()
        second = make_invoice()

        assert first.invoice_number == "INV-000001"
        assert second.invoice_number == "INV-000002"

    def test_explicit_tax_rule_example(self, make_invoice, nova_scotia_rule):
        """Test 2 x 100 con regla del 15% -> 200 / 30 / 230"""
        invoice = make_invoice(tax_rule_id=nova_scotia_rule.id)

        assert invoice.subtotal == Decimal("200.00")
        assert invoice.tax_amount == Decimal("30.00")
        assert invoice.total_amount == Decimal("230.00")

    def test_items_keep_order(self, make_invoice):
        invoice = make_invoice(items=[
            {"description": "Labour", "quantity": "1.5", "unit_price": "80.00"},
            {"description": "Parts", "quantity": 4, "unit_price": "12.25"},
        ])

        assert [item.description for item in invoice.items] == ["Labour", "Parts"]
        assert invoice.subtotal == Decimal("169.00")
        assert invoice.total_amount == invoice.subtotal + invoice.tax_amount

    def test_branch_of_other_client(self, db_session, invoice_service, sample_client, sample_tax_rule,
                                    other_client_branch, sample_user):
        """Test sucursal que no pertenece al cliente"""
        data = InvoiceCreate(
            client_id=sample_client.id,
            branch_id=other_client_branch.id,
            items=[{"description": "Widget", "quantity": 1, "unit_price": "10"}]
        )

        with pytest.raises(HTTPException) as exc_info:
            invoice_service.create_invoice(data, sample_user.id)

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Branch not found for this client"
        assert db_session.query(Invoice).count() == 0

    def test_unknown_client(self, invoice_service, sample_branch, sample_user):
        data = InvoiceCreate(
            client_id=uuid4(),
            branch_id=sample_branch.id,
            items=[{"description": "Widget", "quantity": 1, "unit_price": "10"}]
        )

        with pytest.raises(HTTPException) as exc_info:
            invoice_service.create_invoice(data, sample_user.id)

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Client not found"

    def test_unconfigured_province(self, db_session, invoice_service, other_client_branch, sample_user):
        """Test sucursal en provincia sin regla de impuesto"""
        data = InvoiceCreate(
            client_id=other_client_branch.client_id,
            branch_id=other_client_branch.id,
            items=[{"description": "Widget", "quantity": 1, "unit_price": "10"}]
        )

        with pytest.raises(HTTPException) as exc_info:
            invoice_service.create_invoice(data, sample_user.id)

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Tax rule not found for province: NS"
        assert db_session.query(InvoiceItem).count() == 0

    def test_schema_rejects_empty_items_and_bad_amounts(self, sample_branch):
        with pytest.raises(ValueError):
            InvoiceCreate(client_id=sample_branch.client_id, branch_id=sample_branch.id, items=[])
        with pytest.raises(ValueError):
            InvoiceCreate(
                client_id=sample_branch.client_id,
                branch_id=sample_branch.id,
                items=[{"description": "Widget", "quantity": 0, "unit_price": "10"}]
            )
        with pytest.raises(ValueError):
            InvoiceCreate(
                client_id=sample_branch.client_id,
                branch_id=sample_branch.id,
                items=[{"description": "Widget", "quantity": 1, "unit_price": "-1"}]
            )

    @pytest.mark.parametrize("item", [
        {"description": "Washer", "quantity": 1, "unit_price": "0.125"},
        {"description": "Washer", "quantity": "0.0001", "unit_price": "10.00"},
    ])
    def test_schema_rejects_amounts_beyond_stored_precision(self, sample_branch, item):
        """Test precio con fracción de centavo o cantidad con más de 3 decimales"""
        with pytest.raises(ValueError):
            InvoiceCreate(client_id=sample_branch.client_id, branch_id=sample_branch.id, items=[item])

    def test_stored_items_match_their_line_totals(self, db_session, make_invoice):
        invoice = make_invoice(items=[
            {"description": "Cable", "quantity": "1.5", "unit_price": "0.99"},
            {"description": "Fuse", "quantity": "0.125", "unit_price": "3.10"},
        ])

        db_session.expire_all()
        stored = db_session.get(Invoice, invoice.id)

        assert [item.quantity for item in stored.items] == [Decimal("1.5"), Decimal("0.125")]
        for item in stored.items:
            assert item.line_total == round_money(item.quantity * item.unit_price)
        assert stored.subtotal == Decimal("1.88")
        assert stored.subtotal == sum(item.line_total for item in stored.items)

    def test_schema_accepts_naive_and_aware_dates(self, sample_branch):
        """Test fechas sin zona se comparan como UTC"""
        data = InvoiceCreate(
            client_id=sample_branch.client_id,
            branch_id=sample_branch.id,
            issue_date=datetime(2026, 3, 1),
            due_date=datetime(2026, 3, 10, tzinfo=timezone.utc),
            items=[{"description": "Widget", "quantity": 1, "unit_price": "10"}]
        )
        assert data.issue_date == datetime(2026, 3, 1)

        InvoiceUpdate(issue_date=datetime(2026, 3, 1, tzinfo=timezone.utc), due_date=datetime(2026, 3, 2))
        with pytest.raises(ValueError):
            InvoiceUpdate(issue_date=datetime(2026, 3, 10), due_date=datetime(2026, 3, 1, tzinfo=timezone.utc))


# ===== TESTS DE ACTUALIZACIÓN =====

class TestInvoiceUpdate:
    """Tests para InvoiceService.update_invoice"""

    def test_replace_items_recomputes_totals(self, db_session, invoice_service, make_invoice):
        invoice = make_invoice()

        updated = invoice_service.update_invoice(invoice.id, InvoiceUpdate(items=[
            {"description": "Gadget", "quantity": 3, "unit_price": "50.00"},
        ]))

        assert [item.description for item in updated.items] == ["Gadget"]
        assert updated.subtotal == Decimal("150.00")
        assert updated.tax_amount == Decimal("19.50")
        assert updated.total_amount == Decimal("169.50")
        assert db_session.query(InvoiceItem).filter(InvoiceItem.invoice_id == invoice.id).count() == 1

    def test_tax_rule_only_recomputes_with_existing_items(self, invoice_service, make_invoice, nova_scotia_rule):
        invoice = make_invoice()

        updated = invoice_service.update_invoice(invoice.id, InvoiceUpdate(tax_rule_id=nova_scotia_rule.id))

        assert updated.subtotal == Decimal("200.00")
        assert updated.tax_amount == Decimal("30.00")
        assert updated.total_amount == Decimal("230.00")

    def test_items_use_newly_resolved_rule(self, db_session, invoice_service, make_invoice, sample_tax_rule):
        """Test items sin tax_rule_id usan la regla vigente de la provincia"""
        invoice = make_invoice()
        sample_tax_rule.percentage = Decimal("15.00")
        db_session.commit()

        updated = invoice_service.update_invoice(invoice.id, InvoiceUpdate(items=[
            {"description": "Widget", "quantity": 2, "unit_price": "100.00"},
        ]))

        assert updated.tax_amount == Decimal("30.00")
        assert updated.total_amount == Decimal("230.00")

    def test_totals_preserved_without_items_or_tax_rule(self, db_session, invoice_service, make_invoice,
                                                        sample_tax_rule, frozen_clock):
        """Test sin items ni tax_rule_id los totales no cambian aunque cambie la tasa"""
        invoice = make_invoice()
        before = (invoice.subtotal, invoice.tax_amount, invoice.total_amount)
        sample_tax_rule.percentage = Decimal("20.00")
        db_session.commit()

        updated = invoice_service.update_invoice(invoice.id, InvoiceUpdate(
            notes="Deliver after 5pm",
            due_date=frozen_clock.now() + timedelta(days=30)
        ))

        assert (updated.subtotal, updated.tax_amount, updated.total_amount) == before
        assert updated.notes == "Deliver after 5pm"

    def test_update_does_not_touch_status_or_history(self, db_session, invoice_service, make_invoice,
                                                     frozen_clock):
        invoice = make_invoice(due_in_days=5)

        updated = invoice_service.update_invoice(invoice.id, InvoiceUpdate(
            due_date=frozen_clock.now() - timedelta(days=3)
        ))

        assert updated.status == InvoiceStatus.UNPAID
        assert history_count(db_session, invoice.id) == 1

    def test_move_to_branch_of_other_client_rejected(self, invoice_service, make_invoice, other_client_branch):
        invoice = make_invoice()

        with pytest.raises(HTTPException) as exc_info:
            invoice_service.update_invoice(invoice.id, InvoiceUpdate(branch_id=other_client_branch.id))

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Branch not found for this client"

    def test_move_to_other_client_and_branch(self, invoice_service, make_invoice, other_client_branch,
                                             nova_scotia_rule):
        invoice = make_invoice()

        updated = invoice_service.update_invoice(invoice.id, InvoiceUpdate(
            client_id=other_client_branch.client_id,
            branch_id=other_client_branch.id,
            items=[{"description": "Widget", "quantity": 2, "unit_price": "100.00"}]
        ))

        assert updated.branch_id == other_client_branch.id
        assert updated.total_amount == Decimal("230.00")

    def test_update_not_found(self, invoice_service):
        with pytest.raises(HTTPException) as exc_info:
            invoice_service.update_invoice(uuid4(), InvoiceUpdate(notes="x"))

        assert exc_info.value.status_code == 404


# ===== TESTS DE ELIMINACIÓN =====

class TestInvoiceRemove:
    """Tests para InvoiceService.remove_invoice"""

    def test_remove_leaves_no_orphans(self, db_session, invoice_service, status_service, make_invoice,
                                      frozen_clock):
        invoice = make_invoice(items=[
            {"description": "A", "quantity": 1, "unit_price": "1.00"},
            {"description": "B", "quantity": 2, "unit_price": "2.00"},
        ])
        invoice_id = invoice.id
        status_service.mark_as_paid(invoice_id)
        frozen_clock.advance(minutes=1)
        status_service.mark_as_unpaid(invoice_id)

        result = invoice_service.remove_invoice(invoice_id)

        assert result == {"message": "Invoice deleted successfully"}
        assert db_session.query(Invoice).filter(Invoice.id == invoice_id).count() == 0
        assert db_session.query(InvoiceItem).filter(InvoiceItem.invoice_id == invoice_id).count() == 0
        assert history_count(db_session, invoice_id) == 0

    def test_remove_not_found(self, invoice_service):
        with pytest.raises(HTTPException) as exc_info:
            invoice_service.remove_invoice(uuid4())

        assert exc_info.value.status_code == 404


# ===== TESTS DE CONSULTAS =====

class TestInvoiceQueries:
    """Tests para get_invoice y list_invoices"""

    def test_get_invoice_not_found(self, invoice_service):
        with pytest.raises(HTTPException) as exc_info:
            invoice_service.get_invoice(uuid4())

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Invoice not found"

    def test_list_newest_first_with_pagination(self, invoice_service, make_invoice):
        numbers = [make_invoice().invoice_number for _ in range(3)]

        page_one = invoice_service.list_invoices(InvoiceFilters(), page=1, limit=2)
        page_two = invoice_service.list_invoices(InvoiceFilters(), page=2, limit=2)

        assert page_one["total"] == 3
        assert page_one["total_pages"] == 2
        assert [i.invoice_number for i in page_one["invoices"]] == [numbers[2], numbers[1]]
        assert [i.invoice_number for i in page_two["invoices"]] == [numbers[0]]

    def test_search_by_item_description_and_client_name(self, invoice_service, make_invoice, sample_client):
        make_invoice(items=[{"description": "Copper pipe", "quantity": 1, "unit_price": "5"}])
        make_invoice(items=[{"description": "PVC elbow", "quantity": 1, "unit_price": "5"}])

        by_item = invoice_service.list_invoices(InvoiceFilters(search="copper"))
        by_client = invoice_service.list_invoices(InvoiceFilters(search=sample_client.name[:5]))

        assert by_item["total"] == 1
        assert by_client["total"] == 2

    def test_filter_by_branch(self, invoice_service, make_invoice, sample_branch):
        make_invoice()

        assert invoice_service.list_invoices(InvoiceFilters(branch_id=sample_branch.id))["total"] == 1
        assert invoice_service.list_invoices(InvoiceFilters(branch_id=uuid4()))["total"] == 0


# ===== TESTS DEL MOTOR DE ESTADOS =====

class TestInvoiceStatusService:
    """Tests para InvoiceStatusService.update_status y derivados"""

    def test_same_status_is_noop(self, db_session, status_service, make_invoice):
        """Test cambiar al estado actual no escribe historial"""
        invoice = make_invoice()

        result = status_service.update_status(invoice.id, InvoiceStatus.UNPAID, reason="again")

        assert result.status == InvoiceStatus.UNPAID
        assert history_count(db_session, invoice.id) == 1

    @pytest.mark.parametrize("new_status,expected_reason", [
        (InvoiceStatus.PAID, "Payment received"),
        (InvoiceStatus.DUE_SOON, "Automatically marked as due soon based on due date"),
        (InvoiceStatus.OVERDUE, "Automatically marked as overdue - past due date"),
    ])
    def test_change_writes_one_row_with_default_reason(self, db_session, status_service, make_invoice,
                                                       new_status, expected_reason):
        invoice = make_invoice()

        result = status_service.update_status(invoice.id, new_status)

        assert result.status == new_status
        assert history_count(db_session, invoice.id) == 2
        latest = result.recent_status_history[0]
        assert latest.status == new_status
        assert latest.reason == expected_reason
        assert latest.changed_by_id is None

    def test_reset_to_unpaid_default_reason(self, status_service, make_invoice, frozen_clock):
        invoice = make_invoice()
        status_service.update_status(invoice.id, InvoiceStatus.OVERDUE)
        frozen_clock.advance(minutes=1)

        result = status_service.update_status(invoice.id, InvoiceStatus.UNPAID)

        assert result.recent_status_history[0].reason == "Status reset to unpaid"

    def test_custom_reason_and_user(self, status_service, make_invoice, employee_user):
        invoice = make_invoice()

        result = status_service.update_status(invoice.id, "PAID", employee_user.id, "Paid by cheque #1042")

        latest = result.recent_status_history[0]
        assert latest.reason == "Paid by cheque #1042"
        assert latest.changed_by.id == employee_user.id

    def test_mark_as_paid_and_unpaid(self, status_service, make_invoice, sample_user, frozen_clock):
        invoice = make_invoice()

        paid = status_service.mark_as_paid(invoice.id, sample_user.id)
        assert paid.status == InvoiceStatus.PAID
        assert paid.recent_status_history[0].reason == "Payment received"

        frozen_clock.advance(minutes=1)
        unpaid = status_service.mark_as_unpaid(invoice.id, sample_user.id)
        assert unpaid.status == InvoiceStatus.UNPAID
        assert unpaid.recent_status_history[0].reason == "Payment reversed or cancelled"

    def test_history_failure_rolls_back_status_change(self, db_session, status_service, make_invoice,
                                                      monkeypatch):
        """Test el estado y su historial se confirman juntos o no se confirman"""
        invoice = make_invoice()
        original_add = status_service.crud.add_status_history

        def failing_add(**kwargs):
            original_add(**kwargs)
            raise RuntimeError("history insert failed")

        monkeypatch.setattr(status_service.crud, "add_status_history", failing_add)

        with pytest.raises(HTTPException) as exc_info:
            status_service.mark_as_paid(invoice.id)

        assert exc_info.value.status_code == 500
        db_session.expire_all()
        assert db_session.get(Invoice, invoice.id).status == InvoiceStatus.UNPAID
        assert history_count(db_session, invoice.id) == 1

    def test_update_status_not_found(self, status_service):
        with pytest.raises(HTTPException) as exc_info:
            status_service.update_status(uuid4(), InvoiceStatus.PAID)

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Invoice not found"

    def test_detail_keeps_last_ten_history_rows(self, status_service, make_invoice, frozen_clock):
        invoice = make_invoice()
        for _ in range(6):
            frozen_clock.advance(minutes=1)
            status_service.mark_as_paid(invoice.id)
            frozen_clock.advance(minutes=1)
            result = status_service.mark_as_unpaid(invoice.id)

        assert len(result.recent_status_history) == 10
        assert len(status_service.get_invoice_status_history(invoice.id)) == 13

    def test_status_history_newest_first(self, status_service, make_invoice, frozen_clock):
        invoice = make_invoice()
        frozen_clock.advance(minutes=1)
        status_service.mark_as_paid(invoice.id)

        history = status_service.get_invoice_status_history(invoice.id)

        assert [entry.status for entry in history] == [InvoiceStatus.PAID, InvoiceStatus.UNPAID]
        assert history[0].invoice_number == invoice.invoice_number

    def test_status_history_invoice_not_found(self, status_service):
        with pytest.raises(HTTPException) as exc_info:
            status_service.get_invoice_status_history(uuid4())

        assert exc_info.value.status_code == 404


class TestDueSoonThreshold:
    """Tests para el umbral DUE_SOON en system_config"""

    def test_default_when_missing(self, status_service):
        assert status_service.get_due_soon_threshold() == 7

    def test_set_and_get(self, db_session, status_service, sample_user):
        assert status_service.set_due_soon_threshold(3, sample_user.id) == 3
        assert status_service.get_due_soon_threshold() == 3

        status_service.set_due_soon_threshold(10)
        assert status_service.get_due_soon_threshold() == 10
        assert db_session.query(SystemConfig).count() == 1

    @pytest.mark.parametrize("stored_value", ["abc", "", "0", "-4", "2.5"])
    def test_default_when_unparseable(self, db_session, status_service, stored_value):
        db_session.add(SystemConfig(key=DUE_SOON_THRESHOLD_KEY, value=stored_value))
        db_session.commit()

        assert status_service.get_due_soon_threshold() == 7


# ===== TESTS DEL BARRIDO AUTOMÁTICO =====

class TestAutomatedStatusUpdate:
    """Tests para run_automated_status_update"""

    def test_sweep_correctness(self, db_session, status_service, make_invoice):
        """Test umbral 7: día 5 -> DUE_SOON, día -1 -> OVERDUE, día 10 sin cambio, PAID excluida"""
        due_soon = make_invoice(due_in_days=5)
        overdue = make_invoice(due_in_days=-1)
        far = make_invoice(due_in_days=10)
        paid = make_invoice(due_in_days=-1)
        no_due_date = make_invoice()
        status_service.mark_as_paid(paid.id)
        ids = {name: inv.id for name, inv in [
            ("due_soon", due_soon), ("overdue", overdue), ("far", far), ("paid", paid), ("none", no_due_date)
        ]}

        result = status_service.run_automated_status_update()

        assert result.updated == 2
        assert result.checked == 3
        assert result.failed == 0
        assert result.skipped is False

        def current(name):
            return db_session.get(Invoice, ids[name]).status

        assert current("due_soon") == InvoiceStatus.DUE_SOON
        assert current("overdue") == InvoiceStatus.OVERDUE
        assert current("far") == InvoiceStatus.UNPAID
        assert current("paid") == InvoiceStatus.PAID
        assert current("none") == InvoiceStatus.UNPAID

    def test_sweep_history_is_system_initiated(self, status_service, make_invoice):
        invoice = make_invoice(due_in_days=5)

        status_service.run_automated_status_update()

        latest = status_service.get_invoice_status_history(invoice.id)[0]
        assert latest.status == InvoiceStatus.DUE_SOON
        assert latest.changed_by_id is None
        assert latest.reason == f"Automatically updated based on due date: {invoice.due_date:%a %b %d %Y}"

    def test_sweep_is_idempotent(self, db_session, status_service, make_invoice):
        make_invoice(due_in_days=5)
        make_invoice(due_in_days=-2)
        status_service.run_automated_status_update()
        rows_after_first = db_session.query(InvoiceStatusHistory).count()

        second = status_service.run_automated_status_update()

        assert second.updated == 0
        assert db_session.query(InvoiceStatusHistory).count() == rows_after_first

    def test_due_soon_becomes_overdue_later(self, db_session, status_service, make_invoice, frozen_clock):
        invoice = make_invoice(due_in_days=5)
        status_service.run_automated_status_update()
        frozen_clock.advance(days=6)

        result = status_service.run_automated_status_update()

        assert result.updated == 1
        assert db_session.get(Invoice, invoice.id).status == InvoiceStatus.OVERDUE

    def test_due_date_on_cutoff_is_due_soon(self, db_session, status_service, make_invoice):
        invoice = make_invoice(due_in_days=7)

        status_service.run_automated_status_update()

        assert db_session.get(Invoice, invoice.id).status == InvoiceStatus.DUE_SOON

    def test_sweep_uses_configured_threshold(self, db_session, status_service, make_invoice):
        invoice = make_invoice(due_in_days=5)
        status_service.set_due_soon_threshold(3)

        result = status_service.run_automated_status_update()

        assert result.updated == 0
        assert db_session.get(Invoice, invoice.id).status == InvoiceStatus.UNPAID

    def test_manual_overdue_not_reprocessed(self, db_session, status_service, make_invoice):
        """Test facturas OVERDUE no son candidatas"""
        invoice = make_invoice(due_in_days=30)
        status_service.update_status(invoice.id, InvoiceStatus.OVERDUE)

        result = status_service.run_automated_status_update()

        assert result.checked == 0
        assert db_session.get(Invoice, invoice.id).status == InvoiceStatus.OVERDUE

    def test_skipped_while_another_sweep_holds_guard(self, db_session, status_service, sweep_guard,
                                                     make_invoice):
        invoice = make_invoice(due_in_days=-1)

        with sweep_guard.hold() as acquired:
            assert acquired
            result = status_service.run_automated_status_update()

        assert result.skipped is True
        assert result.updated == 0
        assert db_session.get(Invoice, invoice.id).status == InvoiceStatus.UNPAID

        assert status_service.run_automated_status_update().updated == 1

    def test_failure_on_one_invoice_does_not_abort(self, db_session, status_service, make_invoice,
                                                   monkeypatch):
        broken_id = make_invoice(due_in_days=-1).id
        healthy_id = make_invoice(due_in_days=-1).id
        original_update = status_service.update_status

        def flaky_update(invoice_id, *args, **kwargs):
            if invoice_id == broken_id:
                raise RuntimeError("storage hiccup")
            return original_update(invoice_id, *args, **kwargs)

        monkeypatch.setattr(status_service, "update_status", flaky_update)

        result = status_service.run_automated_status_update()

        assert result.updated == 1
        assert result.failed == 1
        assert db_session.get(Invoice, healthy_id).status == InvoiceStatus.OVERDUE
        assert db_session.get(Invoice, broken_id).status == InvoiceStatus.UNPAID

    def test_evaluate_due_status_priority(self, frozen_clock):
        now = frozen_clock.now()
        cutoff = now + timedelta(days=7)

        assert evaluate_due_status(InvoiceStatus.DUE_SOON, now - timedelta(hours=1), now, cutoff) == InvoiceStatus.OVERDUE
        assert evaluate_due_status(InvoiceStatus.UNPAID, now + timedelta(days=1), now, cutoff) == InvoiceStatus.DUE_SOON
        assert evaluate_due_status(InvoiceStatus.DUE_SOON, now + timedelta(days=1), now, cutoff) is None
        assert evaluate_due_status(InvoiceStatus.UNPAID, now + timedelta(days=8), now, cutoff) is None


class TestSweepGuardResolution:
    """Tests para la obtención del candado del barrido"""

    def test_guard_resolved_only_when_sweeping(self, db_session, frozen_clock, monkeypatch):
        resolved = []

        def tracking_guard():
            resolved.append(True)
            return LocalSweepGuard()

        monkeypatch.setattr(status_service_module, "get_sweep_guard", tracking_guard)
        service = build_status_service(db_session, frozen_clock)

        service.get_status_stats()
        service.get_due_soon_threshold()
        assert resolved == []

        assert service.run_automated_status_update().skipped is False
        service.run_automated_status_update()
        assert len(resolved) == 1

    def test_redis_guards_share_one_client(self, monkeypatch):
        monkeypatch.setattr(settings, "STATUS_SWEEP_LOCK_BACKEND", "redis")
        monkeypatch.setattr(sweep_guard_module, "_redis_client", None)

        first = get_sweep_guard()
        second = get_sweep_guard()

        assert isinstance(first, RedisSweepGuard)
        assert first.client is second.client

    def test_local_backend_returns_process_guard(self):
        assert get_sweep_guard() is get_sweep_guard()
        assert isinstance(get_sweep_guard(), LocalSweepGuard)


class TestStatusQueries:
    """Tests para estadísticas, urgentes y listado por estado"""

    def test_stats_always_include_every_status(self, status_service):
        assert status_service.get_status_stats() == {"UNPAID": 0, "PAID": 0, "DUE_SOON": 0, "OVERDUE": 0}

    def test_stats_counts(self, status_service, make_invoice):
        make_invoice()
        paid = make_invoice()
        status_service.mark_as_paid(paid.id)

        assert status_service.get_status_stats() == {"UNPAID": 1, "PAID": 1, "DUE_SOON": 0, "OVERDUE": 0}

    def test_urgent_overdue_first_then_due_date(self, status_service, make_invoice):
        due_in_six = make_invoice(due_in_days=6).invoice_number
        overdue_recent = make_invoice(due_in_days=-1).invoice_number
        due_in_two = make_invoice(due_in_days=2).invoice_number
        overdue_old = make_invoice(due_in_days=-3).invoice_number
        make_invoice(due_in_days=20)
        status_service.run_automated_status_update()

        urgent = [invoice.invoice_number for invoice in status_service.get_urgent_invoices()]

        assert urgent == [overdue_old, overdue_recent, due_in_two, due_in_six]

    def test_invoices_by_status_paginated_newest_first(self, status_service, make_invoice):
        numbers = [make_invoice().invoice_number for _ in range(3)]

        page = status_service.get_invoices_by_status(InvoiceStatus.UNPAID, page=1, limit=2)

        assert page["total"] == 3
        assert page["total_pages"] == 2
        assert [invoice.invoice_number for invoice in page["invoices"]] == [numbers[2], numbers[1]]
        assert status_service.get_invoices_by_status(InvoiceStatus.PAID)["total"] == 0


# ===== TESTS DE ENDPOINTS =====

class TestInvoiceRouter:
    """Tests de endpoints /invoices"""

    @pytest.fixture
    def invoice_payload(self, sample_branch, sample_tax_rule):
        return {
            "client_id": str(sample_branch.client_id),
            "branch_id": str(sample_branch.id),
            "notes": "Net 30",
            "items": [{"description": "Widget", "quantity": 2, "unit_price": "100.00"}],
        }

    def test_create_and_get_invoice(self, api_client, employee_headers, invoice_payload):
        response = api_client.post("/invoices/", json=invoice_payload, headers=employee_headers)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "UNPAID"
        assert Decimal(data["total_amount"]) == Decimal("226.00")
        assert len(data["items"]) == 1
        assert data["recent_status_history"][0]["reason"] == "Invoice created"

        detail = api_client.get(f"/invoices/{data['id']}", headers=employee_headers)
        assert detail.status_code == 200
        assert detail.json()["invoice_number"] == data["invoice_number"]

    def test_viewer_cannot_create(self, api_client, viewer_headers, invoice_payload):
        response = api_client.post("/invoices/", json=invoice_payload, headers=viewer_headers)

        assert response.status_code == 403

    def test_sub_cent_unit_price_rejected(self, api_client, employee_headers, invoice_payload):
        invoice_payload["items"] = [{"description": "Washer", "quantity": 1, "unit_price": "0.125"}]

        response = api_client.post("/invoices/", json=invoice_payload, headers=employee_headers)

        assert response.status_code == 422

    def test_mixed_offset_dates(self, api_client, employee_headers, invoice_payload):
        """Test fecha de emisión sin zona y vencimiento en UTC"""
        invoice_payload.update(issue_date="2026-03-01T00:00:00", due_date="2026-03-10T00:00:00Z")

        response = api_client.post("/invoices/", json=invoice_payload, headers=employee_headers)

        assert response.status_code == 201
        assert response.json()["due_date"].startswith("2026-03-10")

        invoice_payload.update(issue_date="2026-03-10T00:00:00", due_date="2026-03-01T00:00:00+00:00")
        rejected = api_client.post("/invoices/", json=invoice_payload, headers=employee_headers)

        assert rejected.status_code == 422

    def test_branch_mismatch_returns_404(self, api_client, employee_headers, invoice_payload, other_client_branch):
        invoice_payload["branch_id"] = str(other_client_branch.id)

        response = api_client.post("/invoices/", json=invoice_payload, headers=employee_headers)

        assert response.status_code == 404
        assert response.json()["detail"] == "Branch not found for this client"

    def test_status_endpoints(self, api_client, employee_headers, viewer_headers, invoice_payload):
        invoice_id = api_client.post("/invoices/", json=invoice_payload, headers=employee_headers).json()["id"]

        paid = api_client.put(f"/invoices/{invoice_id}/mark-paid", headers=employee_headers)
        assert paid.status_code == 200
        assert paid.json()["status"] == "PAID"

        overdue = api_client.put(
            f"/invoices/{invoice_id}/status",
            json={"status": "OVERDUE", "reason": "Cheque bounced"},
            headers=employee_headers
        )
        assert overdue.json()["status"] == "OVERDUE"

        history = api_client.get(f"/invoices/{invoice_id}/status-history", headers=viewer_headers)
        assert history.status_code == 200
        assert [entry["status"] for entry in history.json()] == ["OVERDUE", "PAID", "UNPAID"]
        assert history.json()[0]["reason"] == "Cheque bounced"

        stats = api_client.get("/invoices/status/stats", headers=viewer_headers).json()
        assert stats == {"UNPAID": 0, "PAID": 0, "DUE_SOON": 0, "OVERDUE": 1}

        urgent = api_client.get("/invoices/status/urgent", headers=viewer_headers).json()
        assert [invoice["id"] for invoice in urgent] == [invoice_id]

        by_status = api_client.get("/invoices/status/OVERDUE", headers=viewer_headers).json()
        assert by_status["total"] == 1

    def test_viewer_cannot_change_status(self, api_client, employee_headers, viewer_headers, invoice_payload):
        invoice_id = api_client.post("/invoices/", json=invoice_payload, headers=employee_headers).json()["id"]

        response = api_client.put(f"/invoices/{invoice_id}/mark-paid", headers=viewer_headers)

        assert response.status_code == 403

    def test_due_soon_threshold_endpoints(self, api_client, admin_headers, employee_headers):
        assert api_client.get("/invoices/config/due-soon-threshold", headers=employee_headers).json() == {"days": 7}

        assert api_client.put(
            "/invoices/config/due-soon-threshold", json={"days": 0}, headers=admin_headers
        ).status_code == 422
        assert api_client.put(
            "/invoices/config/due-soon-threshold", json={"days": 3}, headers=employee_headers
        ).status_code == 403

        response = api_client.put("/invoices/config/due-soon-threshold", json={"days": 3}, headers=admin_headers)
        assert response.status_code == 200
        assert api_client.get("/invoices/config/due-soon-threshold", headers=employee_headers).json() == {"days": 3}

    def test_update_all_trigger(self, api_client, admin_headers, employee_headers, invoice_payload):
        api_client.post("/invoices/", json=invoice_payload, headers=employee_headers)

        assert api_client.post("/invoices/status/update-all", headers=employee_headers).status_code == 403

        response = api_client.post("/invoices/status/update-all", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["skipped"] is False
        assert data["checked"] == 0

    def test_update_and_delete(self, api_client, admin_headers, employee_headers, invoice_payload):
        invoice_id = api_client.post("/invoices/", json=invoice_payload, headers=employee_headers).json()["id"]

        updated = api_client.put(
            f"/invoices/{invoice_id}",
            json={"items": [{"description": "Gadget", "quantity": 1, "unit_price": "10.00"}]},
            headers=employee_headers
        )
        assert updated.status_code == 200
        assert Decimal(updated.json()["total_amount"]) == Decimal("11.30")

        assert api_client.delete(f"/invoices/{invoice_id}", headers=employee_headers).status_code == 403
        assert api_client.delete(f"/invoices/{invoice_id}", headers=admin_headers).status_code == 200
        assert api_client.get(f"/invoices/{invoice_id}", headers=admin_headers).status_code == 404

    def test_list_invoices_with_search(self, api_client, employee_headers, invoice_payload):
        api_client.post("/invoices/", json=invoice_payload, headers=employee_headers)

        response = api_client.get("/invoices/", params={"search": "widget"}, headers=employee_headers)

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["page"] == 1
