"""
Tests para el módulo de Impuestos

- Cálculo de totales de factura (subtotal, impuesto, total)
- Resolución de la regla de impuesto por id o provincia
- CRUD de reglas y permisos por rol
"""

import random
import pytest
from decimal import Decimal
from fastapi import HTTPException
from uuid import uuid4

from app.modules.taxes.calculator import (
    calculate_invoice_totals, calculate_line_total, calculate_tax_amount
)
from app.modules.taxes.crud import TaxRuleCrud
from app.modules.taxes.models import TaxRule
from app.modules.taxes.schemas import TaxRuleCreate, TaxRuleUpdate
from app.modules.taxes.service import TaxRuleService, create_default_tax_rules, DEFAULT_TAX_RULES


# ===== TESTS DEL CALCULADOR =====

class TestInvoiceTotalsCalculator:
    """Tests para calculate_invoice_totals"""

    def test_two_units_at_fifteen_percent(self):
        """Test ejemplo base: 2 x 100 al 15%"""
        totals = calculate_invoice_totals([{"quantity": 2, "unit_price": 100}], 15)

        assert totals.subtotal == Decimal("200.00")
        assert totals.tax_amount == Decimal("30.00")
        assert totals.total_amount == Decimal("230.00")
        assert totals.line_totals == [Decimal("200.00")]

    def test_random_items_total_equals_subtotal_plus_tax(self):
        """Test propiedad: total == subtotal + impuesto y subtotal == suma exacta de líneas"""
        rng = random.Random(20240601)
        percentages = [Decimal("0"), Decimal("5"), Decimal("13"), Decimal("14.98"), Decimal("15"), Decimal("100")]

        for _ in range(200):
            items = [
                {
                    "quantity": rng.randint(1, 50),
                    "unit_price": Decimal(rng.randint(0, 1_000_000)) / 100,
                }
                for _ in range(rng.randint(1, 8))
            ]
            percentage = rng.choice(percentages)

            totals = calculate_invoice_totals(items, percentage)

            expected_subtotal = sum(
                (Decimal(item["quantity"]) * item["unit_price"] for item in items), Decimal("0")
            )
            assert totals.subtotal == expected_subtotal
            assert totals.total_amount == totals.subtotal + totals.tax_amount
            assert totals.tax_amount >= 0
            assert len(totals.line_totals) == len(items)

    def test_accepts_objects_with_attributes(self):
        """Test ítems como objetos (ej. InvoiceItem) en lugar de dicts"""
        class Item:
            def __init__(self, quantity, unit_price):
                self.quantity = quantity
                self.unit_price = unit_price

        totals = calculate_invoice_totals([Item(Decimal("1.5"), Decimal("10.00")), Item(3, Decimal("0.99"))], 13)

        assert totals.subtotal == Decimal("17.97")
        assert totals.tax_amount == Decimal("2.34")
        assert totals.total_amount == Decimal("20.31")

    def test_rounding_is_half_up(self):
        """Test redondeo comercial a centavos"""
        assert calculate_line_total(Decimal("0.5"), Decimal("0.05")) == Decimal("0.03")
        assert calculate_tax_amount(Decimal("10.10"), 5) == Decimal("0.51")

    def test_zero_percentage(self):
        totals = calculate_invoice_totals([{"quantity": 3, "unit_price": "19.99"}], 0)

        assert totals.tax_amount == Decimal("0.00")
        assert totals.total_amount == totals.subtotal == Decimal("59.97")


# ===== TESTS DE SERVICIOS =====

class TestTaxRuleService:
    """Tests para TaxRuleService"""

    def test_create_tax_rule_success(self, db_session):
        service = TaxRuleService(TaxRuleCrud(db_session))

        tax_rule = service.create_tax_rule(TaxRuleCreate(province="BC", percentage=Decimal("12")))

        assert tax_rule.id is not None
        assert tax_rule.province == "BC"
        assert tax_rule.percentage == Decimal("12.00")
        assert tax_rule.is_active is True

    def test_create_tax_rule_duplicate_province(self, db_session, sample_tax_rule):
        """Test error al crear regla para una provincia existente"""
        service = TaxRuleService(TaxRuleCrud(db_session))

        with pytest.raises(HTTPException) as exc_info:
            service.create_tax_rule(TaxRuleCreate(province="ON", percentage=Decimal("5")))

        assert exc_info.value.status_code == 409

    def test_get_tax_rule_not_found(self, db_session):
        service = TaxRuleService(TaxRuleCrud(db_session))

        with pytest.raises(HTTPException) as exc_info:
            service.get_tax_rule(uuid4())

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Tax rule not found"

    def test_update_tax_rule_percentage(self, db_session, sample_tax_rule):
        service = TaxRuleService(TaxRuleCrud(db_session))

        updated = service.update_tax_rule(sample_tax_rule.id, TaxRuleUpdate(percentage=Decimal("15")))

        assert updated.percentage == Decimal("15.00")
        assert updated.province == "ON"

    def test_delete_tax_rule(self, db_session, sample_tax_rule):
        service = TaxRuleService(TaxRuleCrud(db_session))

        result = service.delete_tax_rule(sample_tax_rule.id)

        assert result == {"message": "Tax rule deleted"}
        assert db_session.query(TaxRule).count() == 0

    def test_resolve_by_province(self, db_session, sample_tax_rule):
        service = TaxRuleService(TaxRuleCrud(db_session))

        assert service.resolve_for_invoice(None, "ON").id == sample_tax_rule.id

    def test_resolve_explicit_id_wins_over_province(self, db_session, sample_tax_rule):
        """Test tax_rule_id explícito tiene prioridad sobre la provincia"""
        service = TaxRuleService(TaxRuleCrud(db_session))
        quebec = service.create_tax_rule(TaxRuleCreate(province="QC", percentage=Decimal("14.98")))

        assert service.resolve_for_invoice(quebec.id, "ON").id == quebec.id

    def test_resolve_unknown_province(self, db_session, sample_tax_rule):
        """Test provincia sin regla configurada"""
        service = TaxRuleService(TaxRuleCrud(db_session))

        with pytest.raises(HTTPException) as exc_info:
            service.resolve_for_invoice(None, "YT")

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Tax rule not found for province: YT"

    def test_resolve_skips_inactive_rule(self, db_session, sample_tax_rule):
        """Test regla inactiva no se usa en la búsqueda por provincia"""
        sample_tax_rule.is_active = False
        db_session.commit()
        service = TaxRuleService(TaxRuleCrud(db_session))

        with pytest.raises(HTTPException) as exc_info:
            service.resolve_for_invoice(None, "ON")

        assert exc_info.value.status_code == 404

    def test_resolve_explicit_missing_id(self, db_session):
        service = TaxRuleService(TaxRuleCrud(db_session))

        with pytest.raises(HTTPException) as exc_info:
            service.resolve_for_invoice(uuid4(), "ON")

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Tax rule not found"

    def test_create_default_tax_rules_is_idempotent(self, db_session, sample_tax_rule):
        created = create_default_tax_rules(db_session)

        assert len(created) == len(DEFAULT_TAX_RULES) - 1
        assert create_default_tax_rules(db_session) == []
        assert db_session.query(TaxRule).count() == len(DEFAULT_TAX_RULES)


# ===== TESTS DE ENDPOINTS =====

class TestTaxRuleRouter:
    """Tests de endpoints /taxes"""

    def test_list_tax_rules(self, api_client, sample_tax_rule, viewer_headers):
        response = api_client.get("/taxes/", headers=viewer_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["tax_rules"][0]["province"] == "ON"

    def test_create_requires_admin(self, api_client, viewer_headers, employee_headers):
        payload = {"province": "MB", "percentage": "12"}

        assert api_client.post("/taxes/", json=payload, headers=viewer_headers).status_code == 403
        assert api_client.post("/taxes/", json=payload, headers=employee_headers).status_code == 403

    def test_create_tax_rule(self, api_client, admin_headers):
        response = api_client.post("/taxes/", json={"province": "MB", "percentage": "12"}, headers=admin_headers)

        assert response.status_code == 201
        assert response.json()["province"] == "MB"

    def test_percentage_out_of_range(self, api_client, admin_headers):
        response = api_client.post("/taxes/", json={"province": "MB", "percentage": "120"}, headers=admin_headers)

        assert response.status_code == 422

    def test_requires_authentication(self, api_client, sample_tax_rule):
        response = api_client.get("/taxes/")

        assert response.status_code in (401, 403)
