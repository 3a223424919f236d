"""
Tests para el módulo de Clientes y Sucursales

- CRUD de clientes con unicidad nombre + tipo
- Sucursales y validación de pertenencia al cliente
- Bloqueo de eliminación cuando hay facturas
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from fastapi import HTTPException
from uuid import uuid4

from app.modules.clients.crud import ClientCrud
from app.modules.clients.models import Client, Branch, ClientType
from app.modules.clients.schemas import ClientCreate, ClientUpdate, BranchCreate, BranchUpdate
from app.modules.clients.service import ClientService
from app.modules.invoices.models import Invoice, InvoiceStatus


@pytest.fixture
def client_service(db_session):
    return ClientService(ClientCrud(db_session))


# ===== TESTS DE SERVICIOS =====

class TestClientService:
    """Tests para ClientService"""

    def test_create_client_success(self, client_service):
        client = client_service.create_client(
            ClientCreate(name="Northwind", type=ClientType.VENDOR, contact="ap@northwind.test")
        )

        assert client.id is not None
        assert client.type == ClientType.VENDOR
        assert client.branches == []

    def test_create_client_duplicate_name_and_type(self, client_service, sample_client):
        """Test error al repetir nombre + tipo"""
        with pytest.raises(HTTPException) as exc_info:
            client_service.create_client(
                ClientCreate(name=sample_client.name, type=ClientType.CLIENT, contact="other@test.com")
            )

        assert exc_info.value.status_code == 409

    def test_same_name_different_type_allowed(self, client_service, sample_client):
        vendor = client_service.create_client(
            ClientCreate(name=sample_client.name, type=ClientType.VENDOR, contact="other@test.com")
        )

        assert vendor.id != sample_client.id

    def test_get_client_not_found(self, client_service):
        with pytest.raises(HTTPException) as exc_info:
            client_service.get_client(uuid4())

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Client not found"

    def test_update_client(self, client_service, sample_client):
        updated = client_service.update_client(sample_client.id, ClientUpdate(contact="new@maple.test"))

        assert updated.contact == "new@maple.test"
        assert updated.name == sample_client.name

    def test_delete_client_removes_branches(self, db_session, client_service, sample_branch):
        client_service.delete_client(sample_branch.client_id)

        assert db_session.query(Client).count() == 0
        assert db_session.query(Branch).count() == 0

    def test_delete_client_with_invoices_conflict(self, db_session, client_service, sample_branch, sample_user):
        """Test cliente con facturas no se puede eliminar"""
        db_session.add(Invoice(
            invoice_number="INV-000001",
            client_id=sample_branch.client_id,
            branch_id=sample_branch.id,
            created_by_id=sample_user.id,
            status=InvoiceStatus.UNPAID,
            issue_date=datetime.now(timezone.utc),
            subtotal=Decimal("10.00"),
            tax_amount=Decimal("1.30"),
            total_amount=Decimal("11.30")
        ))
        db_session.commit()

        with pytest.raises(HTTPException) as exc_info:
            client_service.delete_client(sample_branch.client_id)

        assert exc_info.value.status_code == 409
        assert db_session.query(Client).count() == 1


class TestBranchService:
    """Tests para sucursales"""

    def test_create_branch(self, client_service, sample_client):
        branch = client_service.create_branch(
            sample_client.id, BranchCreate(name="Airport", city="Mississauga", province="ON")
        )

        assert branch.client_id == sample_client.id
        assert len(client_service.get_branches(sample_client.id)) == 1

    def test_create_branch_duplicate_name(self, client_service, sample_branch):
        with pytest.raises(HTTPException) as exc_info:
            client_service.create_branch(
                sample_branch.client_id, BranchCreate(name=sample_branch.name, city="Ottawa", province="ON")
            )

        assert exc_info.value.status_code == 409

    def test_create_branch_unknown_client(self, client_service):
        with pytest.raises(HTTPException) as exc_info:
            client_service.create_branch(uuid4(), BranchCreate(name="X", city="Y", province="ON"))

        assert exc_info.value.status_code == 404

    def test_get_client_branch_belongs_to_client(self, client_service, sample_branch):
        branch = client_service.get_client_branch(sample_branch.client_id, sample_branch.id)

        assert branch.id == sample_branch.id

    def test_get_client_branch_of_other_client(self, client_service, sample_branch):
        """Test sucursal de otro cliente"""
        other = client_service.create_client(ClientCreate(name="Other Co", contact="o@test.com"))

        with pytest.raises(HTTPException) as exc_info:
            client_service.get_client_branch(other.id, sample_branch.id)

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Branch not found for this client"

    def test_update_branch_province(self, client_service, sample_branch):
        branch = client_service.update_branch(
            sample_branch.client_id, sample_branch.id, BranchUpdate(province="QC")
        )

        assert branch.province == "QC"

    def test_delete_branch_not_found(self, client_service, sample_client):
        with pytest.raises(HTTPException) as exc_info:
            client_service.delete_branch(sample_client.id, uuid4())

        assert exc_info.value.status_code == 404


# ===== TESTS DE ENDPOINTS =====

class TestClientRouter:
    """Tests de endpoints /clients"""

    def test_create_and_list_clients(self, api_client, employee_headers):
        response = api_client.post(
            "/clients/",
            json={"name": "Lakeside Diner", "type": "CLIENT", "contact": "owner@lakeside.test"},
            headers=employee_headers
        )
        assert response.status_code == 201
        client_id = response.json()["id"]

        branch_response = api_client.post(
            f"/clients/{client_id}/branches",
            json={"name": "Main", "city": "Halifax", "province": "NS"},
            headers=employee_headers
        )
        assert branch_response.status_code == 201

        listing = api_client.get("/clients/", headers=employee_headers)
        assert listing.status_code == 200
        assert listing.json()[0]["branches"][0]["province"] == "NS"

    def test_viewer_cannot_create(self, api_client, viewer_headers):
        response = api_client.post(
            "/clients/",
            json={"name": "Nope", "type": "CLIENT", "contact": "x@test.com"},
            headers=viewer_headers
        )

        assert response.status_code == 403

    def test_employee_cannot_delete(self, api_client, sample_client, employee_headers):
        response = api_client.delete(f"/clients/{sample_client.id}", headers=employee_headers)

        assert response.status_code == 403
