"""
Tests para cuentas de usuario

- CRUD de usuarios con email único
- Bloqueo de eliminación cuando el usuario tiene facturas
- Endpoints solo para administradores
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from fastapi import HTTPException
from pydantic import ValidationError
from uuid import uuid4

from app.modules.auth.models import User, UserRole
from app.modules.auth.schemas import UserCreate, UserUpdate
from app.modules.auth.service import UserService
from app.modules.invoices.models import Invoice, InvoiceStatus


@pytest.fixture
def user_service(db_session):
    return UserService(db_session)


# ===== TESTS DE SERVICIOS =====

class TestUserService:
    """Tests para UserService"""

    def test_create_user_defaults_to_viewer(self, user_service):
        user = user_service.create_user(UserCreate(email="clerk@example.com", full_name="Clerk"))

        assert user.id is not None
        assert user.role == UserRole.VIEWER
        assert user.is_active is True

    def test_create_user_duplicate_email(self, user_service, sample_user):
        with pytest.raises(HTTPException) as exc_info:
            user_service.create_user(UserCreate(email=sample_user.email, full_name="Someone Else"))

        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == "Email already exists"

    def test_invalid_email_rejected(self):
        with pytest.raises(ValidationError):
            UserCreate(email="not-an-email", full_name="Nobody")

    def test_get_users_and_get_user(self, user_service, sample_user, viewer_user):
        assert {user.id for user in user_service.get_users()} == {sample_user.id, viewer_user.id}
        assert user_service.get_user(viewer_user.id).email == viewer_user.email

    def test_get_user_not_found(self, user_service):
        with pytest.raises(HTTPException) as exc_info:
            user_service.get_user(uuid4())

        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "User not found"

    def test_update_role_and_deactivate(self, user_service, viewer_user):
        user = user_service.update_user(
            viewer_user.id, UserUpdate(role=UserRole.EMPLOYEE, is_active=False)
        )

        assert user.role == UserRole.EMPLOYEE
        assert user.is_active is False
        assert user.full_name == viewer_user.full_name

    def test_delete_user(self, db_session, user_service, viewer_user):
        assert user_service.delete_user(viewer_user.id) == {"message": "User deleted"}
        assert db_session.query(User).filter(User.id == viewer_user.id).first() is None

    def test_delete_user_with_invoices_conflict(self, db_session, user_service, sample_branch, employee_user):
        """Test usuario que creó facturas no se puede eliminar"""
        db_session.add(Invoice(
            invoice_number="INV-000001",
            client_id=sample_branch.client_id,
            branch_id=sample_branch.id,
            created_by_id=employee_user.id,
            status=InvoiceStatus.UNPAID,
            issue_date=datetime.now(timezone.utc),
            subtotal=Decimal("10.00"),
            tax_amount=Decimal("1.30"),
            total_amount=Decimal("11.30")
        ))
        db_session.commit()

        with pytest.raises(HTTPException) as exc_info:
            user_service.delete_user(employee_user.id)

        assert exc_info.value.status_code == 409
        assert db_session.query(User).filter(User.id == employee_user.id).count() == 1


# ===== TESTS DE ENDPOINTS =====

class TestUsersRouter:
    """Tests de endpoints /users"""

    def test_admin_manages_users(self, api_client, admin_headers):
        response = api_client.post(
            "/users/",
            json={"email": "new.clerk@example.com", "full_name": "New Clerk", "role": "EMPLOYEE"},
            headers=admin_headers
        )
        assert response.status_code == 201
        user_id = response.json()["id"]
        assert response.json()["role"] == "EMPLOYEE"

        duplicate = api_client.post(
            "/users/",
            json={"email": "new.clerk@example.com", "full_name": "Again"},
            headers=admin_headers
        )
        assert duplicate.status_code == 409

        updated = api_client.put(f"/users/{user_id}", json={"is_active": False}, headers=admin_headers)
        assert updated.status_code == 200
        assert updated.json()["is_active"] is False

        assert api_client.delete(f"/users/{user_id}", headers=admin_headers).status_code == 200
        assert api_client.get(f"/users/{user_id}", headers=admin_headers).status_code == 404

    def test_employee_cannot_manage_users(self, api_client, employee_headers):
        assert api_client.get("/users/", headers=employee_headers).status_code == 403
        assert api_client.post(
            "/users/",
            json={"email": "x@example.com", "full_name": "X"},
            headers=employee_headers
        ).status_code == 403

    def test_me_returns_current_account(self, api_client, viewer_headers, viewer_user):
        response = api_client.get("/users/me", headers=viewer_headers)

        assert response.status_code == 200
        assert response.json()["id"] == str(viewer_user.id)

    def test_deactivated_user_token_rejected(self, api_client, admin_headers, viewer_headers, viewer_user):
        api_client.put(f"/users/{viewer_user.id}", json={"is_active": False}, headers=admin_headers)

        assert api_client.get("/users/me", headers=viewer_headers).status_code == 401
