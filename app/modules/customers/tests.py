"""
Tests de clientes y validación de GSTIN
"""

import pytest
from uuid import uuid4

from app.common.exceptions import NotFoundError
from app.common.validators import validate_gstin, gstin_check_digit, state_code_from_gstin, format_gstin
from app.modules.customers.service import CustomerService


class TestGstinValidation:
    def test_valid_gstin(self):
        assert validate_gstin("27AAPFU0939F1ZV") == True
        assert validate_gstin("27ABCDE1234F1Z0") == True

    def test_check_digit(self):
        assert gstin_check_digit("27AAPFU0939F1Z") == "V"

    def test_invalid_gstin(self):
        assert validate_gstin("27ABCDE1234F1Z5") == False  # Dígito de control incorrecto
        assert validate_gstin("27ABCDE1234F1") == False
        assert validate_gstin("") == False

    def test_format_and_state_code(self):
        assert format_gstin(" 27aapfu0939f1zv ") == "27AAPFU0939F1ZV"
        assert state_code_from_gstin("27AAPFU0939F1ZV") == "27"
        assert state_code_from_gstin("bad") is None


class TestCustomerService:
    def test_get_customer_outside_tenant(self, db_session, b2b_customer):
        service = CustomerService(db_session)
        assert service.get_customer(b2b_customer.id, b2b_customer.tenant_id).name == b2b_customer.name
        with pytest.raises(NotFoundError):
            service.get_customer(b2b_customer.id, uuid4())


class TestCustomersRouter:
    def test_create_customer(self, client, headers):
        response = client.post("/customers/", headers=headers, json={
            "name": "Chennai Electricals",
            "gstin": "27ABCDE1234F1Z0",
            "state": "Tamil Nadu",
            "billing_address": {"city": "Chennai", "state": "Tamil Nadu"}
        })
        assert response.status_code == 201
        data = response.json()
        assert data["gstin"] == "27ABCDE1234F1Z0"
        assert data["gst_registration_type"] == "regular"

        listed = client.get("/customers/", headers=headers).json()
        assert listed["total"] == 1

    def test_invalid_gstin_rejected(self, client, headers):
        response = client.post("/customers/", headers=headers, json={
            "name": "Bad", "gstin": "27ABCDE1234F1Z5"
        })
        assert response.status_code == 422

    def test_customer_scoped_by_tenant(self, client, b2b_customer):
        response = client.get(
            f"/customers/{b2b_customer.id}",
            headers={"X-Company-ID": str(uuid4())}
        )
        assert response.status_code == 404
