"""
Tests del catálogo e inventario

- resolve() ignora IDs desconocidos
- Los ajustes que dejarían stock negativo se rechazan sin escribir nada
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import NegativeBalanceError, ValidationError
from app.modules.catalog.models import Item, StockMovement
from app.modules.catalog.schemas import StockAdjustmentCreate
from app.modules.catalog.service import CatalogService


class TestCatalogResolve:
    def test_unknown_ids_are_absent(self, db_session, tenant_id, product):
        entries = CatalogService(db_session).resolve([product.id, uuid4()], tenant_id)
        assert list(entries.keys()) == [product.id]
        assert entries[product.id].unit_price == Decimal("100.00")
        assert entries[product.id].hsn_sac_code == "7323"

    def test_other_tenant_items_are_not_resolved(self, db_session, product):
        assert CatalogService(db_session).resolve([product.id], uuid4()) == {}

    def test_empty_input(self, db_session, tenant_id):
        assert CatalogService(db_session).resolve([], tenant_id) == {}


class TestStockAdjustments:
    def test_outbound_beyond_stock_is_rejected_before_writing(self, db_session, tenant_id, product):
        service = CatalogService(db_session)
        with pytest.raises(NegativeBalanceError):
            service.adjust_stock(product.id, StockAdjustmentCreate(quantity_change=Decimal("-11")), tenant_id)

        db_session.expire_all()
        assert db_session.get(Item, product.id).stock_quantity == Decimal("10")
        assert db_session.query(StockMovement).count() == 0

    def test_inbound_and_outbound(self, db_session, tenant_id, product):
        service = CatalogService(db_session)
        service.adjust_stock(product.id, StockAdjustmentCreate(quantity_change=Decimal("5"), reason="purchase"), tenant_id)
        service.adjust_stock(product.id, StockAdjustmentCreate(quantity_change=Decimal("-15")), tenant_id)

        db_session.expire_all()
        assert db_session.get(Item, product.id).stock_quantity == Decimal("0")
        assert db_session.query(StockMovement).count() == 2

    def test_sell_in_negative_allows_overdraw(self, db_session, tenant_id, product):
        product.sell_in_negative = True
        db_session.commit()

        CatalogService(db_session).adjust_stock(
            product.id, StockAdjustmentCreate(quantity_change=Decimal("-12")), tenant_id
        )
        db_session.expire_all()
        assert db_session.get(Item, product.id).stock_quantity == Decimal("-2")

    def test_services_have_no_stock(self, db_session, tenant_id, service_item):
        with pytest.raises(ValidationError):
            CatalogService(db_session).adjust_stock(
                service_item.id, StockAdjustmentCreate(quantity_change=Decimal("1")), tenant_id
            )


class TestCatalogRouter:
    def test_create_and_list_items(self, client, headers):
        response = client.post("/items/", headers=headers, json={
            "name": "Cotton Shirt", "unit_price": "499.00", "tax_rate": "5", "hsn_sac_code": "6205",
            "stock_quantity": "3"
        })
        assert response.status_code == 201
        item_id = response.json()["id"]

        listed = client.get("/items/", headers=headers).json()
        assert listed["total"] == 1
        assert client.get(f"/items/{item_id}", headers=headers).json()["name"] == "Cotton Shirt"

    def test_stock_adjustment_conflict(self, client, headers, product):
        response = client.post(
            f"/items/{product.id}/stock-adjustments",
            headers=headers,
            json={"quantity_change": "-20"}
        )
        assert response.status_code == 409
