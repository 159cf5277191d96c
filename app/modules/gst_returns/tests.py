"""
Tests de declaraciones GST por periodo

- Ventana mensual a partir de etiqueta o fecha
- Resumen de facturas y libro de transacciones
- Borrador por secciones con precedencia fija
- Upsert que conserva el historial de presentación
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from app.common.exceptions import ValidationError, NotFoundError, ConcurrencyConflictError
from app.modules.gst_returns.service import (
    PeriodReturnService, resolve_period_window, classify_invoice, TREATMENT_RULES
)
from app.modules.invoices.schemas import InvoiceCreate, InvoiceLineItemCreate
from app.modules.invoices.service import InvoiceService
from app.modules.settlements.schemas import TransactionCreate
from app.modules.settlements.service import SettlementService


def _line(quantity, price, rate, discount=None):
    return InvoiceLineItemCreate(
        quantity=Decimal(quantity), unit_price=Decimal(price), tax_rate=Decimal(rate),
        discount=Decimal(discount) if discount else None
    )


@pytest.fixture
def period_invoices(db_session, tenant_id, b2b_customer, b2c_customer, event_publisher):
    """
    Noviembre 2025:
    - B2B intra 200 + 36
    - B2C inter 100 - 10 de descuento + 16.20
    - Exportación 500 sin impuesto
    - B2B sin líneas (nil)
    Fuera del periodo: una de diciembre y una eliminada.
    """
    service = InvoiceService(db_session, event_publisher)

    def create(customer, invoice_date, items, **kwargs):
        return service.create_invoice(InvoiceCreate(
            customer_id=customer.id, invoice_date=invoice_date, items=items, **kwargs
        ), tenant_id)

    invoices = {
        "b2b": create(b2b_customer, date(2025, 11, 1), [_line("2", "100", "18")], status="sent"),
        "b2c": create(b2c_customer, date(2025, 11, 5), [_line("1", "100", "18", discount="10")]),
        "export": create(b2b_customer, date(2025, 11, 10), [_line("1", "500", "0")], gst_treatment="export"),
        "nil": create(b2b_customer, date(2025, 11, 30), []),
    }
    create(b2b_customer, date(2025, 12, 1), [_line("1", "1000", "18")])
    deleted = create(b2b_customer, date(2025, 11, 15), [_line("1", "1000", "18")])
    service.soft_delete_invoice(deleted.id, tenant_id)
    return invoices


@pytest.fixture
def period_ledger(db_session, tenant_id):
    settlements = SettlementService(db_session)

    def record(direction, amount, day, status="completed", month=11):
        settlements.record_transaction(TransactionCreate(
            type="payment" if direction == "received" else "tax",
            direction=direction,
            amount=Decimal(amount),
            status=status,
            transaction_date=date(2025, month, day)
        ), tenant_id)

    record("received", "100", 10)
    record("paid", "20", 20)
    record("paid", "5", 21, status="pending")
    record("received", "999", 31, month=10)


@pytest.fixture
def service(db_session):
    return PeriodReturnService(db_session)


class TestPeriodWindow:
    def test_label(self):
        assert resolve_period_window("2025-02") == ("2025-02", date(2025, 2, 1), date(2025, 2, 28))

    def test_date_string_uses_its_month(self):
        assert resolve_period_window("2024-02-15") == ("2024-02", date(2024, 2, 1), date(2024, 2, 29))
        assert resolve_period_window("2025-11-15T10:30:00Z")[0] == "2025-11"

    def test_date_objects(self):
        assert resolve_period_window(date(2025, 12, 31))[1:] == (date(2025, 12, 1), date(2025, 12, 31))
        assert resolve_period_window(datetime(2025, 1, 9, 8, 0))[0] == "2025-01"

    def test_defaults_to_current_month(self):
        today = date.today()
        assert resolve_period_window(None)[0] == f"{today.year:04d}-{today.month:02d}"

    @pytest.mark.parametrize("token", ["2025-13", "noviembre", "2025/11"])
    def test_invalid_tokens(self, token):
        with pytest.raises(ValidationError):
            resolve_period_window(token)


class TestClassification:
    def test_rule_order(self):
        assert [name for name, _ in TREATMENT_RULES] == ["b2c", "export", "nil", "b2b"]

    def test_precedence(self):
        # B2C gana aunque el subtotal sea cero
        assert classify_invoice(SimpleNamespace(gst_treatment="b2c", subtotal=Decimal("0"))) == "b2c"
        assert classify_invoice(SimpleNamespace(gst_treatment="sez", subtotal=Decimal("0"))) == "export"
        assert classify_invoice(SimpleNamespace(gst_treatment="b2b", subtotal=Decimal("0"))) == "nil"
        assert classify_invoice(SimpleNamespace(gst_treatment="b2b", subtotal=Decimal("1"))) == "b2b"


class TestSummarize:
    def test_period_totals(self, service, tenant_id, period_invoices, period_ledger):
        summary = service.summarize(tenant_id, "2025-11", "GSTR3B")

        assert summary.period == "2025-11"
        assert summary.total_invoices == 4
        assert summary.total_taxable_value == Decimal("790.00")
        assert summary.total_tax == Decimal("52.20")
        assert summary.gross_turnover == Decimal("842.20")
        assert summary.payments_received == Decimal("100.00")
        assert summary.payments_paid == Decimal("20.00")
        assert summary.outstanding_tax_liability == Decimal("32.20")
        assert summary.total_transactions == 2
        assert summary.total_cess == Decimal("0")

        by_status = summary.summary_breakup["invoices"]
        assert by_status["sent"]["count"] == 1
        assert by_status["draft"]["count"] == 3
        assert by_status["draft"]["value"] == Decimal("606.20")

    def test_outstanding_never_negative(self, service, tenant_id, db_session):
        SettlementService(db_session).record_transaction(TransactionCreate(
            type="tax", direction="paid", amount=Decimal("10"), transaction_date=date(2025, 11, 2)
        ), tenant_id)
        summary = service.summarize(tenant_id, "2025-11")
        assert summary.total_tax == Decimal("0")
        assert summary.outstanding_tax_liability == Decimal("0")

    def test_other_tenant_sees_nothing(self, service, period_invoices):
        assert service.summarize(uuid4(), "2025-11").total_invoices == 0


class TestBuildDraft:
    def test_sections(self, service, tenant_id, period_invoices):
        draft = service.build_draft(tenant_id, "2025-11-20")
        sections = draft.sections

        assert sum(section.count for section in sections.values()) == draft.totals.invoices == 4
        assert sections["b2b"].invoice_numbers == [period_invoices["b2b"].invoice_number]
        assert sections["b2b"].tax == Decimal("36.00")
        assert sections["b2c"].taxable_value == Decimal("90.00")
        assert sections["export"].count == 1
        assert sections["nil"].invoice_numbers == [period_invoices["nil"].invoice_number]
        assert draft.totals.taxable_value == Decimal("790.00")
        assert [i.invoice_number for i in draft.invoices][0] == period_invoices["b2b"].invoice_number
        assert draft.range.end == date(2025, 11, 30)

    def test_empty_period(self, service, tenant_id):
        draft = service.build_draft(tenant_id, "2030-01")
        assert draft.totals.invoices == 0
        assert list(draft.sections.keys()) == ["b2b", "b2c", "export", "nil"]


class TestUpsertAndTransitions:
    def test_upsert_preserves_history(
        self, service, tenant_id, period_invoices, db_session, b2b_customer, event_publisher
    ):
        creator, editor = uuid4(), uuid4()
        first = service.upsert_return(tenant_id, "2025-11", "GSTR1", creator)
        assert first.status == "draft"
        assert first.total_tax == Decimal("52.20")

        service.transition_status(first.id, "submitted", tenant_id, actor_id=editor, reference_number="ARN001")

        InvoiceService(db_session, event_publisher).create_invoice(InvoiceCreate(
            customer_id=b2b_customer.id, invoice_date=date(2025, 11, 25), items=[_line("1", "100", "18")]
        ), tenant_id)
        second = service.upsert_return(tenant_id, "2025-11", "GSTR1", editor)

        assert second.id == first.id
        assert second.status == "draft"
        assert second.total_invoices == 5
        assert second.total_tax == Decimal("70.20")
        assert second.created_by == creator
        assert second.updated_by == editor
        assert [f.status for f in second.filings] == ["submitted"]
        assert second.filings[0].reference_number == "ARN001"

    def test_return_types_are_separate(self, service, tenant_id):
        gstr1 = service.upsert_return(tenant_id, "2025-11", "GSTR1")
        gstr3b = service.upsert_return(tenant_id, "2025-11", "GSTR3B")
        assert gstr1.id != gstr3b.id
        assert service.list_returns(tenant_id)["total"] == 2

    def test_invalid_status(self, service, tenant_id):
        period_return = service.upsert_return(tenant_id, "2025-11")
        with pytest.raises(ValidationError):
            service.transition_status(period_return.id, "approved", tenant_id)

    def test_backward_transition_is_allowed(self, service, tenant_id):
        period_return = service.upsert_return(tenant_id, "2025-11")
        service.transition_status(period_return.id, "filed", tenant_id)
        updated = service.transition_status(period_return.id, "draft", tenant_id, notes="Corrección")
        assert updated.status == "draft"
        assert [f.status for f in updated.filings] == ["filed", "draft"]
        assert updated.notes == "Corrección"

    def test_stale_version(self, service, tenant_id):
        period_return = service.upsert_return(tenant_id, "2025-11")
        service.transition_status(period_return.id, "submitted", tenant_id, expected_version=1)
        with pytest.raises(ConcurrencyConflictError):
            service.transition_status(period_return.id, "filed", tenant_id, expected_version=1)

    def test_return_scoped_by_tenant(self, service, tenant_id):
        period_return = service.upsert_return(tenant_id, "2025-11")
        with pytest.raises(NotFoundError):
            service.get_return(period_return.id, uuid4())


class TestGstRouter:
    def test_summary_and_draft(self, client, headers, period_invoices):
        summary = client.get("/gst/summary", headers=headers, params={"period": "2025-11"})
        assert summary.status_code == 200
        assert Decimal(summary.json()["total_tax"]) == Decimal("52.20")

        draft = client.get("/gst/draft", headers=headers, params={"period": "2025-11"})
        assert draft.status_code == 200
        assert draft.json()["sections"]["b2c"]["count"] == 1

    def test_invalid_period_is_400(self, client, headers):
        assert client.get("/gst/summary", headers=headers, params={"period": "nope"}).status_code == 400

    def test_return_lifecycle(self, client, headers, period_invoices):
        created = client.post("/gst/returns", headers=headers, json={"period": "2025-11", "return_type": "GSTR3B"})
        assert created.status_code == 201
        return_id = created.json()["id"]
        assert created.json()["status"] == "draft"

        actor = str(uuid4())
        moved = client.patch(
            f"/gst/returns/{return_id}/status",
            headers={**headers, "X-Actor-ID": actor},
            json={"status": "filed", "reference_number": "ARN-77"}
        )
        assert moved.status_code == 200
        assert moved.json()["filings"][0]["submitted_by"] == actor

        assert client.patch(
            f"/gst/returns/{return_id}/status", headers=headers, json={"status": "lost"}
        ).status_code == 400

        assert client.get(f"/gst/returns/{return_id}", headers=headers).json()["status"] == "filed"
        assert client.get("/gst/returns", headers=headers).json()["total"] == 1
