"""
Tests de conciliación de pagos

El estado de pago se deriva del libro; la réplica en el libro de
transacciones puede fallar sin afectar el pago registrado.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

from sqlalchemy import event

from app.common.exceptions import ValidationError, NegativeBalanceError, NotFoundError
from app.modules.invoices.models import Invoice
from app.modules.invoices.schemas import InvoiceCreate, InvoiceLineItemCreate
from app.modules.invoices.service import InvoiceService
from app.modules.settlements.aggregates import derived_paid_sums, payment_status_for
from app.modules.settlements.models import Payment, LedgerTransaction
from app.modules.settlements.schemas import SettlementCreate, RefundCreate, TransactionCreate, LedgerDirection
from app.modules.settlements.service import SettlementService


def _create_invoice(db_session, tenant_id, customer, publisher):
    """Factura de 384: subtotal 300 + impuesto 54 + envío 50 - descuento 20"""
    return InvoiceService(db_session, publisher).create_invoice(InvoiceCreate(
        customer_id=customer.id,
        shipping_charge=Decimal("50"),
        invoice_discount=Decimal("20"),
        items=[
            InvoiceLineItemCreate(quantity=Decimal("2"), unit_price=Decimal("100"), tax_rate=Decimal("18")),
            InvoiceLineItemCreate(quantity=Decimal("1"), unit_price=Decimal("100"), tax_rate=Decimal("18")),
        ]
    ), tenant_id)


@pytest.fixture
def invoice(db_session, tenant_id, b2b_customer, event_publisher):
    return _create_invoice(db_session, tenant_id, b2b_customer, event_publisher)


@pytest.fixture
def service(db_session):
    return SettlementService(db_session)


class TestPaymentStatus:
    def test_status_rules(self):
        assert payment_status_for(Decimal("0"), Decimal("384")).value == "Unpaid"
        assert payment_status_for(Decimal("1"), Decimal("384")).value == "Partial"
        assert payment_status_for(Decimal("384"), Decimal("384")).value == "Paid"
        assert payment_status_for(Decimal("400"), Decimal("384")).value == "Paid"


class TestRecordSettlement:
    def test_settlement_scenario(self, service, tenant_id, invoice, db_session):
        first = service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("200")), tenant_id)
        assert first.settlement.status.value == "Partial"
        assert first.settlement.balance == Decimal("184.00")
        assert first.mirrored is True

        second = service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("184")), tenant_id)
        state = service.derived_state(invoice.id, tenant_id)
        assert second.settlement == state
        assert state.paid_amount == Decimal("384.00")
        assert state.balance == Decimal("0")
        assert state.status.value == "Paid"

        # Caché de la factura actualizada y libro espejo con dos entradas
        db_session.expire_all()
        cached = db_session.get(Invoice, invoice.id)
        assert cached.payment_status == "Paid"
        assert cached.amount_paid == Decimal("384.00")
        assert db_session.query(LedgerTransaction).count() == 2

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount_is_invalid(self, service, tenant_id, invoice, amount, db_session):
        with pytest.raises(ValidationError):
            service.record_settlement(invoice.id, SettlementCreate(amount=amount), tenant_id)
        assert db_session.query(Payment).count() == 0

    def test_unknown_or_deleted_invoice(self, service, tenant_id, invoice, db_session):
        with pytest.raises(NotFoundError):
            service.record_settlement(uuid4(), SettlementCreate(amount=Decimal("1")), tenant_id)

        InvoiceService(db_session).soft_delete_invoice(invoice.id, tenant_id)
        with pytest.raises(NotFoundError):
            service.derived_state(invoice.id, tenant_id)

    def test_mirror_failure_is_logged_not_raised(self, service, tenant_id, invoice, db_session, monkeypatch, caplog):
        def broken_mirror(payment, transaction_type):
            # amount NULL viola NOT NULL al confirmar
            return LedgerTransaction(
                tenant_id=payment.tenant_id,
                transaction_number="TX-BROKEN",
                direction=payment.direction,
                amount=None
            )

        monkeypatch.setattr(SettlementService, "_mirror_entry", staticmethod(broken_mirror))
        result = service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("200")), tenant_id)

        assert result.mirrored is False
        assert result.settlement.paid_amount == Decimal("200.00")
        assert db_session.query(Payment).count() == 1
        assert db_session.query(LedgerTransaction).count() == 0
        assert "Mirror of payment" in caplog.text

    def test_derived_state_ignores_cached_fields(self, service, tenant_id, invoice, db_session):
        cached = db_session.get(Invoice, invoice.id)
        cached.amount_paid = Decimal("999")
        cached.payment_status = "Paid"
        db_session.commit()

        state = service.derived_state(invoice.id, tenant_id)
        assert state.paid_amount == Decimal("0")
        assert state.status.value == "Unpaid"


class TestRefunds:
    def test_refund_reduces_derived_paid_but_cache_stays_paid(self, service, tenant_id, invoice, db_session):
        service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("384")), tenant_id)
        result = service.record_refund(invoice.id, RefundCreate(amount=Decimal("100")), tenant_id)

        assert result.settlement.paid_amount == Decimal("284.00")
        assert result.settlement.status.value == "Partial"

        db_session.expire_all()
        assert db_session.get(Invoice, invoice.id).payment_status == "Paid"
        mirror = db_session.query(LedgerTransaction).filter(LedgerTransaction.type == "refund").one()
        assert mirror.direction == "paid"

    def test_refund_above_paid_is_rejected(self, service, tenant_id, invoice, db_session):
        service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("50")), tenant_id)
        with pytest.raises(NegativeBalanceError):
            service.record_refund(invoice.id, RefundCreate(amount=Decimal("50.01")), tenant_id)
        assert db_session.query(Payment).count() == 1

    def test_guard_rechecks_inside_the_write(self, service, tenant_id, invoice, db_session, monkeypatch):
        service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("100")), tenant_id)
        service.record_refund(invoice.id, RefundCreate(amount=Decimal("100")), tenant_id)

        # Primera lectura desactualizada: otro reembolso confirmó después de leerla
        real_sums = SettlementService.derived_paid_sums
        reads = []

        def stale_then_real(self, invoice_ids, tenant):
            reads.append(1)
            if len(reads) == 1:
                return {invoice.id: Decimal("100.00")}
            return real_sums(self, invoice_ids, tenant)

        monkeypatch.setattr(SettlementService, "derived_paid_sums", stale_then_real)
        with pytest.raises(NegativeBalanceError):
            service.record_refund(invoice.id, RefundCreate(amount=Decimal("100")), tenant_id)

        assert db_session.query(Payment).filter(Payment.direction == "paid").count() == 1

    def test_concurrent_refunds_never_exceed_paid(self, service, tenant_id, invoice, session_factory, db_session):
        service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("100")), tenant_id)
        start = Barrier(2)

        def refund(_):
            session = session_factory()
            try:
                start.wait()
                SettlementService(session).record_refund(invoice.id, RefundCreate(amount=Decimal("100")), tenant_id)
                return "refunded"
            except NegativeBalanceError:
                return "rejected"
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = sorted(pool.map(refund, range(2)))

        assert outcomes == ["refunded", "rejected"]
        db_session.expire_all()
        assert service.derived_state(invoice.id, tenant_id).paid_amount == Decimal("0")
        assert db_session.query(Payment).filter(Payment.direction == "paid").count() == 1


class TestDerivedPaidSums:
    def test_one_grouped_query_for_many_invoices(
        self, db_session, engine, tenant_id, b2b_customer, event_publisher, invoice, service
    ):
        other = _create_invoice(db_session, tenant_id, b2b_customer, event_publisher)
        service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("100")), tenant_id)
        service.record_settlement(invoice.id, SettlementCreate(amount=Decimal("50")), tenant_id)
        service.record_settlement(other.id, SettlementCreate(amount=Decimal("384")), tenant_id)
        db_session.add(Payment(
            tenant_id=tenant_id, invoice_id=other.id, amount=Decimal("10"), status="pending"
        ))
        db_session.commit()

        statements = []

        def count_statement(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(engine, "before_cursor_execute", count_statement)
        try:
            sums = derived_paid_sums(db_session, [invoice.id, other.id, uuid4()], tenant_id)
        finally:
            event.remove(engine, "before_cursor_execute", count_statement)

        assert len(statements) == 1
        assert sums[invoice.id] == Decimal("150.00")
        assert sums[other.id] == Decimal("384.00")
        assert sum(1 for value in sums.values() if value == 0) == 1


class TestTransactions:
    def test_non_invoice_entry(self, service, tenant_id, db_session):
        transaction = service.record_transaction(TransactionCreate(
            type="tax", direction="paid", amount=Decimal("54"), description="GST remitted"
        ), tenant_id)
        assert transaction.transaction_number.startswith("TX-")
        assert transaction.invoice_id is None

        listed = service.list_transactions(tenant_id, direction=LedgerDirection.PAID)
        assert listed["total"] == 1

    def test_non_positive_amount(self, service, tenant_id):
        with pytest.raises(ValidationError):
            service.record_transaction(TransactionCreate(direction="paid", amount=Decimal("0")), tenant_id)


class TestSettlementsRouter:
    def test_payment_flow(self, client, headers, invoice):
        response = client.post(f"/invoices/{invoice.id}/payments", headers=headers, json={
            "amount": "200", "method": "upi", "reference": "UTR123"
        })
        assert response.status_code == 201
        assert response.json()["settlement"]["status"] == "Partial"

        client.post(f"/invoices/{invoice.id}/payments", headers=headers, json={"amount": "184"})
        settlement = client.get(f"/invoices/{invoice.id}/settlement", headers=headers).json()
        assert settlement["status"] == "Paid"
        assert Decimal(settlement["balance"]) == Decimal("0")

        payments = client.get(f"/invoices/{invoice.id}/payments", headers=headers).json()
        assert len(payments) == 2

        fetched = client.get(f"/invoices/{invoice.id}", headers=headers).json()
        assert fetched["payment_status"] == "Paid"
        assert Decimal(fetched["amount_paid"]) == Decimal("384")

    def test_zero_amount_is_400(self, client, headers, invoice):
        response = client.post(f"/invoices/{invoice.id}/payments", headers=headers, json={"amount": "0"})
        assert response.status_code == 400

    def test_refund_conflict(self, client, headers, invoice):
        response = client.post(f"/invoices/{invoice.id}/refunds", headers=headers, json={"amount": "10"})
        assert response.status_code == 409

    def test_transactions_endpoints(self, client, headers):
        response = client.post("/transactions/", headers=headers, json={
            "type": "tax", "direction": "paid", "amount": "54"
        })
        assert response.status_code == 201
        listed = client.get("/transactions/", headers=headers).json()
        assert listed["total"] == 1
