"""
Conciliación de pagos.

El estado de pago de una factura se deriva siempre sumando los movimientos
completados del libro primario (payments); el monto pagado guardado en la
factura es solo una caché. Cada cobro se replica, sin garantía, en el libro
de transacciones usado para reportes.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID, uuid4
import logging

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.common.exceptions import (
    ValidationError, NotFoundError, NegativeBalanceError, MirroringError, TransientInfrastructureError
)
from app.modules.invoices.models import Invoice
from app.modules.invoices.service import recompute_balance
from app.modules.settlements.aggregates import derived_paid_sums, payment_status_for
from app.modules.settlements.models import (
    Payment, LedgerTransaction, LedgerDirection, LedgerStatus, TransactionType
)
from app.modules.settlements.schemas import (
    SettlementCreate, RefundCreate, SettlementState, SettlementResult, TransactionCreate, PaymentOut
)
from app.modules.taxes.calculator import ZERO, quantize_money, to_decimal

logger = logging.getLogger(__name__)


class SettlementService:
    def __init__(self, db: Session):
        self.db = db

    def _get_invoice(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        invoice = self.db.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.tenant_id == tenant_id,
            Invoice.is_deleted == False
        ).first()
        if not invoice:
            raise NotFoundError("Factura no encontrada")
        return invoice

    def derived_paid_sums(self, invoice_ids: Iterable[UUID], tenant_id: UUID) -> Dict[UUID, Decimal]:
        return derived_paid_sums(self.db, invoice_ids, tenant_id)

    def _state_for(self, invoice: Invoice) -> SettlementState:
        paid = self.derived_paid_sums([invoice.id], invoice.tenant_id).get(invoice.id, ZERO)
        grand_total = to_decimal(invoice.grand_total)
        return SettlementState(
            invoice_id=invoice.id,
            grand_total=grand_total,
            paid_amount=paid,
            balance=max(grand_total - paid, ZERO),
            status=payment_status_for(paid, grand_total)
        )

    def derived_state(self, invoice_id: UUID, tenant_id: UUID) -> SettlementState:
        """Pagado, saldo y estado calculados desde el libro, sin bloqueos"""
        return self._state_for(self._get_invoice(invoice_id, tenant_id))

    def list_payments(self, invoice_id: UUID, tenant_id: UUID) -> List[Payment]:
        self._get_invoice(invoice_id, tenant_id)
        return self.db.query(Payment).filter(
            Payment.invoice_id == invoice_id,
            Payment.tenant_id == tenant_id
        ).order_by(Payment.payment_date, Payment.created_at).all()

    @staticmethod
    def _mirror_entry(payment: Payment, transaction_type: TransactionType) -> LedgerTransaction:
        return LedgerTransaction(
            tenant_id=payment.tenant_id,
            transaction_number=f"TX-{payment.id.hex[:12].upper()}",
            type=transaction_type.value,
            direction=payment.direction,
            status=payment.status,
            amount=payment.amount,
            transaction_date=payment.payment_date,
            invoice_id=payment.invoice_id,
            payment_id=payment.id,
            method=payment.method,
            reference=payment.reference,
            description=payment.notes,
            created_by=payment.created_by
        )

    def _mirror(self, payment: Payment, transaction_type: TransactionType) -> bool:
        """Copia en el libro de transacciones; si falla se registra y se continúa"""
        try:
            self.db.add(self._mirror_entry(payment, transaction_type))
            self.db.commit()
            return True
        except Exception as e:
            self.db.rollback()
            MirroringError(payment.id, e).log()
            return False

    def _refresh_invoice_cache(self, invoice: Invoice) -> None:
        paid = self.derived_paid_sums([invoice.id], invoice.tenant_id).get(invoice.id, ZERO)
        try:
            recompute_balance(invoice, paid)
            self.db.commit()
        except SQLAlchemyError as e:
            # El pago ya está confirmado; la caché se corrige en la próxima escritura
            self.db.rollback()
            logger.warning(f"Payment cache refresh failed for invoice {invoice.id}: {e}")

    def _lock_invoice(self, invoice: Invoice) -> None:
        """Bloquear la fila de la factura hasta el commit (FOR UPDATE)"""
        self.db.query(Invoice.id).filter(Invoice.id == invoice.id).with_for_update().one()

    def _record(
        self,
        invoice: Invoice,
        amount: Decimal,
        direction: LedgerDirection,
        transaction_type: TransactionType,
        data: SettlementCreate,
        user_id: Optional[UUID],
        guard_balance: bool = False
    ) -> SettlementResult:
        try:
            if guard_balance:
                self._lock_invoice(invoice)
            payment = Payment(
                tenant_id=invoice.tenant_id,
                invoice_id=invoice.id,
                amount=amount,
                direction=direction.value,
                status=LedgerStatus.COMPLETED.value,
                method=data.method.value,
                reference=data.reference,
                payment_date=data.payment_date or date.today(),
                notes=data.notes,
                created_by=user_id
            )
            self.db.add(payment)
            if guard_balance:
                # La suma incluye este movimiento; un escritor concurrente espera el bloqueo
                self.db.flush()
                remaining = self.derived_paid_sums([invoice.id], invoice.tenant_id).get(invoice.id, ZERO)
                if remaining < ZERO:
                    raise NegativeBalanceError(
                        f"El reembolso de {amount} excede el monto pagado de {remaining + amount}"
                    )
            self.db.commit()
            self.db.refresh(payment)
        except HTTPException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Payment write failed for invoice {invoice.id}: {e}")
            raise TransientInfrastructureError(detail="No fue posible registrar el pago, intente nuevamente")

        mirrored = self._mirror(payment, transaction_type)
        self._refresh_invoice_cache(invoice)

        logger.info(
            f"{transaction_type.value.capitalize()} of {amount} ({direction.value}) "
            f"recorded for invoice {invoice.invoice_number}"
        )
        return SettlementResult(
            payment=PaymentOut.model_validate(payment),
            settlement=self._state_for(invoice),
            mirrored=mirrored
        )

    def record_settlement(
        self,
        invoice_id: UUID,
        data: SettlementCreate,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> SettlementResult:
        """Registrar un cobro contra una factura"""
        amount = quantize_money(data.amount)
        if amount <= ZERO:
            raise ValidationError("El monto del pago debe ser mayor a 0")

        invoice = self._get_invoice(invoice_id, tenant_id)
        return self._record(invoice, amount, LedgerDirection.RECEIVED, TransactionType.PAYMENT, data, user_id)

    def record_refund(
        self,
        invoice_id: UUID,
        data: RefundCreate,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> SettlementResult:
        """Registrar un reembolso; no puede superar lo pagado"""
        amount = quantize_money(data.amount)
        if amount <= ZERO:
            raise ValidationError("El monto del reembolso debe ser mayor a 0")

        invoice = self._get_invoice(invoice_id, tenant_id)
        paid = self.derived_paid_sums([invoice.id], tenant_id).get(invoice.id, ZERO)
        if amount > paid:
            raise NegativeBalanceError(
                f"El reembolso de {amount} excede el monto pagado de {paid}"
            )
        return self._record(
            invoice, amount, LedgerDirection.PAID, TransactionType.REFUND, data, user_id, guard_balance=True
        )

    def record_transaction(
        self,
        data: TransactionCreate,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> LedgerTransaction:
        """Movimiento que no es un cobro de factura (ej. pago de impuestos)"""
        amount = quantize_money(data.amount)
        if amount <= ZERO:
            raise ValidationError("El monto de la transacción debe ser mayor a 0")
        if data.invoice_id:
            self._get_invoice(data.invoice_id, tenant_id)

        try:
            transaction = LedgerTransaction(
                tenant_id=tenant_id,
                transaction_number=f"TX-{uuid4().hex[:12].upper()}",
                type=data.type.value,
                direction=data.direction.value,
                status=data.status.value,
                amount=amount,
                transaction_date=data.transaction_date or date.today(),
                invoice_id=data.invoice_id,
                method=data.method.value if data.method else None,
                reference=data.reference,
                description=data.description,
                created_by=user_id
            )
            self.db.add(transaction)
            self.db.commit()
            self.db.refresh(transaction)
            logger.info(f"Transaction {transaction.transaction_number} recorded ({transaction.type}, {amount})")
            return transaction
        except HTTPException:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Transaction write failed for tenant {tenant_id}: {e}")
            raise TransientInfrastructureError()

    def list_transactions(
        self,
        tenant_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        direction: Optional[LedgerDirection] = None,
        limit: int = 100,
        offset: int = 0
    ) -> dict:
        query = self.db.query(LedgerTransaction).filter(LedgerTransaction.tenant_id == tenant_id)
        if start_date:
            query = query.filter(LedgerTransaction.transaction_date >= start_date)
        if end_date:
            query = query.filter(LedgerTransaction.transaction_date <= end_date)
        if direction:
            query = query.filter(LedgerTransaction.direction == direction.value)

        total = query.count()
        transactions = query.order_by(
            LedgerTransaction.transaction_date.desc(), LedgerTransaction.created_at.desc()
        ).offset(offset).limit(limit).all()
        return {"transactions": transactions, "total": total, "limit": limit, "offset": offset}
