from app.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Numeric, Date, Text
from sqlalchemy.orm import relationship
from datetime import date
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class LedgerDirection(enum.Enum):
    RECEIVED = "received"  # Entrada de dinero
    PAID = "paid"          # Salida de dinero (reembolsos, impuestos)


class LedgerStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CARD = "card"
    CHEQUE = "cheque"
    OTHER = "other"


class TransactionType(enum.Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    TAX = "tax"          # Pago de impuestos al fisco
    EXPENSE = "expense"
    OTHER = "other"


class Payment(Base, TenantMixin, TimestampMixin):
    """Libro primario de cobros: fuente de verdad del estado de pago de una factura"""
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)  # Siempre positivo; el sentido lo da direction
    direction = Column(String(10), nullable=False, default=LedgerDirection.RECEIVED.value)
    status = Column(String(10), nullable=False, default=LedgerStatus.COMPLETED.value, index=True)
    method = Column(String(20), nullable=False, default=PaymentMethod.CASH.value)
    reference = Column(String(100), nullable=True)  # Número de referencia, cheque, UTR, etc.
    payment_date = Column(Date, nullable=False, default=date.today)
    notes = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    invoice = relationship("Invoice")


class LedgerTransaction(Base, TenantMixin, TimestampMixin):
    """Libro secundario para reportes transversales (espejo de pagos y otros movimientos)"""
    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    transaction_number = Column(String(50), nullable=False, unique=True)
    type = Column(String(20), nullable=False, default=TransactionType.PAYMENT.value)
    direction = Column(String(10), nullable=False)
    status = Column(String(10), nullable=False, default=LedgerStatus.COMPLETED.value, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    transaction_date = Column(Date, nullable=False, default=date.today, index=True)

    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=True, index=True)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id"), nullable=True)

    method = Column(String(20), nullable=True)
    reference = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
