from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from enum import Enum

from app.modules.invoices.schemas import PaymentStatus


class LedgerDirection(str, Enum):
    RECEIVED = "received"
    PAID = "paid"


class LedgerStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CARD = "card"
    CHEQUE = "cheque"
    OTHER = "other"


class TransactionType(str, Enum):
    PAYMENT = "payment"
    REFUND = "refund"
    TAX = "tax"
    EXPENSE = "expense"
    OTHER = "other"


class SettlementCreate(BaseModel):
    # El monto se valida en el servicio (> 0) para responder 400 y no 422
    amount: Decimal = Field(..., description="Monto positivo")
    method: PaymentMethod = PaymentMethod.CASH
    reference: Optional[str] = Field(None, max_length=100)
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class RefundCreate(SettlementCreate):
    pass


class PaymentOut(BaseModel):
    id: UUID
    invoice_id: UUID
    amount: Decimal
    direction: LedgerDirection
    status: LedgerStatus
    method: PaymentMethod
    reference: Optional[str] = None
    payment_date: date
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SettlementState(BaseModel):
    """Estado de pago derivado del libro"""
    invoice_id: UUID
    grand_total: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: PaymentStatus


class SettlementResult(BaseModel):
    payment: PaymentOut
    settlement: SettlementState
    mirrored: bool


class TransactionCreate(BaseModel):
    type: TransactionType = TransactionType.OTHER
    direction: LedgerDirection
    amount: Decimal = Field(..., description="Monto positivo")
    status: LedgerStatus = LedgerStatus.COMPLETED
    transaction_date: Optional[date] = None
    invoice_id: Optional[UUID] = None
    method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class TransactionOut(BaseModel):
    id: UUID
    transaction_number: str
    type: TransactionType
    direction: LedgerDirection
    status: LedgerStatus
    amount: Decimal
    transaction_date: date
    invoice_id: Optional[UUID] = None
    payment_id: Optional[UUID] = None
    method: Optional[PaymentMethod] = None
    reference: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionList(BaseModel):
    transactions: List[TransactionOut]
    total: int
    limit: int
    offset: int
