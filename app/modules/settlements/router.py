from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.dependencies.tenantDependencies import TenantId, ActorId
from app.modules.settlements.schemas import (
    SettlementCreate, RefundCreate, SettlementResult, SettlementState, PaymentOut,
    TransactionCreate, TransactionOut, TransactionList, LedgerDirection
)
from app.modules.settlements.service import SettlementService

settlements_router = APIRouter(prefix="/invoices", tags=["Settlements"])
transactions_router = APIRouter(prefix="/transactions", tags=["Transactions"])


@settlements_router.post("/{invoice_id}/payments", response_model=SettlementResult, status_code=status.HTTP_201_CREATED)
def record_payment(
    invoice_id: UUID,
    data: SettlementCreate,
    tenant_id: TenantId,
    actor_id: ActorId,
    db: Session = Depends(get_db)
):
    """
    Registrar un cobro.
    La respuesta incluye el estado de pago derivado del libro después del registro.
    """
    return SettlementService(db).record_settlement(invoice_id, data, tenant_id, actor_id)


@settlements_router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def list_payments(invoice_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    return SettlementService(db).list_payments(invoice_id, tenant_id)


@settlements_router.post("/{invoice_id}/refunds", response_model=SettlementResult, status_code=status.HTTP_201_CREATED)
def record_refund(
    invoice_id: UUID,
    data: RefundCreate,
    tenant_id: TenantId,
    actor_id: ActorId,
    db: Session = Depends(get_db)
):
    return SettlementService(db).record_refund(invoice_id, data, tenant_id, actor_id)


@settlements_router.get("/{invoice_id}/settlement", response_model=SettlementState)
def get_settlement(invoice_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    """Pagado, saldo y estado calculados desde el libro de pagos"""
    return SettlementService(db).derived_state(invoice_id, tenant_id)


@transactions_router.post("/", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def create_transaction(
    data: TransactionCreate,
    tenant_id: TenantId,
    actor_id: ActorId,
    db: Session = Depends(get_db)
):
    return SettlementService(db).record_transaction(data, tenant_id, actor_id)


@transactions_router.get("/", response_model=TransactionList)
def list_transactions(
    tenant_id: TenantId,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    direction: Optional[LedgerDirection] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return SettlementService(db).list_transactions(tenant_id, start_date, end_date, direction, limit, offset)
