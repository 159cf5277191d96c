from fastapi import APIRouter, Depends, status, Query, Response
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.dependencies.tenantDependencies import TenantId, ActorId
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceOut, InvoiceList, InvoiceUpdate, InvoiceFilters, InvoiceStatus
)
from app.modules.invoices.tasks import InvoiceEventPublisher, get_event_publisher

# Router principal del módulo de facturas
router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.post("/", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    tenant_id: TenantId,
    actor_id: ActorId,
    db: Session = Depends(get_db),
    publisher: InvoiceEventPublisher = Depends(get_event_publisher)
):
    """
    Crear una factura.

    - Tipo de suministro deducido del estado de la organización y el lugar de suministro
    - Número asignado automáticamente (INV-AAAA-0001)
    - Descuenta inventario en la misma transacción
    """
    service = InvoiceService(db, publisher)
    return service.create_invoice(invoice_data, tenant_id, actor_id)


@router.get("/", response_model=InvoiceList)
def list_invoices(
    tenant_id: TenantId,
    customer_id: Optional[UUID] = Query(None),
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    filters = InvoiceFilters(
        customer_id=customer_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date
    )
    return InvoiceService(db).list_invoices(tenant_id, filters, limit, offset)


@router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(invoice_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    """Factura con estado de pago derivado del libro de pagos"""
    return InvoiceService(db).get_invoice(invoice_id, tenant_id)


@router.patch("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
    invoice_id: UUID,
    invoice_data: InvoiceUpdate,
    tenant_id: TenantId,
    db: Session = Depends(get_db)
):
    return InvoiceService(db).update_invoice(invoice_id, invoice_data, tenant_id)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(invoice_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    InvoiceService(db).soft_delete_invoice(invoice_id, tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
