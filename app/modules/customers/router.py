from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from uuid import UUID

from app.database.database import get_db
from app.dependencies.tenantDependencies import TenantId
from app.modules.customers.schemas import CustomerCreate, CustomerOut, CustomerList
from app.modules.customers.service import CustomerService

customers_router = APIRouter(prefix="/customers", tags=["Customers"])


@customers_router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(data: CustomerCreate, tenant_id: TenantId, db: Session = Depends(get_db)):
    """
    Crear un cliente

    - **gstin**: si existe, las facturas del cliente se tratan como B2B
    - **place_of_supply**: estado de destino por defecto de sus facturas
    """
    return CustomerService(db).create_customer(data, tenant_id)


@customers_router.get("/", response_model=CustomerList)
def list_customers(
    tenant_id: TenantId,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return CustomerService(db).list_customers(tenant_id, limit, offset)


@customers_router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    return CustomerService(db).get_customer(customer_id, tenant_id)
