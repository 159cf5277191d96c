from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.common.exceptions import NotFoundError
from app.modules.customers.models import Customer
from app.modules.customers.schemas import CustomerCreate

logger = logging.getLogger(__name__)


class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def create_customer(self, data: CustomerCreate, tenant_id: UUID) -> Customer:
        """Crear un cliente en la organización"""
        customer = Customer(
            tenant_id=tenant_id,
            **data.model_dump(mode="json")
        )
        self.db.add(customer)
        self.db.commit()
        self.db.refresh(customer)
        logger.info(f"Customer {customer.id} created for tenant {tenant_id}")
        return customer

    def get_customer(self, customer_id: UUID, tenant_id: UUID) -> Customer:
        """Obtener cliente; NotFoundError si no pertenece a la organización"""
        customer = self.db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.tenant_id == tenant_id,
            Customer.is_active == True
        ).first()
        if not customer:
            raise NotFoundError("Cliente no encontrado")
        return customer

    def list_customers(self, tenant_id: UUID, limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Customer).filter(
            Customer.tenant_id == tenant_id,
            Customer.is_active == True
        ).order_by(Customer.name)
        total = query.count()
        return {
            "customers": query.offset(offset).limit(limit).all(),
            "total": total,
            "limit": limit,
            "offset": offset
        }
