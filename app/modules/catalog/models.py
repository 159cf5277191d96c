from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class ItemType(enum.Enum):
    PRODUCT = "product"  # Afecta inventario
    SERVICE = "service"  # No maneja stock


class MovementReason(enum.Enum):
    ADJUSTMENT = "adjustment"
    PURCHASE = "purchase"
    SALE = "sale"
    CORRECTION = "correction"


class Item(Base, TenantMixin, TimestampMixin):
    __tablename__ = "items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    item_type = Column(String(20), nullable=False, default=ItemType.PRODUCT.value)
    unit_price = Column(Numeric(15, 2), nullable=False, default=0)  # Precio sin impuestos
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)  # Porcentaje, ej. 18.00
    hsn_sac_code = Column(String(20), nullable=True)
    stock_quantity = Column(Numeric(12, 3), nullable=False, default=0)
    sell_in_negative = Column(Boolean, default=False, nullable=False)  # Permitir venta sin stock
    is_active = Column(Boolean, default=True, nullable=False)

    movements = relationship("StockMovement", back_populates="item")


class StockMovement(Base, TenantMixin, TimestampMixin):
    __tablename__ = "stock_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    item_id = Column(UUID(as_uuid=True), ForeignKey("items.id"), nullable=False, index=True)
    quantity_change = Column(Numeric(12, 3), nullable=False)  # Positivo entrada, negativo salida
    reason = Column(String(20), nullable=False, default=MovementReason.ADJUSTMENT.value)
    reference = Column(String(100), nullable=True)  # Número de factura, orden, etc.
    notes = Column(String(255), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    item = relationship("Item", back_populates="movements")
