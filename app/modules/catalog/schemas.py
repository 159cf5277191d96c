from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from enum import Enum


class ItemType(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"


class MovementReason(str, Enum):
    ADJUSTMENT = "adjustment"
    PURCHASE = "purchase"
    SALE = "sale"
    CORRECTION = "correction"


class CatalogEntry(BaseModel):
    """Datos de catálogo usados como respaldo al procesar líneas de factura"""
    item_id: UUID
    name: str
    item_type: ItemType
    unit_price: Decimal
    tax_rate: Decimal
    hsn_sac_code: Optional[str] = None


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    item_type: ItemType = ItemType.PRODUCT
    unit_price: Decimal = Field(..., ge=0, description="Precio unitario sin impuestos")
    tax_rate: Decimal = Field(Decimal('0'), ge=0, le=100, description="Tasa GST en porcentaje")
    hsn_sac_code: Optional[str] = Field(None, max_length=20)
    stock_quantity: Decimal = Field(Decimal('0'), ge=0)
    sell_in_negative: bool = False


class ItemOut(BaseModel):
    id: UUID
    name: str
    item_type: ItemType
    unit_price: Decimal
    tax_rate: Decimal
    hsn_sac_code: Optional[str] = None
    stock_quantity: Decimal
    sell_in_negative: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ItemList(BaseModel):
    items: List[ItemOut]
    total: int
    limit: int
    offset: int


class StockAdjustmentCreate(BaseModel):
    quantity_change: Decimal = Field(..., description="Positivo para entrada, negativo para salida")
    reason: MovementReason = MovementReason.ADJUSTMENT
    notes: Optional[str] = Field(None, max_length=255)


class StockMovementOut(BaseModel):
    id: UUID
    item_id: UUID
    quantity_change: Decimal
    reason: MovementReason
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
