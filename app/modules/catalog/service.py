"""
Catálogo de ítems e inventario.

- resolve(): búsqueda de precio, tasa, código HSN/SAC y nombre por ID.
  IDs desconocidos simplemente no aparecen en el resultado.
- Ajustes de stock con decremento condicional atómico: una salida que deje
  el stock en negativo se rechaza antes de escribir (NegativeBalanceError).
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, Optional
from uuid import UUID
import logging

from sqlalchemy import update, or_
from sqlalchemy.orm import Session

from app.common.exceptions import NotFoundError, NegativeBalanceError, ValidationError
from app.modules.catalog.models import Item, StockMovement, ItemType, MovementReason
from app.modules.catalog.schemas import CatalogEntry, ItemCreate, StockAdjustmentCreate

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for catalog lookups and stock adjustments."""

    def __init__(self, db: Session):
        self.db = db

    def create_item(self, data: ItemCreate, tenant_id: UUID) -> Item:
        item = Item(
            tenant_id=tenant_id,
            name=data.name,
            item_type=data.item_type.value,
            unit_price=data.unit_price,
            tax_rate=data.tax_rate,
            hsn_sac_code=data.hsn_sac_code,
            stock_quantity=data.stock_quantity,
            sell_in_negative=data.sell_in_negative
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def get_item(self, item_id: UUID, tenant_id: UUID) -> Item:
        item = self.db.query(Item).filter(
            Item.id == item_id,
            Item.tenant_id == tenant_id,
            Item.is_active == True
        ).first()
        if not item:
            raise NotFoundError("Ítem no encontrado")
        return item

    def list_items(self, tenant_id: UUID, limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Item).filter(
            Item.tenant_id == tenant_id,
            Item.is_active == True
        ).order_by(Item.name)
        total = query.count()
        return {
            "items": query.offset(offset).limit(limit).all(),
            "total": total,
            "limit": limit,
            "offset": offset
        }

    def resolve(self, item_ids: Iterable[UUID], tenant_id: UUID) -> Dict[UUID, CatalogEntry]:
        """Resolver IDs de catálogo; los desconocidos no generan error"""
        ids = list({item_id for item_id in item_ids if item_id})
        if not ids:
            return {}

        items = self.db.query(Item).filter(
            Item.id.in_(ids),
            Item.tenant_id == tenant_id
        ).all()

        return {
            item.id: CatalogEntry(
                item_id=item.id,
                name=item.name,
                item_type=item.item_type,
                unit_price=item.unit_price,
                tax_rate=item.tax_rate,
                hsn_sac_code=item.hsn_sac_code
            )
            for item in items
        }

    def _decrement(self, item_id: UUID, tenant_id: UUID, quantity: Decimal) -> bool:
        """Decremento condicional en una sola sentencia; False si dejaría stock negativo"""
        result = self.db.execute(
            update(Item)
            .where(
                Item.id == item_id,
                Item.tenant_id == tenant_id,
                or_(Item.sell_in_negative == True, Item.stock_quantity >= quantity)
            )
            .values(stock_quantity=Item.stock_quantity - quantity)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def apply_invoice_stock(self, invoice, user_id: Optional[UUID] = None) -> None:
        """
        Descontar inventario por las líneas de una factura.

        Se ejecuta dentro de la transacción del llamador y no hace commit:
        si algo falla, la factura y el stock se revierten juntos.
        Los servicios y las líneas sin ítem de catálogo se ignoran.
        """
        requested: "OrderedDict[UUID, Decimal]" = OrderedDict()
        for line in invoice.line_items:
            if line.item_id:
                requested[line.item_id] = requested.get(line.item_id, Decimal('0')) + Decimal(line.quantity)
        if not requested:
            return

        items = {
            item.id: item
            for item in self.db.query(Item).filter(
                Item.id.in_(list(requested.keys())),
                Item.tenant_id == invoice.tenant_id
            ).all()
        }

        # Validar todo antes de la primera escritura
        for item_id, quantity in requested.items():
            item = items.get(item_id)
            if item is None or item.item_type == ItemType.SERVICE.value:
                continue
            if not item.sell_in_negative and Decimal(item.stock_quantity) < quantity:
                raise NegativeBalanceError(
                    f"Stock insuficiente para {item.name}. "
                    f"Disponible: {item.stock_quantity}, Solicitado: {quantity}"
                )

        for item_id, quantity in requested.items():
            item = items.get(item_id)
            if item is None or item.item_type == ItemType.SERVICE.value:
                continue
            if not self._decrement(item_id, invoice.tenant_id, quantity):
                # Otro escritor consumió el stock entre la validación y el decremento
                raise NegativeBalanceError(f"Stock insuficiente para {item.name}")

            self.db.add(StockMovement(
                tenant_id=invoice.tenant_id,
                item_id=item_id,
                quantity_change=-quantity,
                reason=MovementReason.SALE.value,
                reference=invoice.invoice_number,
                notes=f"Invoice {invoice.invoice_number}",
                created_by=user_id
            ))
            logger.info(f"Stock decremented for item {item_id}: -{quantity} (invoice {invoice.invoice_number})")

    def adjust_stock(
        self,
        item_id: UUID,
        adjustment: StockAdjustmentCreate,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> StockMovement:
        """Ajuste manual de inventario (entrada o salida)"""
        item = self.get_item(item_id, tenant_id)
        if item.item_type == ItemType.SERVICE.value:
            raise ValidationError("Los servicios no manejan inventario")
        if adjustment.quantity_change == 0:
            raise ValidationError("La cantidad del ajuste no puede ser cero")

        try:
            if adjustment.quantity_change < 0:
                if not self._decrement(item_id, tenant_id, -adjustment.quantity_change):
                    raise NegativeBalanceError("El stock no puede quedar negativo")
            else:
                self.db.execute(
                    update(Item)
                    .where(Item.id == item_id, Item.tenant_id == tenant_id)
                    .values(stock_quantity=Item.stock_quantity + adjustment.quantity_change)
                    .execution_options(synchronize_session="fetch")
                )

            movement = StockMovement(
                tenant_id=tenant_id,
                item_id=item_id,
                quantity_change=adjustment.quantity_change,
                reason=adjustment.reason.value,
                notes=adjustment.notes,
                created_by=user_id
            )
            self.db.add(movement)
            self.db.commit()
            self.db.refresh(movement)
            logger.info(f"Stock adjusted for item {item_id}: {adjustment.quantity_change}")
            return movement
        except Exception:
            self.db.rollback()
            raise
