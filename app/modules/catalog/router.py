from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from uuid import UUID

from app.database.database import get_db
from app.dependencies.tenantDependencies import TenantId, ActorId
from app.modules.catalog.schemas import (
    ItemCreate, ItemOut, ItemList, StockAdjustmentCreate, StockMovementOut
)
from app.modules.catalog.service import CatalogService

items_router = APIRouter(prefix="/items", tags=["Catalog"])


@items_router.post("/", response_model=ItemOut, status_code=status.HTTP_201_CREATED)
def create_item(data: ItemCreate, tenant_id: TenantId, db: Session = Depends(get_db)):
    """Crear un ítem de catálogo (producto o servicio)"""
    return CatalogService(db).create_item(data, tenant_id)


@items_router.get("/", response_model=ItemList)
def list_items(
    tenant_id: TenantId,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    return CatalogService(db).list_items(tenant_id, limit, offset)


@items_router.get("/{item_id}", response_model=ItemOut)
def get_item(item_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    return CatalogService(db).get_item(item_id, tenant_id)


@items_router.post("/{item_id}/stock-adjustments", response_model=StockMovementOut, status_code=status.HTTP_201_CREATED)
def adjust_stock(
    item_id: UUID,
    adjustment: StockAdjustmentCreate,
    tenant_id: TenantId,
    actor_id: ActorId,
    db: Session = Depends(get_db)
):
    """
    Ajustar inventario manualmente.
    Una salida que deje el stock por debajo de cero se rechaza con 409.
    """
    return CatalogService(db).adjust_stock(item_id, adjustment, tenant_id, actor_id)
