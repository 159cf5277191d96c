"""
Tareas de Celery y publicación del evento de factura creada.

La factura ya está confirmada cuando se publica el evento: si el broker no
responde, solo se registra en el log y la creación no falla.
"""
import logging
from typing import Dict, Any, List
from uuid import UUID

from app.core.celery import celery_app
from app.core.config import settings

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, name="invoices.invoice_created")
def invoice_created_task(self, event: Dict[str, Any]):
    """
    Reacción al evento invoice.created: alerta de stock bajo para los ítems vendidos.
    """
    from app.database.database import SessionLocal
    from app.modules.catalog.models import Item, ItemType

    item_ids: List[str] = event.get("item_ids") or []
    if not item_ids:
        return {"status": "skipped", "invoice_id": event.get("invoice_id")}

    db = SessionLocal()
    try:
        low_stock = db.query(Item).filter(
            Item.id.in_([UUID(item_id) for item_id in item_ids]),
            Item.tenant_id == UUID(event["tenant_id"]),
            Item.item_type == ItemType.PRODUCT.value,
            Item.stock_quantity <= settings.LOW_STOCK_THRESHOLD
        ).all()

        for item in low_stock:
            logger.warning(
                f"Low stock after invoice {event.get('invoice_number')}: "
                f"{item.name} ({item.id}) has {item.stock_quantity} left"
            )
        return {"status": "success", "low_stock": [str(item.id) for item in low_stock]}

    except Exception as exc:
        logger.error(f"invoice.created handling failed: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=30 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc)}
    finally:
        db.close()


def build_created_event(invoice) -> Dict[str, Any]:
    return {
        "event": "invoice.created",
        "invoice_id": str(invoice.id),
        "tenant_id": str(invoice.tenant_id),
        "invoice_number": invoice.invoice_number,
        "grand_total": str(invoice.grand_total),
        "item_ids": sorted({str(line.item_id) for line in invoice.line_items if line.item_id}),
    }


class InvoiceEventPublisher:
    """Publica eventos de factura hacia los suscriptores externos (Celery)."""

    def publish_created(self, invoice) -> None:
        event = build_created_event(invoice)
        try:
            invoice_created_task.delay(event)
            logger.info(f"invoice.created published for {invoice.invoice_number}")
        except Exception as e:
            # Fire-and-forget: la factura ya está confirmada
            logger.warning(f"Could not publish invoice.created for {invoice.invoice_number}: {e}")


def get_event_publisher() -> InvoiceEventPublisher:
    return InvoiceEventPublisher()
