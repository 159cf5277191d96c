from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID
from datetime import date
import logging

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.common.exceptions import (
    ValidationError, NotFoundError, ConcurrencyConflictError, TransientInfrastructureError
)
from app.core.config import settings
from app.database.database import get_engine
from app.modules.catalog.service import CatalogService
from app.modules.customers.service import CustomerService
from app.modules.invoices.line_items import LineItemProcessor, finalize_totals
from app.modules.invoices.models import Invoice, InvoiceLineItem
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceOut, InvoiceFilters, InvoiceLineItemCreate,
    GstTreatment, PaymentStatus, ProcessedLine, InvoiceTotals
)
from app.modules.invoices.tasks import InvoiceEventPublisher
from app.modules.organizations.service import OrganizationService
from app.modules.sequences.schemas import SequencePurpose
from app.modules.sequences.service import SequenceAllocator
from app.modules.settlements.aggregates import derived_paid_sums, payment_status_for
from app.modules.taxes.calculator import ZERO, determine_supply_type, quantize_money, to_decimal
from app.modules.taxes.schemas import SupplyType

logger = logging.getLogger(__name__)

# Orden del estado de pago; sin regresión configurada solo se avanza
_PAYMENT_STATUS_RANK = {
    PaymentStatus.UNPAID: 0,
    PaymentStatus.PARTIAL: 1,
    PaymentStatus.PAID: 2,
}

# Cambios que obligan a recalcular líneas y totales desde cero
_REPROCESS_FIELDS = {"items", "shipping_charge", "invoice_discount", "supply_type"}

_SIMPLE_FIELDS = (
    "invoice_date", "due_date", "notes", "place_of_supply",
    "billing_address", "shipping_address"
)


def _address_state(address: Optional[dict]) -> Optional[str]:
    if not address:
        return None
    return address.get("state") or None


def resolve_place_of_supply(
    explicit: Optional[str],
    shipping_address: Optional[dict],
    billing_address: Optional[dict],
    customer
) -> Optional[str]:
    """Lugar de suministro: explícito → estado de envío → estado de facturación → cliente"""
    candidates = (
        explicit,
        _address_state(shipping_address),
        _address_state(billing_address),
        getattr(customer, "place_of_supply", None),
        getattr(customer, "state", None),
    )
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def resolve_treatment(override: Optional[GstTreatment], customer) -> GstTreatment:
    if override is not None:
        return GstTreatment(override)
    return GstTreatment.B2B if getattr(customer, "gstin", None) else GstTreatment.B2C


def recompute_balance(invoice: Invoice, paid_amount) -> Invoice:
    """
    Actualizar la caché de pago de la factura.

    balance = grand_total - pagado (nunca negativo en la caché).
    Es solo una caché: el estado real siempre se deriva del libro de pagos.
    """
    paid = quantize_money(paid_amount)
    grand_total = to_decimal(invoice.grand_total)
    new_status = payment_status_for(paid, grand_total)
    current = PaymentStatus(invoice.payment_status or PaymentStatus.UNPAID.value)

    if not settings.PAYMENT_STATUS_REGRESSION and _PAYMENT_STATUS_RANK[new_status] < _PAYMENT_STATUS_RANK[current]:
        logger.info(
            f"Invoice {invoice.invoice_number} keeps payment status {current.value} "
            f"(ledger says {new_status.value})"
        )
        new_status = current

    invoice.amount_paid = paid
    invoice.balance_due = max(grand_total - paid, ZERO)
    invoice.payment_status = new_status.value
    return invoice


class InvoiceService:
    def __init__(self, db: Session, publisher: Optional[InvoiceEventPublisher] = None):
        self.db = db
        self.publisher = publisher or InvoiceEventPublisher()

    def _processor(self, tenant_id: UUID) -> LineItemProcessor:
        catalog = CatalogService(self.db)
        return LineItemProcessor(lambda ids: catalog.resolve(ids, tenant_id))

    def _get_invoice(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        invoice = self.db.query(Invoice).options(
            selectinload(Invoice.line_items)
        ).filter(
            Invoice.id == invoice_id,
            Invoice.tenant_id == tenant_id,
            Invoice.is_deleted == False
        ).first()

        if not invoice:
            raise NotFoundError("Factura no encontrada")
        return invoice

    def _home_state(self, tenant_id: UUID) -> Optional[str]:
        organization = OrganizationService(self.db).get_organization(tenant_id)
        return organization.state if organization else None

    @staticmethod
    def _apply_totals(invoice: Invoice, lines: List[ProcessedLine], totals: InvoiceTotals) -> None:
        invoice.line_items = [InvoiceLineItem(**line.model_dump()) for line in lines]
        for field, value in totals.model_dump().items():
            setattr(invoice, field, value)

    def _to_out(self, invoice: Invoice, paid_amount: Optional[Decimal] = None) -> InvoiceOut:
        """Respuesta con el estado de pago derivado del libro, no el de la caché"""
        if paid_amount is None:
            paid_amount = derived_paid_sums(self.db, [invoice.id], invoice.tenant_id).get(invoice.id, ZERO)
        grand_total = to_decimal(invoice.grand_total)
        return InvoiceOut.model_validate(invoice).model_copy(update={
            "amount_paid": quantize_money(paid_amount),
            "balance_due": max(grand_total - paid_amount, ZERO),
            "payment_status": payment_status_for(paid_amount, grand_total)
        })

    def create_invoice(self, invoice_data: InvoiceCreate, tenant_id: UUID, user_id: Optional[UUID] = None) -> InvoiceOut:
        """
        Crear factura.

        La factura y el descuento de inventario se confirman en una sola
        transacción; si algo falla no queda ninguno de los dos.
        """
        if not invoice_data.customer_id:
            raise ValidationError("El cliente es obligatorio")

        try:
            customer = CustomerService(self.db).get_customer(invoice_data.customer_id, tenant_id)

            place_of_supply = resolve_place_of_supply(
                invoice_data.place_of_supply,
                invoice_data.shipping_address,
                invoice_data.billing_address or customer.billing_address,
                customer
            )
            supply_type = invoice_data.supply_type or determine_supply_type(
                self._home_state(tenant_id), place_of_supply
            )
            treatment = resolve_treatment(invoice_data.gst_treatment, customer)

            lines, totals = self._processor(tenant_id).process(invoice_data.items, supply_type)
            totals = finalize_totals(totals, invoice_data.shipping_charge, invoice_data.invoice_discount)

            # Número asignado en su propia transacción; si la factura falla queda un hueco
            invoice_number = SequenceAllocator(get_engine(self.db)).allocate_document_number(
                tenant_id, SequencePurpose.INVOICE
            )

            invoice = Invoice(
                tenant_id=tenant_id,
                invoice_number=invoice_number,
                invoice_date=invoice_data.invoice_date or date.today(),
                due_date=invoice_data.due_date,
                status=invoice_data.status.value,
                currency=invoice_data.currency or settings.DEFAULT_CURRENCY,
                notes=invoice_data.notes,
                customer_id=customer.id,
                customer_name=customer.name,
                customer_gstin=customer.gstin,
                billing_address=invoice_data.billing_address or customer.billing_address,
                shipping_address=invoice_data.shipping_address,
                place_of_supply=place_of_supply,
                supply_type=SupplyType(supply_type).value,
                gst_treatment=treatment.value,
                payment_status=PaymentStatus.UNPAID.value,
                amount_paid=ZERO,
                version=1,
                created_by=user_id
            )
            self._apply_totals(invoice, lines, totals)
            invoice.balance_due = invoice.grand_total

            self.db.add(invoice)
            self.db.flush()

            CatalogService(self.db).apply_invoice_stock(invoice, user_id)

            self.db.commit()
            self.db.refresh(invoice)

        except HTTPException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Invoice creation failed for tenant {tenant_id}: {e}")
            raise TransientInfrastructureError(detail="No fue posible guardar la factura, intente nuevamente")

        logger.info(
            f"Invoice {invoice.invoice_number} created: {len(invoice.line_items)} lines, "
            f"{invoice.supply_type}/{invoice.gst_treatment}, total {invoice.grand_total}"
        )
        self.publisher.publish_created(invoice)
        return InvoiceOut.model_validate(invoice)

    def update_invoice(self, invoice_id: UUID, invoice_data: InvoiceUpdate, tenant_id: UUID) -> InvoiceOut:
        """
        Actualización parcial.

        Cambios en líneas, envío, descuento de factura o tipo de suministro
        recalculan todo desde las líneas; los totales nunca se parchan.
        """
        try:
            invoice = self._get_invoice(invoice_id, tenant_id)
            changes = invoice_data.model_dump(exclude_unset=True)
            expected_version = changes.pop("expected_version", None)

            if settings.INVOICE_OPTIMISTIC_LOCKING and expected_version is not None \
                    and expected_version != invoice.version:
                raise ConcurrencyConflictError(
                    f"La factura está en la versión {invoice.version}, se esperaba {expected_version}"
                )

            if not changes:
                return self._to_out(invoice)

            for field in _SIMPLE_FIELDS:
                if field in changes:
                    setattr(invoice, field, changes[field])
            if "status" in changes and invoice_data.status is not None:
                invoice.status = invoice_data.status.value
            if "gst_treatment" in changes:
                invoice.gst_treatment = resolve_treatment(invoice_data.gst_treatment, invoice.customer).value

            supply_type = SupplyType(invoice.supply_type)
            if invoice_data.supply_type is not None:
                supply_type = SupplyType(invoice_data.supply_type)
            elif "place_of_supply" in changes:
                supply_type = determine_supply_type(self._home_state(tenant_id), invoice.place_of_supply)

            if _REPROCESS_FIELDS & set(changes) or supply_type.value != invoice.supply_type:
                self._reprocess(invoice, invoice_data, supply_type)

            if settings.INVOICE_OPTIMISTIC_LOCKING and expected_version is not None:
                # Reclamar la versión en la misma sentencia que la incrementa
                claimed = self.db.query(Invoice).filter(
                    Invoice.id == invoice.id,
                    Invoice.version == expected_version
                ).update({Invoice.version: expected_version + 1}, synchronize_session=False)
                if claimed != 1:
                    raise ConcurrencyConflictError()
                self.db.expire(invoice, ["version"])
            else:
                invoice.version = (invoice.version or 0) + 1

            self.db.commit()
            self.db.refresh(invoice)
            logger.info(f"Invoice {invoice.invoice_number} updated ({', '.join(sorted(changes))})")
            return self._to_out(invoice)

        except HTTPException:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Invoice update failed for {invoice_id}: {e}")
            raise TransientInfrastructureError(detail="No fue posible actualizar la factura, intente nuevamente")

    def _reprocess(self, invoice: Invoice, invoice_data: InvoiceUpdate, supply_type: SupplyType) -> None:
        if invoice_data.items is not None:
            requests = invoice_data.items
        else:
            requests = [
                InvoiceLineItemCreate(
                    item_id=line.item_id,
                    description=line.description,
                    hsn_sac_code=line.hsn_sac_code,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    discount=line.discount,
                    tax_rate=line.tax_rate
                )
                for line in invoice.line_items
            ]

        shipping = invoice_data.shipping_charge if invoice_data.shipping_charge is not None else invoice.shipping_charge
        discount = invoice_data.invoice_discount if invoice_data.invoice_discount is not None else invoice.invoice_discount

        lines, totals = self._processor(invoice.tenant_id).process(requests, supply_type)
        totals = finalize_totals(totals, shipping, discount)

        invoice.supply_type = supply_type.value
        self._apply_totals(invoice, lines, totals)
        self.db.flush()

        paid = derived_paid_sums(self.db, [invoice.id], invoice.tenant_id).get(invoice.id, ZERO)
        recompute_balance(invoice, paid)
        logger.debug(f"Invoice {invoice.invoice_number} reprocessed: grand total {totals.grand_total}")

    def soft_delete_invoice(self, invoice_id: UUID, tenant_id: UUID) -> None:
        """Marcar como eliminada; nunca se borra físicamente"""
        try:
            invoice = self._get_invoice(invoice_id, tenant_id)
            invoice.soft_delete()
            self.db.commit()
            logger.info(f"Invoice {invoice.invoice_number} soft-deleted")
        except HTTPException:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Invoice delete failed for {invoice_id}: {e}")
            raise TransientInfrastructureError()

    def get_invoice(self, invoice_id: UUID, tenant_id: UUID) -> InvoiceOut:
        return self._to_out(self._get_invoice(invoice_id, tenant_id))

    def list_invoices(
        self,
        tenant_id: UUID,
        filters: Optional[InvoiceFilters] = None,
        limit: int = 100,
        offset: int = 0
    ) -> dict:
        """Listar facturas no eliminadas con el estado de pago derivado (una consulta para todas)"""
        filters = filters or InvoiceFilters()
        query = self.db.query(Invoice).options(
            selectinload(Invoice.line_items)
        ).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.is_deleted == False
        )

        if filters.customer_id:
            query = query.filter(Invoice.customer_id == filters.customer_id)
        if filters.status:
            query = query.filter(Invoice.status == filters.status.value)
        if filters.start_date:
            query = query.filter(Invoice.invoice_date >= filters.start_date)
        if filters.end_date:
            query = query.filter(Invoice.invoice_date <= filters.end_date)

        total = query.count()
        invoices = query.order_by(
            Invoice.invoice_date.desc(), Invoice.invoice_number.desc()
        ).offset(offset).limit(limit).all()

        paid: Dict[UUID, Decimal] = derived_paid_sums(self.db, [i.id for i in invoices], tenant_id)
        return {
            "invoices": [self._to_out(invoice, paid.get(invoice.id, ZERO)) for invoice in invoices],
            "total": total,
            "limit": limit,
            "offset": offset
        }
