"""
Procesamiento de líneas de factura.

Cada línea solicitada se completa con el catálogo (los valores enviados por el
llamador siempre tienen prioridad), se calcula su base gravable y el reparto
de impuesto, y se acumula en los totales de la factura.

Identidad que siempre se cumple, al centavo:
    grand_total = subtotal - discount_total + tax_amount + shipping - invoice_discount
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union
from uuid import UUID
import logging

from app.common.exceptions import ValidationError
from app.modules.catalog.schemas import CatalogEntry
from app.modules.invoices.schemas import InvoiceLineItemCreate, ProcessedLine, InvoiceTotals
from app.modules.taxes.calculator import ZERO, quantize_money, split_tax, to_decimal
from app.modules.taxes.schemas import SupplyType

logger = logging.getLogger(__name__)

CatalogResolver = Callable[[Iterable[UUID]], Dict[UUID, CatalogEntry]]

QUANTITY_SCALE = Decimal("0.001")


def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _quantize_quantity(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY_SCALE, rounding=ROUND_HALF_UP)


def _non_negative(value: Decimal, label: str) -> Decimal:
    if value < ZERO:
        raise ValidationError(f"{label} no puede ser negativo")
    return value


class LineItemProcessor:
    """Materializa líneas y totales a partir de las solicitudes del llamador."""

    def __init__(self, resolve_catalog: Optional[CatalogResolver] = None):
        self.resolve_catalog = resolve_catalog or (lambda ids: {})

    def process_line(
        self,
        position: int,
        request: InvoiceLineItemCreate,
        entry: Optional[CatalogEntry],
        supply_type: SupplyType
    ) -> ProcessedLine:
        quantity = request.quantity
        unit_price = _first_present(request.unit_price, entry.unit_price if entry else None)
        if quantity is None or unit_price is None:
            missing = "cantidad" if quantity is None else "precio unitario"
            raise ValidationError(f"Línea {position + 1}: falta {missing}")

        tax_rate = _first_present(request.tax_rate, entry.tax_rate if entry else None, ZERO)
        # Misma escala que las columnas de invoice_line_items: reprocesar desde lo guardado da lo mismo
        quantity = _quantize_quantity(_non_negative(to_decimal(quantity), f"Línea {position + 1}: la cantidad"))
        unit_price = quantize_money(
            _non_negative(to_decimal(unit_price), f"Línea {position + 1}: el precio unitario")
        )
        discount = quantize_money(_non_negative(to_decimal(request.discount), f"Línea {position + 1}: el descuento"))
        tax_rate = quantize_money(_non_negative(to_decimal(tax_rate), f"Línea {position + 1}: la tasa de impuesto"))

        gross = quantize_money(quantity * unit_price)
        taxable_value = max(gross - discount, ZERO)

        # El impuesto se redondea una vez; el reparto no cambia el total
        split = split_tax(taxable_value, tax_rate, supply_type)
        tax = quantize_money(split.total)
        if supply_type == SupplyType.INTER:
            cgst, sgst, igst = ZERO, ZERO, tax
        else:
            cgst = quantize_money(tax / 2)
            sgst, igst = tax - cgst, ZERO

        return ProcessedLine(
            position=position,
            item_id=request.item_id,
            description=_first_present(request.description, entry.name if entry else None),
            hsn_sac_code=_first_present(request.hsn_sac_code, entry.hsn_sac_code if entry else None),
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            tax_rate=tax_rate,
            taxable_value=taxable_value,
            cgst_amount=cgst,
            sgst_amount=sgst,
            igst_amount=igst,
            line_total=taxable_value + cgst + sgst + igst
        )

    def process(
        self,
        requests: List[InvoiceLineItemCreate],
        supply_type: Union[SupplyType, str]
    ) -> Tuple[List[ProcessedLine], InvoiceTotals]:
        """Procesar todas las líneas; una lista vacía produce totales en cero"""
        supply_type = SupplyType(supply_type)
        catalog = self.resolve_catalog([r.item_id for r in requests if r.item_id]) if requests else {}

        lines = []
        totals = InvoiceTotals()
        for position, request in enumerate(requests):
            line = self.process_line(position, request, catalog.get(request.item_id), supply_type)
            lines.append(line)

            gross = quantize_money(line.quantity * line.unit_price)
            totals.subtotal += gross
            # Descuento efectivo: nunca mayor que el bruto de la línea
            totals.discount_total += gross - line.taxable_value
            totals.cgst_total += line.cgst_amount
            totals.sgst_total += line.sgst_amount
            totals.igst_total += line.igst_amount

        logger.debug(f"Processed {len(lines)} line items ({supply_type.value})")
        return lines, totals


def finalize_totals(
    totals: InvoiceTotals,
    shipping_charge=None,
    invoice_discount=None
) -> InvoiceTotals:
    """Agregar impuesto total, envío y descuento de factura al gran total"""
    shipping = quantize_money(_non_negative(to_decimal(shipping_charge), "El costo de envío"))
    discount = quantize_money(_non_negative(to_decimal(invoice_discount), "El descuento de factura"))

    tax_amount = totals.cgst_total + totals.sgst_total + totals.igst_total
    grand_total = totals.subtotal - totals.discount_total + tax_amount + shipping - discount
    if grand_total < ZERO:
        raise ValidationError("El descuento de la factura excede el total")

    return totals.model_copy(update={
        "tax_amount": tax_amount,
        "shipping_charge": shipping,
        "invoice_discount": discount,
        "grand_total": grand_total
    })
