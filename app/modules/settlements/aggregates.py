"""
Primitivas de agregación sobre los libros.

Sumas agrupadas en una sola consulta, compartidas por la conciliación de
pagos y por el resumen de periodo.
"""

from collections import namedtuple
from decimal import Decimal
from typing import Dict, Iterable, Sequence
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.modules.invoices.schemas import PaymentStatus
from app.modules.settlements.models import Payment, LedgerDirection, LedgerStatus
from app.modules.taxes.calculator import ZERO, quantize_money

GroupTotal = namedtuple("GroupTotal", ["total", "count"])


def sum_grouped(db: Session, amount_column, group_columns: Sequence, *criteria) -> Dict:
    """
    SUM + COUNT de `amount_column` agrupado por `group_columns` con los filtros dados.

    La clave es el valor de la columna cuando se agrupa por una sola,
    o una tupla cuando se agrupa por varias.
    """
    rows = (
        db.query(*group_columns, func.sum(amount_column), func.count())
        .filter(*criteria)
        .group_by(*group_columns)
        .all()
    )
    width = len(group_columns)
    result = {}
    for row in rows:
        key = row[0] if width == 1 else tuple(row[:width])
        total, count = row[width], row[width + 1]
        result[key] = GroupTotal(quantize_money(total if total is not None else ZERO), int(count or 0))
    return result


def derived_paid_sums(db: Session, invoice_ids: Iterable[UUID], tenant_id: UUID) -> Dict[UUID, Decimal]:
    """
    Monto pagado neto por factura (cobros completados menos reembolsos completados).

    Una sola consulta agrupada para N facturas; las que no tienen movimientos valen 0.
    """
    ids = list(set(invoice_ids))
    if not ids:
        return {}

    grouped = sum_grouped(
        db,
        Payment.amount,
        (Payment.invoice_id, Payment.direction),
        Payment.tenant_id == tenant_id,
        Payment.invoice_id.in_(ids),
        Payment.status == LedgerStatus.COMPLETED.value
    )

    paid = {invoice_id: ZERO for invoice_id in ids}
    for (invoice_id, direction), group in grouped.items():
        if direction == LedgerDirection.RECEIVED.value:
            paid[invoice_id] += group.total
        else:
            paid[invoice_id] -= group.total
    return paid


def payment_status_for(paid_amount: Decimal, grand_total: Decimal) -> PaymentStatus:
    """Paid si lo pagado cubre el total, Partial si hay algo pagado, si no Unpaid"""
    if paid_amount >= grand_total:
        return PaymentStatus.PAID
    if paid_amount > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID
