"""
Declaraciones GST por periodo.

Agrega las facturas no eliminadas de un mes calendario y el libro de
transacciones del mismo mes en un resumen, arma el borrador por tipo de
suministro y guarda la declaración con su historial de presentación.
Nunca modifica facturas.
"""

import calendar
import re
from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, Union
from uuid import UUID
import logging

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.common.exceptions import (
    ValidationError, NotFoundError, ConcurrencyConflictError, TransientInfrastructureError
)
from app.modules.gst_returns.models import PeriodReturn, PeriodReturnFiling, FilingStatus
from app.modules.gst_returns.schemas import (
    ReturnType, PeriodSummary, DraftOut, DraftSection, DraftTotals, DraftInvoice, PeriodRange
)
from app.modules.invoices.models import Invoice
from app.modules.settlements.aggregates import sum_grouped
from app.modules.settlements.models import LedgerTransaction, LedgerDirection, LedgerStatus
from app.modules.taxes.calculator import ZERO, quantize_money, to_decimal

logger = logging.getLogger(__name__)

_PERIOD_LABEL = re.compile(r"^(\d{4})-(\d{2})$")

PeriodToken = Union[str, date, datetime, None]


def resolve_period_window(token: PeriodToken = None) -> Tuple[str, date, date]:
    """
    Normalizar un periodo a su mes calendario completo.

    Acepta 'AAAA-MM', una fecha ISO (con o sin hora), un date/datetime o None (hoy).
    Devuelve (etiqueta, primer día, último día), ambos inclusive.
    """
    if token is None:
        anchor = date.today()
    elif isinstance(token, datetime):
        anchor = token.date()
    elif isinstance(token, date):
        anchor = token
    else:
        text = str(token).strip()
        match = _PERIOD_LABEL.match(text)
        if match:
            year, month = int(match.group(1)), int(match.group(2))
            if not 1 <= month <= 12:
                raise ValidationError(f"Periodo inválido: {token}")
            anchor = date(year, month, 1)
        else:
            try:
                anchor = date.fromisoformat(text)
            except ValueError:
                try:
                    anchor = datetime.fromisoformat(text.replace("Z", "+00:00")).date()
                except ValueError:
                    raise ValidationError(f"Periodo inválido: {token}. Use AAAA-MM o una fecha ISO")

    last_day = calendar.monthrange(anchor.year, anchor.month)[1]
    start = anchor.replace(day=1)
    end = anchor.replace(day=last_day)
    return f"{anchor.year:04d}-{anchor.month:02d}", start, end


def _taxable(invoice: Invoice) -> Decimal:
    return to_decimal(invoice.subtotal) - to_decimal(invoice.discount_total)


# Precedencia de clasificación del borrador: gana la primera regla que aplica
TREATMENT_RULES: List[Tuple[str, Callable[[Invoice], bool]]] = [
    ("b2c", lambda invoice: invoice.gst_treatment == "b2c"),
    ("export", lambda invoice: invoice.gst_treatment in ("export", "sez")),
    ("nil", lambda invoice: to_decimal(invoice.subtotal) == ZERO),
    ("b2b", lambda invoice: True),
]

SECTION_LABELS = OrderedDict([
    ("b2b", "B2B Supplies"),
    ("b2c", "B2C Supplies"),
    ("export", "Export / SEZ"),
    ("nil", "Nil / Exempt"),
])


def classify_invoice(invoice: Invoice) -> str:
    for section, applies in TREATMENT_RULES:
        if applies(invoice):
            return section
    return "b2b"


class PeriodReturnService:
    def __init__(self, db: Session):
        self.db = db

    def _invoice_criteria(self, tenant_id: UUID, start: date, end: date) -> tuple:
        return (
            Invoice.tenant_id == tenant_id,
            Invoice.is_deleted == False,
            Invoice.invoice_date >= start,
            Invoice.invoice_date <= end,
        )

    def summarize(
        self,
        tenant_id: UUID,
        period: PeriodToken = None,
        return_type: Union[ReturnType, str] = ReturnType.GSTR1
    ) -> PeriodSummary:
        """Totales del periodo: facturas por un lado, libro de transacciones por otro"""
        label, start, end = resolve_period_window(period)
        criteria = self._invoice_criteria(tenant_id, start, end)

        count, taxable, tax, turnover = self.db.query(
            func.count(Invoice.id),
            func.sum(Invoice.subtotal - Invoice.discount_total),
            func.sum(Invoice.tax_amount),
            func.sum(Invoice.grand_total)
        ).filter(*criteria).one()

        by_status = sum_grouped(self.db, Invoice.grand_total, (Invoice.status,), *criteria)

        ledger = sum_grouped(
            self.db,
            LedgerTransaction.amount,
            (LedgerTransaction.direction,),
            LedgerTransaction.tenant_id == tenant_id,
            LedgerTransaction.status == LedgerStatus.COMPLETED.value,
            LedgerTransaction.transaction_date >= start,
            LedgerTransaction.transaction_date <= end
        )
        received = ledger.get(LedgerDirection.RECEIVED.value)
        paid_out = ledger.get(LedgerDirection.PAID.value)
        payments_received = received.total if received else ZERO
        payments_paid = paid_out.total if paid_out else ZERO
        total_tax = quantize_money(tax)

        return PeriodSummary(
            tenant_id=tenant_id,
            period=label,
            period_start=start,
            period_end=end,
            return_type=ReturnType(return_type),
            total_taxable_value=quantize_money(taxable),
            total_tax=total_tax,
            total_cess=ZERO,
            gross_turnover=quantize_money(turnover),
            payments_received=payments_received,
            payments_paid=payments_paid,
            outstanding_tax_liability=max(total_tax - payments_paid, ZERO),
            total_invoices=int(count or 0),
            total_transactions=sum(group.count for group in ledger.values()),
            summary_breakup={
                "invoices": {
                    status: {"count": group.count, "value": group.total}
                    for status, group in by_status.items()
                },
                "collections": {
                    "received": payments_received,
                    "paid": payments_paid
                }
            }
        )

    def build_draft(self, tenant_id: UUID, period: PeriodToken = None) -> DraftOut:
        """Borrador por secciones; cada factura cae en exactamente una sección"""
        label, start, end = resolve_period_window(period)
        invoices = self.db.query(Invoice).filter(
            *self._invoice_criteria(tenant_id, start, end)
        ).order_by(Invoice.invoice_date, Invoice.invoice_number).all()

        sections = OrderedDict((key, DraftSection(label=name)) for key, name in SECTION_LABELS.items())
        totals = DraftTotals()
        preview = []

        for invoice in invoices:
            section = sections[classify_invoice(invoice)]
            taxable = _taxable(invoice)
            tax = to_decimal(invoice.tax_amount)

            section.count += 1
            section.taxable_value += taxable
            section.tax += tax
            section.invoice_numbers.append(invoice.invoice_number)

            totals.invoices += 1
            totals.taxable_value += taxable
            totals.tax += tax

            preview.append(DraftInvoice(
                invoice_number=invoice.invoice_number,
                invoice_date=invoice.invoice_date,
                customer_name=invoice.customer_name,
                customer_gstin=invoice.customer_gstin,
                gst_treatment=invoice.gst_treatment,
                status=invoice.status,
                taxable_value=taxable,
                tax_amount=tax,
                cgst_total=invoice.cgst_total,
                sgst_total=invoice.sgst_total,
                igst_total=invoice.igst_total,
                place_of_supply=invoice.place_of_supply
            ))

        return DraftOut(
            period=label,
            range=PeriodRange(start=start, end=end),
            totals=totals,
            sections=sections,
            invoices=preview
        )

    def _find_return(self, tenant_id: UUID, period: str, return_type: str) -> Optional[PeriodReturn]:
        return self.db.query(PeriodReturn).filter(
            PeriodReturn.tenant_id == tenant_id,
            PeriodReturn.period == period,
            PeriodReturn.return_type == return_type
        ).first()

    @staticmethod
    def _apply_summary(period_return: PeriodReturn, summary: PeriodSummary, actor_id: Optional[UUID]) -> None:
        data = summary.model_dump(exclude={"tenant_id", "return_type", "summary_breakup"})
        for field, value in data.items():
            setattr(period_return, field, value)
        period_return.summary_breakup = summary.model_dump(mode="json")["summary_breakup"]
        period_return.status = FilingStatus.DRAFT.value
        period_return.updated_by = actor_id

    def upsert_return(
        self,
        tenant_id: UUID,
        period: PeriodToken = None,
        return_type: Union[ReturnType, str] = ReturnType.GSTR1,
        actor_id: Optional[UUID] = None
    ) -> PeriodReturn:
        """
        Generar o regenerar la declaración de (organización, periodo, tipo).

        Sobrescribe los totales y vuelve a borrador; el historial de
        presentación existente se conserva.
        """
        summary = self.summarize(tenant_id, period, return_type)
        return_type = ReturnType(return_type).value

        try:
            period_return = self._find_return(tenant_id, summary.period, return_type)
            created = period_return is None
            if created:
                period_return = PeriodReturn(
                    tenant_id=tenant_id,
                    return_type=return_type,
                    created_by=actor_id,
                    version=1
                )
                self.db.add(period_return)
            else:
                period_return.version = (period_return.version or 0) + 1

            self._apply_summary(period_return, summary, actor_id)
            try:
                self.db.commit()
            except IntegrityError:
                # Otro escritor insertó la misma clave; se actualiza la suya
                self.db.rollback()
                period_return = self._find_return(tenant_id, summary.period, return_type)
                if period_return is None:
                    raise
                period_return.version = (period_return.version or 0) + 1
                self._apply_summary(period_return, summary, actor_id)
                self.db.commit()
                created = False

            self.db.refresh(period_return)
            logger.info(
                f"{return_type} return for {summary.period} {'created' if created else 'regenerated'} "
                f"(tenant {tenant_id}): tax {summary.total_tax}, {summary.total_invoices} invoices"
            )
            return period_return

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Return upsert failed for tenant {tenant_id}, period {summary.period}: {e}")
            raise TransientInfrastructureError()

    def get_return(self, return_id: UUID, tenant_id: UUID) -> PeriodReturn:
        period_return = self.db.query(PeriodReturn).options(
            selectinload(PeriodReturn.filings)
        ).filter(
            PeriodReturn.id == return_id,
            PeriodReturn.tenant_id == tenant_id
        ).first()
        if not period_return:
            raise NotFoundError("Declaración no encontrada")
        return period_return

    def list_returns(
        self,
        tenant_id: UUID,
        return_type: Optional[ReturnType] = None,
        limit: int = 10,
        offset: int = 0
    ) -> dict:
        query = self.db.query(PeriodReturn).options(
            selectinload(PeriodReturn.filings)
        ).filter(PeriodReturn.tenant_id == tenant_id)
        if return_type:
            query = query.filter(PeriodReturn.return_type == ReturnType(return_type).value)

        total = query.count()
        returns = query.order_by(
            PeriodReturn.period.desc(), PeriodReturn.return_type
        ).offset(offset).limit(limit).all()
        return {"returns": returns, "total": total, "limit": limit, "offset": offset}

    def transition_status(
        self,
        return_id: UUID,
        new_status: str,
        tenant_id: UUID,
        actor_id: Optional[UUID] = None,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> PeriodReturn:
        """
        Cambiar el estado de presentación y registrarlo en el historial.
        No se restringen las transiciones hacia atrás.
        """
        try:
            target = FilingStatus(str(new_status).strip().lower())
        except ValueError:
            allowed = ", ".join(s.value for s in FilingStatus)
            raise ValidationError(f"Estado inválido: {new_status}. Permitidos: {allowed}")

        try:
            period_return = self.get_return(return_id, tenant_id)
            if expected_version is not None and expected_version != period_return.version:
                raise ConcurrencyConflictError(
                    f"La declaración está en la versión {period_return.version}, se esperaba {expected_version}"
                )

            previous = period_return.status
            period_return.filings.append(PeriodReturnFiling(
                position=len(period_return.filings),
                status=target.value,
                reference_number=reference_number,
                notes=notes,
                submitted_by=actor_id
            ))
            period_return.status = target.value
            period_return.updated_by = actor_id
            if notes is not None:
                period_return.notes = notes
            period_return.version = (period_return.version or 0) + 1

            self.db.commit()
            self.db.refresh(period_return)
            logger.info(f"Return {period_return.id} ({period_return.period}) moved {previous} -> {target.value}")
            return period_return

        except HTTPException:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Status transition failed for return {return_id}: {e}")
            raise TransientInfrastructureError()
