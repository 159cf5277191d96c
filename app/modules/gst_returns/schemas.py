from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import date, datetime
from enum import Enum


class ReturnType(str, Enum):
    GSTR1 = "GSTR1"
    GSTR3B = "GSTR3B"
    ANNUAL = "ANNUAL"


class FilingStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    FILED = "filed"
    PAID = "paid"


class PeriodRange(BaseModel):
    start: date
    end: date


class StatusBreakup(BaseModel):
    count: int = 0
    value: Decimal = Decimal('0.00')


class PeriodSummary(BaseModel):
    """Resumen agregado de facturas y libro de transacciones de un periodo"""
    tenant_id: UUID
    period: str
    period_start: date
    period_end: date
    return_type: ReturnType
    total_taxable_value: Decimal
    total_tax: Decimal
    total_cess: Decimal
    gross_turnover: Decimal
    payments_received: Decimal
    payments_paid: Decimal
    outstanding_tax_liability: Decimal
    total_invoices: int
    total_transactions: int
    summary_breakup: Dict[str, Any]


class DraftSection(BaseModel):
    label: str
    count: int = 0
    taxable_value: Decimal = Decimal('0.00')
    tax: Decimal = Decimal('0.00')
    invoice_numbers: List[str] = []


class DraftTotals(BaseModel):
    taxable_value: Decimal = Decimal('0.00')
    tax: Decimal = Decimal('0.00')
    invoices: int = 0


class DraftInvoice(BaseModel):
    invoice_number: str
    invoice_date: date
    customer_name: Optional[str] = None
    customer_gstin: Optional[str] = None
    gst_treatment: str
    status: str
    taxable_value: Decimal
    tax_amount: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    igst_total: Decimal
    place_of_supply: Optional[str] = None


class DraftOut(BaseModel):
    period: str
    range: PeriodRange
    totals: DraftTotals
    sections: Dict[str, DraftSection]
    invoices: List[DraftInvoice]


class PeriodReturnCreate(BaseModel):
    period: Optional[str] = Field(None, description="AAAA-MM o una fecha ISO; por defecto el mes actual")
    return_type: ReturnType = ReturnType.GSTR1


class StatusTransition(BaseModel):
    # Texto libre: un estado inválido responde 400 desde el servicio
    status: str
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    expected_version: Optional[int] = Field(None, ge=1)


class FilingOut(BaseModel):
    status: FilingStatus
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    submitted_at: datetime
    submitted_by: Optional[UUID] = None

    class Config:
        from_attributes = True


class PeriodReturnOut(BaseModel):
    id: UUID
    period: str
    period_start: date
    period_end: date
    return_type: ReturnType
    total_taxable_value: Decimal
    total_tax: Decimal
    total_cess: Decimal
    gross_turnover: Decimal
    payments_received: Decimal
    payments_paid: Decimal
    outstanding_tax_liability: Decimal
    total_invoices: int
    total_transactions: int
    summary_breakup: Optional[Dict[str, Any]] = None
    status: FilingStatus
    notes: Optional[str] = None
    version: int
    created_by: Optional[UUID] = None
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    filings: List[FilingOut] = []

    class Config:
        from_attributes = True


class PeriodReturnList(BaseModel):
    returns: List[PeriodReturnOut]
    total: int
    limit: int
    offset: int
