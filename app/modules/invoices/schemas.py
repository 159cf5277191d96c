from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import date, datetime
from enum import Enum

from app.modules.taxes.schemas import SupplyType


class InvoiceStatus(str, Enum):
    DRAFT = "draft"          # Borrador
    SENT = "sent"            # Enviada al cliente
    PAID = "paid"            # Pagada
    OVERDUE = "overdue"      # Vencida
    CANCELLED = "cancelled"  # Anulada


class PaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"


class GstTreatment(str, Enum):
    B2B = "b2b"        # Cliente con GSTIN
    B2C = "b2c"        # Consumidor final
    EXPORT = "export"
    SEZ = "sez"        # Zona económica especial


# Invoice Line Item Schemas
class InvoiceLineItemCreate(BaseModel):
    """
    Línea solicitada. Los valores enviados tienen prioridad sobre el catálogo;
    cantidad y precio se validan al procesar la línea (pueden venir del catálogo).
    """
    item_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=255)
    hsn_sac_code: Optional[str] = Field(None, max_length=20)
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    tax_rate: Optional[Decimal] = None


class ProcessedLine(BaseModel):
    """Línea materializada con su base gravable y reparto de impuesto"""
    position: int
    item_id: Optional[UUID] = None
    description: Optional[str] = None
    hsn_sac_code: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    tax_rate: Decimal
    taxable_value: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    line_total: Decimal


class InvoiceTotals(BaseModel):
    subtotal: Decimal = Decimal('0.00')
    discount_total: Decimal = Decimal('0.00')
    cgst_total: Decimal = Decimal('0.00')
    sgst_total: Decimal = Decimal('0.00')
    igst_total: Decimal = Decimal('0.00')
    tax_amount: Decimal = Decimal('0.00')
    shipping_charge: Decimal = Decimal('0.00')
    invoice_discount: Decimal = Decimal('0.00')
    grand_total: Decimal = Decimal('0.00')


class InvoiceLineItemOut(BaseModel):
    id: UUID
    position: int
    item_id: Optional[UUID] = None
    description: Optional[str] = None
    hsn_sac_code: Optional[str] = None
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal
    tax_rate: Decimal
    taxable_value: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


# Invoice Schemas
class InvoiceCreate(BaseModel):
    customer_id: Optional[UUID] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    place_of_supply: Optional[str] = Field(None, max_length=100)
    supply_type: Optional[SupplyType] = Field(None, description="Forzar intra/inter; si no, se deduce del estado")
    gst_treatment: Optional[GstTreatment] = Field(None, description="Forzar tratamiento; si no, b2b/b2c según GSTIN")
    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None
    shipping_charge: Decimal = Field(Decimal('0'), ge=0)
    invoice_discount: Decimal = Field(Decimal('0'), ge=0)
    items: List[InvoiceLineItemCreate] = Field(default_factory=list)


class InvoiceUpdate(BaseModel):
    """Actualización parcial: solo se aplican los campos enviados"""
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    status: Optional[InvoiceStatus] = None
    notes: Optional[str] = None
    place_of_supply: Optional[str] = Field(None, max_length=100)
    supply_type: Optional[SupplyType] = None
    gst_treatment: Optional[GstTreatment] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None
    shipping_charge: Optional[Decimal] = Field(None, ge=0)
    invoice_discount: Optional[Decimal] = Field(None, ge=0)
    items: Optional[List[InvoiceLineItemCreate]] = None
    expected_version: Optional[int] = Field(None, ge=1, description="Control de concurrencia optimista")


class InvoiceOut(BaseModel):
    id: UUID
    invoice_number: str
    invoice_date: date
    due_date: Optional[date] = None
    status: InvoiceStatus
    currency: str
    notes: Optional[str] = None
    customer_id: UUID
    customer_name: Optional[str] = None
    customer_gstin: Optional[str] = None
    billing_address: Optional[Dict[str, Any]] = None
    shipping_address: Optional[Dict[str, Any]] = None
    place_of_supply: Optional[str] = None
    supply_type: SupplyType
    gst_treatment: GstTreatment
    subtotal: Decimal
    discount_total: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    igst_total: Decimal
    tax_amount: Decimal
    shipping_charge: Decimal
    invoice_discount: Decimal
    grand_total: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    payment_status: PaymentStatus
    version: int
    created_at: datetime
    updated_at: datetime
    line_items: List[InvoiceLineItemOut] = []

    class Config:
        from_attributes = True


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int


class InvoiceFilters(BaseModel):
    customer_id: Optional[UUID] = None
    status: Optional[InvoiceStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
