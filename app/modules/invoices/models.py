from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Date, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import date
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, SoftDeleteMixin
from app.modules.invoices.schemas import InvoiceStatus, PaymentStatus, GstTreatment


class Invoice(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Número asignado una sola vez, inmutable
    invoice_number = Column(String(50), nullable=False, index=True)
    invoice_date = Column(Date, nullable=False, default=date.today, index=True)
    due_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value)
    currency = Column(String(3), nullable=False, default="INR")
    notes = Column(Text, nullable=True)

    # Cliente (snapshot de datos fiscales al momento de facturar)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    customer_name = Column(String(200), nullable=True)
    customer_gstin = Column(String(15), nullable=True)
    billing_address = Column(JSON, nullable=True)
    shipping_address = Column(JSON, nullable=True)

    # Clasificación GST
    place_of_supply = Column(String(100), nullable=True)
    supply_type = Column(String(10), nullable=False, default="intra")
    gst_treatment = Column(String(10), nullable=False, default=GstTreatment.B2C.value)

    # Totales (calculados, nunca editados a mano)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount_total = Column(Numeric(15, 2), nullable=False, default=0)
    cgst_total = Column(Numeric(15, 2), nullable=False, default=0)
    sgst_total = Column(Numeric(15, 2), nullable=False, default=0)
    igst_total = Column(Numeric(15, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(15, 2), nullable=False, default=0)
    shipping_charge = Column(Numeric(15, 2), nullable=False, default=0)
    invoice_discount = Column(Numeric(15, 2), nullable=False, default=0)
    grand_total = Column(Numeric(15, 2), nullable=False, default=0)

    # Caché de pago; el libro de pagos es la fuente de verdad
    amount_paid = Column(Numeric(15, 2), nullable=False, default=0)
    balance_due = Column(Numeric(15, 2), nullable=False, default=0)
    payment_status = Column(String(10), nullable=False, default=PaymentStatus.UNPAID.value)

    version = Column(Integer, nullable=False, default=1)
    created_by = Column(UUID(as_uuid=True), nullable=True)

    customer = relationship("Customer")
    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_tenant_number"),
    )


class InvoiceLineItem(Base, TimestampMixin):
    __tablename__ = "invoice_line_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # Referencia débil al catálogo: un ítem desconocido no impide facturar
    item_id = Column(UUID(as_uuid=True), nullable=True)

    # Snapshot (para preservar información si el ítem cambia)
    description = Column(String(255), nullable=True)
    hsn_sac_code = Column(String(20), nullable=True)

    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)  # Precio sin impuestos
    discount = Column(Numeric(15, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)

    taxable_value = Column(Numeric(15, 2), nullable=False)  # max(quantity * unit_price - discount, 0)
    cgst_amount = Column(Numeric(15, 2), nullable=False, default=0)
    sgst_amount = Column(Numeric(15, 2), nullable=False, default=0)
    igst_amount = Column(Numeric(15, 2), nullable=False, default=0)
    line_total = Column(Numeric(15, 2), nullable=False)  # taxable_value + impuestos

    invoice = relationship("Invoice", back_populates="line_items")
