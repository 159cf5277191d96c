from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Date, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class ReturnType(enum.Enum):
    GSTR1 = "GSTR1"    # Ventas (suministros emitidos)
    GSTR3B = "GSTR3B"  # Resumen mensual con pago de impuesto
    ANNUAL = "ANNUAL"


class FilingStatus(enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    FILED = "filed"
    PAID = "paid"


class PeriodReturn(Base, TenantMixin, TimestampMixin):
    """Declaración de un periodo (mes calendario) por organización y tipo"""
    __tablename__ = "gst_returns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    period = Column(String(7), nullable=False, index=True)  # AAAA-MM
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    return_type = Column(String(10), nullable=False, default=ReturnType.GSTR1.value)

    # Totales agregados (se sobrescriben en cada regeneración)
    total_taxable_value = Column(Numeric(15, 2), nullable=False, default=0)
    total_tax = Column(Numeric(15, 2), nullable=False, default=0)
    total_cess = Column(Numeric(15, 2), nullable=False, default=0)
    gross_turnover = Column(Numeric(15, 2), nullable=False, default=0)
    payments_received = Column(Numeric(15, 2), nullable=False, default=0)
    payments_paid = Column(Numeric(15, 2), nullable=False, default=0)
    outstanding_tax_liability = Column(Numeric(15, 2), nullable=False, default=0)
    total_invoices = Column(Integer, nullable=False, default=0)
    total_transactions = Column(Integer, nullable=False, default=0)
    summary_breakup = Column(JSON, nullable=True)

    status = Column(String(10), nullable=False, default=FilingStatus.DRAFT.value)
    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    updated_by = Column(UUID(as_uuid=True), nullable=True)

    filings = relationship(
        "PeriodReturnFiling",
        back_populates="period_return",
        cascade="all, delete-orphan",
        order_by="PeriodReturnFiling.position"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "period", "return_type", name="uq_gst_return_tenant_period_type"),
    )


class PeriodReturnFiling(Base):
    """Historial de presentación: solo se agregan filas"""
    __tablename__ = "gst_return_filings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    return_id = Column(UUID(as_uuid=True), ForeignKey("gst_returns.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    status = Column(String(10), nullable=False)
    reference_number = Column(String(100), nullable=True)  # ARN del portal
    notes = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    submitted_by = Column(UUID(as_uuid=True), nullable=True)

    period_return = relationship("PeriodReturn", back_populates="filings")
