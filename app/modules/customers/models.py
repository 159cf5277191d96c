"""
Modelo de clientes.

El GSTIN determina el tratamiento B2B/B2C de las facturas y el lugar de
suministro (o el estado) determina si la venta es intra o inter estatal.
"""

from app.database.database import Base
from sqlalchemy import Column, String, Boolean, JSON
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class GstRegistrationType(enum.Enum):
    REGULAR = "regular"
    COMPOSITION = "composition"
    UNREGISTERED = "unregistered"
    CONSUMER = "consumer"
    OVERSEAS = "overseas"
    SEZ = "sez"


class Customer(Base, TenantMixin, TimestampMixin):
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False, index=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)

    # Información fiscal
    gstin = Column(String(15), nullable=True, index=True)
    gst_registration_type = Column(String(20), nullable=False, default=GstRegistrationType.REGULAR.value)
    place_of_supply = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)

    billing_address = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
