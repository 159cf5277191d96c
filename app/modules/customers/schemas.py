from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import datetime
from enum import Enum

from app.common.validators import validate_gstin, format_gstin


class GstRegistrationType(str, Enum):
    REGULAR = "regular"
    COMPOSITION = "composition"
    UNREGISTERED = "unregistered"
    CONSUMER = "consumer"
    OVERSEAS = "overseas"
    SEZ = "sez"


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    gstin: Optional[str] = Field(None, max_length=20)
    gst_registration_type: GstRegistrationType = GstRegistrationType.REGULAR
    place_of_supply: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    billing_address: Optional[Dict[str, Any]] = None

    @field_validator('gstin')
    @classmethod
    def validate_gstin_field(cls, v):
        if v is None or v == "":
            return None
        if not validate_gstin(v):
            raise ValueError('GSTIN inválido')
        return format_gstin(v)


class CustomerOut(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    gstin: Optional[str] = None
    gst_registration_type: GstRegistrationType
    place_of_supply: Optional[str] = None
    state: Optional[str] = None
    billing_address: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CustomerList(BaseModel):
    customers: List[CustomerOut]
    total: int
    limit: int
    offset: int
