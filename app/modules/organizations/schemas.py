from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID
from datetime import datetime

from app.common.validators import validate_gstin, format_gstin


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    gstin: Optional[str] = Field(None, max_length=20)
    state: Optional[str] = Field(None, max_length=100, description="Estado de registro GST")
    address: Optional[str] = None

    @field_validator('gstin')
    @classmethod
    def validate_gstin_field(cls, v):
        if v is None or v == "":
            return None
        if not validate_gstin(v):
            raise ValueError('GSTIN inválido')
        return format_gstin(v)


class OrganizationOut(BaseModel):
    id: UUID
    name: str
    gstin: Optional[str] = None
    state: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
