from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List
from enum import Enum


class SupplyType(str, Enum):
    INTRA = "intra"  # Mismo estado: CGST + SGST
    INTER = "inter"  # Distinto estado: IGST


class TaxSplit(BaseModel):
    """Reparto jurisdiccional del impuesto"""
    cgst: Decimal = Decimal('0')
    sgst: Decimal = Decimal('0')
    igst: Decimal = Decimal('0')

    @property
    def total(self) -> Decimal:
        return self.cgst + self.sgst + self.igst


class TaxSplitRequest(BaseModel):
    """Esquema para previsualizar el reparto de un impuesto"""
    taxable_value: Decimal = Field(..., ge=0, description="Base gravable")
    tax_rate: Decimal = Field(..., ge=0, le=100, description="Tasa en porcentaje (ej. 18)")
    supply_type: SupplyType = SupplyType.INTRA


class TaxSplitOut(TaxSplit):
    taxable_value: Decimal
    tax_rate: Decimal
    supply_type: SupplyType
    tax_amount: Decimal


class GstRate(BaseModel):
    name: str
    rate: Decimal
    applicable_to: str


class GstRateList(BaseModel):
    rates: List[GstRate]
