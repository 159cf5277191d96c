"""
Cálculo de impuestos GST.

Reparto jurisdiccional del impuesto de una línea:
- Suministro intra-estatal: CGST + SGST, mitades iguales del impuesto
- Suministro inter-estatal: IGST por el total del impuesto

Funciones puras, sin estado ni acceso a base de datos.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Union

from app.modules.taxes.schemas import SupplyType, TaxSplit


ZERO = Decimal('0')
CENT = Decimal('0.01')
HUNDRED = Decimal('100')

Number = Union[Decimal, int, str, float, None]


def to_decimal(value: Number) -> Decimal:
    """Convertir a Decimal sin pasar por binario (floats via str)"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Number) -> Decimal:
    """Redondear a 2 decimales usando ROUND_HALF_UP (redondeo comercial)"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def split_tax(
    taxable_value: Number,
    tax_rate: Number,
    supply_type: Union[SupplyType, str] = SupplyType.INTRA
) -> TaxSplit:
    """
    Repartir el impuesto de un valor gravable.

    Args:
        taxable_value: Base gravable (>= 0)
        tax_rate: Tasa en porcentaje (ej. 18 para 18%)
        supply_type: intra (CGST+SGST) o inter (IGST)

    Returns:
        TaxSplit con exactamente un canal cargando el impuesto completo.
        Base o tasa cero producen todo en cero.
    """
    base = to_decimal(taxable_value)
    rate = to_decimal(tax_rate)
    if base <= ZERO or rate <= ZERO:
        return TaxSplit(cgst=ZERO, sgst=ZERO, igst=ZERO)

    total_tax = base * rate / HUNDRED
    if SupplyType(supply_type) == SupplyType.INTER:
        return TaxSplit(cgst=ZERO, sgst=ZERO, igst=total_tax)

    half = total_tax / 2
    return TaxSplit(cgst=half, sgst=half, igst=ZERO)


def determine_supply_type(origin_state: Optional[str], destination_state: Optional[str]) -> SupplyType:
    """
    Intra si origen y destino coinciden (sin distinguir mayúsculas).
    Si alguno es desconocido se asume intra.
    """
    if not origin_state or not destination_state:
        return SupplyType.INTRA
    origin = origin_state.strip().lower()
    destination = destination_state.strip().lower()
    if not origin or not destination:
        return SupplyType.INTRA
    return SupplyType.INTRA if origin == destination else SupplyType.INTER


def standard_gst_rates() -> List[Dict]:
    """
    Tasas GST estándar
    Útil para interfaces de usuario
    """
    return [
        {
            "name": "GST 0%",
            "rate": Decimal("0"),
            "applicable_to": "Bienes exentos (granos, leche fresca, libros)"
        },
        {
            "name": "GST 5%",
            "rate": Decimal("5"),
            "applicable_to": "Bienes de consumo masivo"
        },
        {
            "name": "GST 12%",
            "rate": Decimal("12"),
            "applicable_to": "Alimentos procesados"
        },
        {
            "name": "GST 18%",
            "rate": Decimal("18"),
            "applicable_to": "Mayoría de bienes y servicios"
        },
        {
            "name": "GST 28%",
            "rate": Decimal("28"),
            "applicable_to": "Bienes de lujo y de demérito"
        }
    ]
