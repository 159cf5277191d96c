from fastapi import APIRouter

from app.modules.taxes.calculator import split_tax, standard_gst_rates
from app.modules.taxes.schemas import TaxSplitRequest, TaxSplitOut, GstRateList

taxes_router = APIRouter(prefix="/taxes", tags=["Taxes"])


@taxes_router.get("/rates", response_model=GstRateList)
def list_standard_rates():
    """
    Listar tasas GST estándar (0, 5, 12, 18, 28)
    """
    return {"rates": standard_gst_rates()}


@taxes_router.post("/split", response_model=TaxSplitOut)
def preview_tax_split(request: TaxSplitRequest):
    """
    Previsualizar el reparto CGST/SGST/IGST de una base gravable.
    No persiste nada.
    """
    split = split_tax(request.taxable_value, request.tax_rate, request.supply_type)
    return TaxSplitOut(
        taxable_value=request.taxable_value,
        tax_rate=request.tax_rate,
        supply_type=request.supply_type,
        cgst=split.cgst,
        sgst=split.sgst,
        igst=split.igst,
        tax_amount=split.total
    )
