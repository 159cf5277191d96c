"""
Tests del cálculo de impuestos GST

- Reparto intra (CGST + SGST) e inter (IGST)
- Entradas en cero
- Tipo de suministro por estado
- Redondeo comercial
"""

import pytest
from decimal import Decimal

from app.modules.taxes.calculator import (
    split_tax, determine_supply_type, quantize_money, standard_gst_rates
)
from app.modules.taxes.schemas import SupplyType


class TestSplitTax:
    """Tests para split_tax"""

    def test_intra_state_splits_evenly(self):
        split = split_tax(Decimal("200"), Decimal("18"), SupplyType.INTRA)
        assert split.cgst == Decimal("18")
        assert split.sgst == Decimal("18")
        assert split.igst == Decimal("0")

    def test_inter_state_goes_to_igst(self):
        split = split_tax(Decimal("200"), Decimal("18"), SupplyType.INTER)
        assert split.cgst == Decimal("0")
        assert split.sgst == Decimal("0")
        assert split.igst == Decimal("36")

    @pytest.mark.parametrize("taxable, rate", [
        (Decimal("0"), Decimal("18")),
        (Decimal("150"), Decimal("0")),
        (Decimal("0"), Decimal("0")),
    ])
    def test_zero_inputs_yield_zero(self, taxable, rate):
        for supply_type in SupplyType:
            split = split_tax(taxable, rate, supply_type)
            assert split.total == Decimal("0")

    @pytest.mark.parametrize("taxable, rate", [
        (Decimal("999.99"), Decimal("28")),
        (Decimal("0.01"), Decimal("5")),
        (Decimal("12345.67"), Decimal("12")),
    ])
    def test_tax_amount_is_split_kind_invariant(self, taxable, rate):
        expected = taxable * rate / Decimal("100")
        intra = split_tax(taxable, rate, SupplyType.INTRA)
        inter = split_tax(taxable, rate, SupplyType.INTER)
        assert intra.cgst == intra.sgst
        assert intra.total == expected
        assert inter.igst == expected
        assert intra.total == inter.total

    def test_accepts_plain_strings(self):
        split = split_tax("100", "5", "inter")
        assert split.igst == Decimal("5")

    def test_floats_are_converted_without_binary_noise(self):
        split = split_tax(0.1, 10, "inter")
        assert split.igst == Decimal("0.01")


class TestSupplyType:
    def test_same_state_is_intra(self):
        assert determine_supply_type("Maharashtra", " maharashtra ") == SupplyType.INTRA

    def test_different_state_is_inter(self):
        assert determine_supply_type("Maharashtra", "Karnataka") == SupplyType.INTER

    def test_unknown_side_falls_back_to_intra(self):
        assert determine_supply_type(None, "Karnataka") == SupplyType.INTRA
        assert determine_supply_type("Maharashtra", "") == SupplyType.INTRA


class TestQuantize:
    def test_round_half_up(self):
        assert quantize_money(Decimal("0.125")) == Decimal("0.13")
        assert quantize_money(Decimal("2.675")) == Decimal("2.68")
        assert quantize_money(Decimal("2.674")) == Decimal("2.67")

    def test_none_is_zero(self):
        assert quantize_money(None) == Decimal("0.00")

    def test_standard_rates(self):
        assert [r["rate"] for r in standard_gst_rates()] == [
            Decimal("0"), Decimal("5"), Decimal("12"), Decimal("18"), Decimal("28")
        ]


class TestTaxesRouter:
    def test_list_rates_without_tenant(self, client):
        response = client.get("/taxes/rates")
        assert response.status_code == 200
        assert len(response.json()["rates"]) == 5

    def test_preview_split(self, client):
        response = client.post("/taxes/split", json={
            "taxable_value": "200", "tax_rate": "18", "supply_type": "inter"
        })
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["igst"]) == Decimal("36")
        assert Decimal(data["tax_amount"]) == Decimal("36")
        assert Decimal(data["cgst"]) == Decimal("0")
