"""
Unit tests for the breakage aggregator.

Run: python -m pytest test_breakage.py -v
"""

from datetime import date

import pytest

from breakage import aggregate_breakage, breakage_record, empty_breakage

START, END = date(2024, 3, 1), date(2024, 3, 31)


def _row(fecha, provider, material, produced, ens=0, noemb=0, vento=0, transp=0):
    return {
        "FECHA": fecha,
        "DESCRIPCION_PROVEEDOR": provider,
        "DESCRIPCION_MATERIAL": material,
        "BOLSAS PRODUCIDAS": produced,
        "BOLSAS DESCARTADAS_ENSACADORA": ens,
        "BOLSAS DESCARTADAS_NO_EMBOQUILLADA": noemb,
        "BOLSAS_DESCARTADAS_VENTOCHECK": vento,
        "BOLSAS_DESCARTADAS_TRANSPORTE": transp,
    }


ROWS = [
    _row("05/03/2024", "Papelera Sur", "CEMENTO MAESTRO", "1.000", ens=10, transp=5),
    _row("05/03/2024", "Bolsas SA", "CEMENTO MAESTRO", 2000, ens=20, vento=20),
    _row("06/03/2024", "Papelera Sur", "CEMENTO RAPIDO", 1000, ens=5),
    _row("06/03/2024", "", "", 0),
    _row("06/04/2024", "Bolsas SA", "CEMENTO MAESTRO", 5000, ens=500),
]


class TestBreakageRecord:
    def test_defaults_and_sum(self):
        rec = breakage_record(_row("05/03/2024", "", "", "", ens="3", transp="2"), date(2024, 3, 5))
        assert rec["provider"] == "Sin Proveedor"
        assert rec["material"] == "Desconocido"
        assert rec["produced"] == 0.0
        assert rec["broken"] == 5.0


class TestAggregateBreakage:
    def test_totals(self):
        agg = aggregate_breakage(ROWS, START, END)
        assert agg["totalProduced"] == 4000.0
        assert agg["totalBroken"] == 60.0
        assert agg["globalRate"] == pytest.approx(1.5)

    def test_broken_equals_sector_sum(self):
        agg = aggregate_breakage(ROWS, START, END)
        assert agg["totalBroken"] == sum(s["value"] for s in agg["bySector"])

    def test_sectors(self):
        agg = aggregate_breakage(ROWS, START, END)
        sectors = {s["key"]: s for s in agg["bySector"]}
        # No Emboquillada never broke a bag, so it is not listed.
        assert set(sectors) == {"Ensacadora", "Ventocheck", "Transporte"}
        assert sectors["Ensacadora"]["value"] == 35.0
        assert sectors["Ensacadora"]["percentage"] == pytest.approx(35 / 60 * 100)
        assert sum(s["percentage"] for s in agg["bySector"]) == pytest.approx(100.0)

    def test_providers_worst_first(self):
        agg = aggregate_breakage(ROWS, START, END)
        names = [p["name"] for p in agg["byProvider"]]
        assert names == ["Bolsas SA", "Papelera Sur", "Sin Proveedor"]
        assert agg["byProvider"][0]["rate"] == pytest.approx(2.0)
        assert agg["byProvider"][0]["id"] == "id_Bolsas_SA"
        assert agg["byProvider"][2]["rate"] == 0.0

    def test_materials_carry_sector_breakdown(self):
        agg = aggregate_breakage(ROWS, START, END)
        maestro = next(m for m in agg["byMaterial"] if m["name"] == "CEMENTO MAESTRO")
        assert maestro["produced"] == 3000.0
        assert maestro["sector_Ensacadora"] == 30.0
        assert maestro["sector_Ventocheck"] == 20.0
        assert maestro["sector_Transporte"] == 5.0

    def test_history(self):
        agg = aggregate_breakage(ROWS, START, END)
        assert [h["date"] for h in agg["history"]] == ["05/03", "06/03"]
        assert agg["history"][0]["id_Papelera_Sur"] == 1.5
        assert agg["history"][0]["id_Bolsas_SA"] == 2.0
        assert agg["history"][1]["id_Papelera_Sur"] == 0.5
        assert agg["providers"]["id_Bolsas_SA"] == "Bolsas SA"

    def test_history_day_order_across_months(self):
        rows = [_row("02/04/2024", "P", "M", 100, ens=1),
                _row("30/03/2024", "P", "M", 100, ens=2)]
        agg = aggregate_breakage(rows, date(2024, 3, 1), date(2024, 4, 30))
        assert [h["date"] for h in agg["history"]] == ["30/03", "02/04"]


class TestEmptyBreakage:
    def test_zero_guard(self):
        agg = aggregate_breakage([], START, END)
        assert agg == empty_breakage()
        assert agg["globalRate"] == 0.0

    def test_no_production_rate_is_zero(self):
        agg = aggregate_breakage([_row("05/03/2024", "P", "M", 0, ens=4)], START, END)
        assert agg["totalBroken"] == 4.0
        assert agg["globalRate"] == 0.0
        assert agg["byProvider"][0]["rate"] == 0.0
        assert agg["history"][0]["id_P"] == 0.0


class TestBreakageBounds:
    @pytest.mark.parametrize("rows", [
        ROWS,
        [_row("05/03/2024", "P", "M", 10, ens=10)],
        [_row("05/03/2024", "P", "M", "1.000", ens=1, noemb=2, vento=3, transp=4)],
        [_row("05/03/2024", "P", "M", 0, ens=7), _row("05/03/2024", "Q", "M", 500)],
        [_row("05/03/2024", "P", "M", "abc", ens="x")],
    ])
    def test_global_rate_between_0_and_100(self, rows):
        agg = aggregate_breakage(rows, START, END)
        assert 0.0 <= agg["globalRate"] <= 100.0


class TestProviderKeys:
    def test_colliding_names_warn(self, caplog):
        rows = [_row("05/03/2024", "A.B", "M", 100, ens=1),
                _row("05/03/2024", "A B", "M", 100, ens=3)]
        with caplog.at_level("WARNING", logger="breakage"):
            agg = aggregate_breakage(rows, START, END)
        assert agg["providers"] == {"id_A_B": "A.B"}
        assert "share chart key id_A_B" in caplog.text

    def test_distinct_names_quiet(self, caplog):
        with caplog.at_level("WARNING", logger="breakage"):
            aggregate_breakage(ROWS, START, END)
        assert caplog.text == ""
