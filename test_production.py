"""
Unit tests for production totals and OEE math.

Run: python -m pytest test_production.py -v
"""

from datetime import date

import pandas as pd
import pytest

from production import (
    _weighted_mean,
    aggregate_production,
    compute_availability,
    compute_oee,
    empty_production,
    global_oee,
    load_production,
    oee_band,
)

START, END = date(2024, 3, 1), date(2024, 3, 31)


def _header(id_, machine, shift, tn, marcha, ext, dur, rend, fecha="05/03/2024"):
    return {
        "fecha": fecha, "id_produccion": id_, "descripcion_paletizadora": machine,
        "turno": shift, "tn_totales_turno": tn, "hs_marcha": marcha,
        "hs_paro_externo_decimal": ext, "duracion_turno": dur, "rendimiento": rend,
    }


def _detail(header_id, material, bags):
    return {"ID_CABECERA": header_id, "DESCRIPCION_MATERIAL": material, "BOLSAS PRODUCIDAS": bags}


HEADERS = [
    _header(1, "PAL-1", "1.MAÑANA", 100.0, 6.0, 1.0, 8.0, 0.9),
    _header(2, "PAL-1", "2.TARDE", 50.0, 4.0, 0.0, 8.0, 0.6),
    _header(3, "PAL-2", "1.MAÑANA", 0.0, 0.0, 0.0, 0.0, 0.0),
    _header(5, "PAL-2", "2.TARDE", 80.0, 8.0, 0.0, 8.0, 1.0, fecha="05/04/2024"),
]
DETAILS = [
    _detail(1.0, "CEMENTO MAESTRO", 2000),
    _detail(1.0, "CEMENTO RAPIDO", "500"),
    _detail("2", "CEMENTO MAESTRO", 1000),
    _detail(99, "CEMENTO MAESTRO", 777),
    _detail(5, "CEMENTO MAESTRO", 1600),
]


# =====================================================================
# Formula engine
# =====================================================================

class TestFormulas:
    def test_availability_counts_external_stops(self):
        assert compute_availability(6, 1, 8) == pytest.approx(0.875)

    def test_availability_zero_guard(self):
        assert compute_availability(1, 0, 0) == 0.0
        assert compute_availability(1, 0, -2) == 0.0

    def test_oee(self):
        assert compute_oee(0.875, 0.9) == pytest.approx(0.7875)
        assert compute_oee(0.0, 0.9) == 0.0

    def test_bands(self):
        assert oee_band(0.90) == "good"
        assert oee_band(0.85) == "good"
        assert oee_band(0.70) == "fair"
        assert oee_band(0.40) == "poor"


class TestWeightedMean:
    def test_tonnage_weighting(self):
        values = pd.Series([0.9, 0.5])
        weights = pd.Series([100.0, 300.0])
        # Simple mean would be 0.7
        assert _weighted_mean(values, weights) == pytest.approx(0.6)

    def test_zero_weights(self):
        assert _weighted_mean(pd.Series([0.9]), pd.Series([0.0])) == 0.0


# =====================================================================
# Loading / joining
# =====================================================================

class TestLoadProduction:
    def test_orphans_dropped(self):
        hdf, ddf = load_production(HEADERS, DETAILS, START, END)
        assert len(hdf) == 3
        assert sorted(ddf["headerId"].unique()) == ["1", "2"]
        assert 777 not in ddf["bags"].tolist()

    def test_details_of_out_of_range_headers_dropped(self):
        _, ddf = load_production(HEADERS, DETAILS, START, END)
        assert 1600 not in ddf["bags"].tolist()

    def test_blank_ids_do_not_join(self):
        headers = [_header("", "PAL-1", "3.NOCHE", 25.0, 6.0, 0.0, 8.0, 0.9)]
        details = [{"ID_CABECERA": "", "DESCRIPCION_MATERIAL": "CEMENTO MAESTRO",
                    "BOLSAS PRODUCIDAS": "500", "TN_PRODUCIDA": 25.0}]
        hdf, ddf = load_production(headers, details, START, END)
        assert len(hdf) == 1
        assert ddf.empty
        assert aggregate_production(headers, details, START, END)["totalBags"] == 0.0


# =====================================================================
# Aggregation
# =====================================================================

class TestAggregateProduction:
    def test_totals(self):
        agg = aggregate_production(HEADERS, DETAILS, START, END)
        assert agg["totalBags"] == 3500.0
        assert agg["totalTn"] == 150.0

    def test_by_shift(self):
        agg = aggregate_production(HEADERS, DETAILS, START, END)
        assert agg["byShift"] == [
            {"name": "1.MAÑANA", "value": 2500.0, "target": 0},
            {"name": "2.TARDE", "value": 1000.0, "target": 0},
        ]

    def test_by_machine(self):
        agg = aggregate_production(HEADERS, DETAILS, START, END)
        assert agg["byMachine"] == [
            {"name": "PAL-1", "value": 3500.0, "valueTn": 150.0},
            {"name": "PAL-2", "value": 0.0, "valueTn": 0.0},
        ]
        assert agg["byMachineProduct"] == [
            {"name": "PAL-1", "CEMENTO MAESTRO": 3000.0, "CEMENTO RAPIDO": 500.0},
        ]
        assert agg["materials"] == ["CEMENTO MAESTRO", "CEMENTO RAPIDO"]

    def test_shift_oee(self):
        agg = aggregate_production(HEADERS, DETAILS, START, END)
        details = {(d["machineName"], d["shift"]): d for d in agg["details"]}
        morning = details[("PAL-1", "1.MAÑANA")]
        assert morning["availability"] == pytest.approx(0.875)
        assert morning["performance"] == pytest.approx(0.9)
        assert morning["quality"] == 1.0
        assert morning["oee"] == pytest.approx(0.7875)

    def test_zero_length_shift(self):
        """A header with duracion_turno = 0 yields availability 0, not NaN."""
        agg = aggregate_production(HEADERS, DETAILS, START, END)
        details = {(d["machineName"], d["shift"]): d for d in agg["details"]}
        idle = details[("PAL-2", "1.MAÑANA")]
        assert idle["availability"] == 0.0
        assert idle["oee"] == 0.0

    def test_machine_ranking(self):
        agg = aggregate_production(HEADERS, DETAILS, START, END)
        assert [m["name"] for m in agg["machines"]] == ["PAL-1", "PAL-2"]
        assert agg["machines"][0]["oee"] == pytest.approx((0.7875 + 0.3) / 2)
        assert agg["machines"][0]["band"] == "poor"

    def test_global(self):
        agg = aggregate_production(HEADERS, DETAILS, START, END)
        g = agg["global"]
        assert g["availability"] == pytest.approx((0.875 + 0.5 + 0.0) / 3)
        assert g["performance"] == pytest.approx((0.9 + 0.6 + 0.0) / 3)
        assert g["oee"] == pytest.approx(g["availability"] * g["performance"])

    def test_weighted_performance_within_group(self):
        headers = [
            _header(1, "PAL-1", "1.MAÑANA", 100.0, 6.0, 1.0, 8.0, 0.9),
            _header(4, "PAL-1", "1.MAÑANA", 300.0, 8.0, 0.0, 8.0, 0.5),
        ]
        agg = aggregate_production(headers, [], START, END)
        d = agg["details"][0]
        assert d["availability"] == pytest.approx(15 / 16)
        assert d["performance"] == pytest.approx(0.6)
        assert d["records"] == 2


class TestEmptyProduction:
    def test_zero_guard(self):
        agg = aggregate_production([], [], START, END)
        assert agg == empty_production()
        assert agg["global"] == {"availability": 0.0, "performance": 0.0, "oee": 0.0}

    def test_global_empty(self):
        assert global_oee([])["oee"] == 0.0
