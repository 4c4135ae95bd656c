"""
Production / OEE Aggregator
===========================
Joins PRODUCCION_CABECERA (one header per palletizer + shift + day) with
PRODUCCION_LISTA (one detail per material bagged under that header) and
derives bag/tonnage totals plus OEE per (machine, shift).

OEE math, per (machine, shift) group:
  Availability = (hs_marcha + hs_paro_externo) / duracion_turno
      External stops (upstream starvation) are not the machine's fault,
      so they count as available time.  Only internal stops reduce it.
  Performance  = tonnage-weighted mean of the per-row 'rendimiento'
  Quality      = 1 (not tracked at this plant)
  OEE          = Availability * Performance
"""

import pandas as pd

from shared import OEE_FAIR, OEE_GOOD
from sheet_parsers import cell, filter_by_date_range, parse_number, record_id, text

UNKNOWN_MACHINE = "Desconocida"
NO_SHIFT = "Sin Turno"
OTHER_MATERIAL = "Otros"

HEADER_COLUMNS = [
    "id", "machine", "shift", "tn", "hs_marcha", "hs_paro_ext",
    "duracion", "rendimiento",
]
DETAIL_COLUMNS = ["headerId", "machine", "shift", "material", "bags"]


# ---------------------------------------------------------------------------
# Formula engine
# ---------------------------------------------------------------------------
def _weighted_mean(values, weights):
    """Tonnage-weighted average, excluding zero-weight entries."""
    mask = weights > 0
    if not mask.any():
        return 0.0
    return float((values[mask] * weights[mask]).sum() / weights[mask].sum())


def compute_availability(hours_running, hours_external_stop, shift_hours):
    """(running + external stop) / shift length; 0 for a zero-length shift."""
    if shift_hours <= 0:
        return 0.0
    return (hours_running + hours_external_stop) / shift_hours


def compute_oee(availability, performance, quality=1.0):
    return availability * performance * quality


def oee_band(oee):
    """'good' >= 85%, 'fair' >= 65%, otherwise 'poor'."""
    if oee >= OEE_GOOD:
        return "good"
    if oee >= OEE_FAIR:
        return "fair"
    return "poor"


# ---------------------------------------------------------------------------
# Row loading
# ---------------------------------------------------------------------------
def header_record(row):
    return {
        "id": record_id(row, "id_produccion"),
        "machine": text(row, "descripcion_paletizadora", "paletizadora") or UNKNOWN_MACHINE,
        "shift": text(row, "turno") or NO_SHIFT,
        "tn": parse_number(cell(row, "tn_totales_turno")),
        "hs_marcha": parse_number(cell(row, "hs_marcha")),
        "hs_paro_ext": parse_number(cell(row, "hs_paro_externo_decimal")),
        "duracion": parse_number(cell(row, "duracion_turno")),
        "rendimiento": parse_number(cell(row, "rendimiento")),
    }


def join_details(headers_by_id, detail_rows):
    """Detail rows whose ID_CABECERA is a known header.  Orphans are dropped."""
    joined = []
    for row in detail_rows:
        header_id = record_id(row, "ID_CABECERA")
        header = headers_by_id.get(header_id) if header_id else None
        if header is None:
            continue
        joined.append({
            "headerId": header["id"],
            "machine": header["machine"],
            "shift": header["shift"],
            "material": text(row, "DESCRIPCION_MATERIAL") or OTHER_MATERIAL,
            "bags": parse_number(cell(row, "BOLSAS PRODUCIDAS")),
        })
    return joined


def load_production(header_rows, detail_rows, start, end):
    """Return (header_df, detail_df) for headers dated within [start, end]."""
    headers = [header_record(row) for row, _ in
               filter_by_date_range(header_rows, start, end, "fecha")]
    headers_by_id = {}
    for h in headers:
        if h["id"]:
            headers_by_id.setdefault(h["id"], h)
    details = join_details(headers_by_id, detail_rows)
    return (pd.DataFrame(headers, columns=HEADER_COLUMNS),
            pd.DataFrame(details, columns=DETAIL_COLUMNS))


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------
def build_shift_metrics(hdf):
    """OEE per (machine, shift), sorted by machine then shift."""
    details = []
    for (machine, shift), grp in hdf.groupby(["machine", "shift"], sort=True):
        availability = compute_availability(
            float(grp["hs_marcha"].sum()),
            float(grp["hs_paro_ext"].sum()),
            float(grp["duracion"].sum()),
        )
        performance = _weighted_mean(grp["rendimiento"], grp["tn"])
        details.append({
            "machineId": machine,
            "machineName": machine,
            "shift": shift,
            "availability": availability,
            "performance": performance,
            "quality": 1.0,
            "oee": compute_oee(availability, performance),
            "records": int(len(grp)),
        })
    return details


def rank_machines(details):
    """Mean A/P/OEE per machine across its shifts, best OEE first."""
    if not details:
        return []
    df = pd.DataFrame(details)
    agg = (
        df.groupby("machineName")
        .agg(availability=("availability", "mean"),
             performance=("performance", "mean"),
             oee=("oee", "mean"),
             shifts=("oee", "count"))
        .reset_index()
        .rename(columns={"machineName": "name"})
        .sort_values(["oee", "name"], ascending=[False, True], kind="mergesort")
    )
    return [
        {"name": r["name"], "availability": float(r["availability"]),
         "performance": float(r["performance"]), "oee": float(r["oee"]),
         "band": oee_band(float(r["oee"])), "shifts": int(r["shifts"])}
        for r in agg.to_dict("records")
    ]


def global_oee(details):
    """Plant-wide figures: mean availability and performance, OEE = A * P."""
    if not details:
        return {"availability": 0.0, "performance": 0.0, "oee": 0.0}
    availability = sum(d["availability"] for d in details) / len(details)
    performance = sum(d["performance"] for d in details) / len(details)
    return {
        "availability": availability,
        "performance": performance,
        "oee": compute_oee(availability, performance),
    }


def empty_production():
    return {
        "totalBags": 0.0,
        "totalTn": 0.0,
        "byShift": [],
        "byMachine": [],
        "byMachineProduct": [],
        "materials": [],
        "details": [],
        "machines": [],
        "global": global_oee([]),
    }


def aggregate_production(header_rows, detail_rows, start, end):
    """Bag/tonnage totals and OEE for production dated within [start, end]."""
    hdf, ddf = load_production(header_rows, detail_rows, start, end)
    result = empty_production()
    if hdf.empty:
        return result

    result["totalTn"] = float(hdf["tn"].sum())
    result["totalBags"] = float(ddf["bags"].sum())

    result["byShift"] = [
        {"name": shift, "value": float(bags), "target": 0}
        for shift, bags in ddf.groupby("shift")["bags"].sum().sort_index().items()
    ]

    tn_by_machine = hdf.groupby("machine")["tn"].sum()
    bags_by_machine = ddf.groupby("machine")["bags"].sum()
    machines = sorted(set(tn_by_machine.index) | set(bags_by_machine.index))
    result["byMachine"] = [
        {"name": m, "value": float(bags_by_machine.get(m, 0.0)),
         "valueTn": float(tn_by_machine.get(m, 0.0))}
        for m in machines
    ]

    # Machine x material stack, one series key per material.
    stack = ddf.groupby(["machine", "material"])["bags"].sum()
    by_machine_product = []
    for machine in sorted(ddf["machine"].unique()):
        entry = {"name": machine}
        for material, bags in stack.loc[machine].items():
            entry[material] = float(bags)
        by_machine_product.append(entry)
    result["byMachineProduct"] = by_machine_product
    result["materials"] = sorted(ddf["material"].unique().tolist())

    details = build_shift_metrics(hdf)
    result["details"] = details
    result["machines"] = rank_machines(details)
    result["global"] = global_oee(details)
    return result
