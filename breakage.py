"""
Breakage Aggregator
===================
Bag breakage from PRODUCCION_LISTA: each row carries the bags produced and
the bags discarded at four physical sectors (bagging station, unsealed
mouth, vent-check reject, conveyor damage).

Invariants of the returned aggregate:
  totalBroken == sum(bySector[].value)
  globalRate  == totalBroken / totalProduced * 100   (0 with no production)

Provider and material names are free text; each grouped item carries a
chart-safe 'id' (see sheet_parsers.safe_key) next to its display 'name'.
"""

import logging

import numpy as np
import pandas as pd

from shared import BREAKAGE_SECTORS
from sheet_parsers import cell, date_key, filter_by_date_range, parse_number, safe_key, text

logger = logging.getLogger(__name__)

NO_PROVIDER = "Sin Proveedor"
UNKNOWN_MATERIAL = "Desconocido"

SECTOR_KEYS = [key for _, key, _ in BREAKAGE_SECTORS]
ROW_COLUMNS = ["day", "provider", "material", "produced", "broken"] + SECTOR_KEYS


def _rate(broken, produced):
    return broken / produced * 100 if produced > 0 else 0.0


def breakage_record(row, day):
    record = {
        "day": day,
        "provider": text(row, "DESCRIPCION_PROVEEDOR") or NO_PROVIDER,
        "material": text(row, "DESCRIPCION_MATERIAL") or UNKNOWN_MATERIAL,
        "produced": parse_number(cell(row, "BOLSAS PRODUCIDAS")),
    }
    for _, key, column in BREAKAGE_SECTORS:
        record[key] = parse_number(cell(row, column))
    record["broken"] = sum(record[key] for key in SECTOR_KEYS)
    return record


def _grouped(df, key):
    """produced/broken/rate per *key*, worst rate first, ties by name."""
    agg = (
        df.groupby(key)[["produced", "broken"] + SECTOR_KEYS]
        .sum()
        .reset_index()
        .rename(columns={key: "name"})
    )
    agg["rate"] = (agg["broken"] / agg["produced"].replace(0, np.nan) * 100).fillna(0)
    agg = agg.sort_values(["rate", "name"], ascending=[False, True], kind="mergesort")
    return agg.to_dict("records")


def build_history(df):
    """Breakage rate per provider per DD/MM day, days in month-then-day order."""
    # Buckets are DD/MM only, so the same day of two years shares one bucket.
    keyed = df.assign(dayKey=[date_key(d) for d in df["day"]])
    grouped = keyed.groupby(["dayKey", "provider"])[["produced", "broken"]].sum()
    days = sorted(keyed["dayKey"].unique(), key=lambda k: (int(k[3:5]), int(k[0:2])))
    history = []
    for day in days:
        item = {"date": day}
        for provider, stats in grouped.loc[day].iterrows():
            item[safe_key(provider)] = round(_rate(stats["broken"], stats["produced"]), 2)
        history.append(item)
    return history


def provider_keys(names):
    """safe_key -> display name.  Colliding names keep the last name."""
    keys = {}
    for name in sorted(names):
        key = safe_key(name)
        if key in keys:
            logger.warning("Providers %r and %r share chart key %s; history rates overwrite each other",
                           keys[key], name, key)
        keys[key] = name
    return keys


def empty_breakage():
    return {
        "totalProduced": 0.0,
        "totalBroken": 0.0,
        "globalRate": 0.0,
        "bySector": [],
        "byProvider": [],
        "byMaterial": [],
        "history": [],
        "providers": {},
    }


def aggregate_breakage(rows, start, end):
    """Breakage aggregate for detail rows dated within [start, end]."""
    records = [breakage_record(row, day) for row, day in
               filter_by_date_range(rows, start, end, "FECHA")]
    result = empty_breakage()
    if not records:
        return result

    df = pd.DataFrame(records, columns=ROW_COLUMNS)
    total_produced = float(df["produced"].sum())
    sector_sums = {key: float(df[key].sum()) for key in SECTOR_KEYS}
    total_broken = sum(sector_sums.values())

    result["totalProduced"] = total_produced
    result["totalBroken"] = total_broken
    result["globalRate"] = _rate(total_broken, total_produced)
    result["bySector"] = [
        {"name": name, "key": key, "value": sector_sums[key],
         "percentage": _rate(sector_sums[key], total_broken)}
        for name, key, _ in BREAKAGE_SECTORS
        if sector_sums[key] > 0
    ]

    result["byProvider"] = [
        {"id": safe_key(r["name"]), "name": r["name"],
         "produced": float(r["produced"]), "broken": float(r["broken"]),
         "rate": float(r["rate"])}
        for r in _grouped(df, "provider")
    ]

    by_material = []
    for r in _grouped(df, "material"):
        item = {"id": safe_key(r["name"]), "name": r["name"],
                "produced": float(r["produced"]), "broken": float(r["broken"]),
                "rate": float(r["rate"])}
        for key in SECTOR_KEYS:
            item[f"sector_{key}"] = float(r[key])
        by_material.append(item)
    result["byMaterial"] = by_material

    result["history"] = build_history(df)
    result["providers"] = provider_keys(df["provider"].unique())
    return result
