"""
Stock Aggregator
================
Physical inventory from DETALLE CONTEO, corrected for night-shift output.

The count is taken before the night shift ('3.NOCHE') finishes, so the
tonnage bagged that night is missing from the counted stock of every
product made in-house.  That night tonnage is added back to the counted
tonnage of the PRODUCED_PRODUCTS; everything else passes through and is
only bucketed (pallets / packaging / supplies) for display.
"""

import pandas as pd

from shared import (
    PRODUCED_PRODUCTS,
    SHIFT_NIGHT,
    SHIFT_NIGHT_PREFIX,
    STOCK_CATEGORY_RULES,
    STOCK_DEFAULT_CATEGORY,
    classify,
)
from sheet_parsers import (
    cell,
    filter_by_date_range,
    normalize_name,
    parse_number,
    record_id,
    text,
)

ITEM_COLUMNS = ["product", "normalized", "quantity", "tonnage", "date"]


def is_night_shift(shift):
    """'3.NOCHE' or any '3.' shift code; '4.NOCHE FIN' is not the night shift."""
    code = str(shift or "").strip().upper()
    return code == SHIFT_NIGHT or code.startswith(SHIFT_NIGHT_PREFIX)


def stock_category(product):
    """'produced' for in-house cement, else the first matching keyword bucket."""
    name = normalize_name(product)
    if name in PRODUCED_PRODUCTS:
        return "produced"
    return classify(name, STOCK_CATEGORY_RULES, STOCK_DEFAULT_CATEGORY)


def night_production(header_rows, detail_rows, start, end):
    """normalize_name(material) -> tonnes bagged on the night shift in range."""
    night_ids = {
        record_id(row, "id_produccion")
        for row, _ in filter_by_date_range(header_rows, start, end, "fecha")
        if is_night_shift(text(row, "turno"))
    }
    night_ids.discard("")
    tonnage = {}
    for row in detail_rows:
        if record_id(row, "ID_CABECERA") not in night_ids:
            continue
        material = normalize_name(cell(row, "DESCRIPCION_MATERIAL"))
        tn = parse_number(cell(row, "TN_PRODUCIDA", "tn/bdp"))
        tonnage[material] = tonnage.get(material, 0.0) + tn
    return tonnage


def _sorted_bucket(items, category):
    if category == "produced":
        return sorted(items, key=lambda i: i["product"])
    if category == "supplies":
        return sorted(items, key=lambda i: (-i["tonnage"], i["product"]))
    return sorted(items, key=lambda i: (-i["quantity"], i["product"]))


def empty_stocks(date_label=""):
    return {
        "date": date_label,
        "items": [],
        "produced": [],
        "pallets": [],
        "packaging": [],
        "supplies": [],
        "nightProduction": {},
    }


def aggregate_stocks(count_rows, header_rows, detail_rows, start, end):
    """Stock snapshot for counts dated within [start, end]."""
    night = night_production(header_rows, detail_rows, start, end)
    counts = [
        {
            "product": text(row, "PRODUCTO"),
            "normalized": normalize_name(cell(row, "PRODUCTO")),
            "quantity": parse_number(cell(row, "CANTIDAD")),
            "tonnage": parse_number(cell(row, "TN")),
            "date": text(row, "FECHA"),
        }
        for row, _ in filter_by_date_range(count_rows, start, end, "FECHA")
    ]
    result = empty_stocks(start.isoformat())
    result["nightProduction"] = night
    if not counts:
        return result

    df = pd.DataFrame(counts, columns=ITEM_COLUMNS)
    agg = (
        df.groupby("product", sort=True)
        .agg(normalized=("normalized", "first"),
             quantity=("quantity", "sum"),
             tonnage=("tonnage", "sum"),
             date=("date", "first"))
        .reset_index()
    )

    items = []
    for i, r in enumerate(agg.to_dict("records")):
        is_produced = r["normalized"] in PRODUCED_PRODUCTS
        night_tn = night.get(r["normalized"], 0.0) if is_produced else 0.0
        items.append({
            "id": f"stk-{i}",
            "product": r["product"],
            "quantity": float(r["quantity"]),
            "tonnage": float(r["tonnage"]) + night_tn,
            "countedTonnage": float(r["tonnage"]),
            "nightTonnage": night_tn,
            "isProduced": is_produced,
            "category": stock_category(r["product"]),
            "lastUpdated": r["date"],
        })

    result["date"] = items[0]["lastUpdated"] or result["date"]
    result["items"] = items
    for category in ("produced", "pallets", "packaging", "supplies"):
        bucket = [i for i in items if i["category"] == category]
        result[category] = _sorted_bucket(bucket, category)
    return result
