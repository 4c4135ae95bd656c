"""
Downtime Aggregator
===================
Turns 'PARO DE MAQUINA' rows into normalized stoppage events plus the
rankings the dashboard charts: reason Pareto, equipment x reason stack,
per-shift timeline, internal/external split and inferred category.

The timeline always buckets an event by its clock start time, never by
the TURNO label typed on the row; the two disagree often enough that the
label cannot be trusted for placement.
"""

import pandas as pd

from shared import (
    DOWNTIME_CATEGORY_RULES,
    DOWNTIME_DEFAULT_CATEGORY,
    VISUAL_SHIFTS,
    classify,
)
from sheet_parsers import (
    cell,
    duration_to_minutes,
    filter_by_date_range,
    format_time_hhmm,
    normalize_name,
    text,
    time_to_minutes,
)

NO_REASON = "Sin Motivo"
NO_EQUIPMENT = "Sin HAC"

EVENT_COLUMNS = [
    "id", "date", "machineId", "shift", "visualShift", "startTime",
    "durationMinutes", "hac", "hacDetail", "reason", "sapCause",
    "downtimeType", "category",
]

DOWNTIME_TYPES = ("all", "interno", "externo")


# ---------------------------------------------------------------------------
# Event normalization
# ---------------------------------------------------------------------------
def classify_visual_shift(start_time):
    """Bucket a start time into morning / afternoon / night_tail / night.

    Boundaries: 06:00-13:59, 14:00-21:59, 22:00-23:59, 00:00-05:59.
    """
    mins = time_to_minutes(format_time_hhmm(start_time))
    for key, _label, lo, hi in VISUAL_SHIFTS:
        if lo <= mins < hi:
            return key
    return VISUAL_SHIFTS[0][0]


def infer_category(reason, sap_cause=""):
    """Downtime category from the cause text, falling back to the SAP cause."""
    category = classify(normalize_name(reason), DOWNTIME_CATEGORY_RULES, None)
    if category is None:
        category = classify(normalize_name(sap_cause), DOWNTIME_CATEGORY_RULES,
                            DOWNTIME_DEFAULT_CATEGORY)
    return category


def normalize_event(row, day, index):
    """One raw downtime row -> event dict.  Optional fields default to ''."""
    start_time = format_time_hhmm(cell(row, "INICIO", default="00:00:00"))
    reason = text(row, "TEXTO DE CAUSA")
    sap_cause = text(row, "CAUSA SAP")
    return {
        "id": text(row, "IDPARO") or f"paro-{index}",
        "date": day.isoformat(),
        "machineId": text(row, "MÁQUINA AFECTADA"),
        "shift": text(row, "TURNO"),
        "visualShift": classify_visual_shift(start_time),
        "startTime": start_time,
        "durationMinutes": duration_to_minutes(cell(row, "DURACIÓN", default="0:00:00")),
        "hac": text(row, "HAC"),
        "hacDetail": text(row, "DETALLE HAC"),
        "reason": reason,
        "sapCause": sap_cause,
        "downtimeType": text(row, "TIPO PARO"),
        "category": infer_category(reason, sap_cause),
    }


def load_events(rows, start, end):
    """Filter rows to [start, end] and normalize them, sorted by date then start."""
    pairs = filter_by_date_range(rows, start, end, "FECHA")
    events = [normalize_event(row, day, i) for i, (row, day) in enumerate(pairs)]
    events.sort(key=lambda e: (e["date"], e["startTime"]))
    return events


def filter_by_type(events, kind="all"):
    """Keep events whose TIPO PARO contains *kind* ('interno' / 'externo')."""
    kind = (kind or "all").lower()
    if kind == "all":
        return list(events)
    return [e for e in events if kind in e["downtimeType"].lower()]


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------
def _shift_segments(events, lo, length):
    """Uptime/downtime blocks across one shift window, in minutes."""
    placed = sorted(
        ((time_to_minutes(e["startTime"]) - lo, e) for e in events),
        key=lambda pair: (pair[0], pair[1]["id"]),
    )
    segments = []
    pos = 0
    for rel, event in placed:
        if rel < 0 or rel >= length:
            continue
        if rel > pos:
            segments.append({"type": "uptime", "duration": rel - pos})
        duration = min(event["durationMinutes"], length - rel)
        segments.append({"type": "downtime", "duration": duration, "eventId": event["id"]})
        pos = max(pos, rel + duration)
    if pos < length:
        segments.append({"type": "uptime", "duration": length - pos})
    return segments


def build_timeline(events):
    """Per visual-shift downtime, availability and uptime/downtime blocks."""
    timeline = []
    for key, label, lo, hi in VISUAL_SHIFTS:
        length = hi - lo
        in_shift = [e for e in events if e["visualShift"] == key]
        downtime = sum(e["durationMinutes"] for e in in_shift)
        timeline.append({
            "shift": key,
            "label": label,
            "shiftMinutes": length,
            "downtimeMinutes": downtime,
            "availability": max(0.0, (length - downtime) / length * 100),
            "events": [
                {k: e[k] for k in ("id", "startTime", "durationMinutes", "hac", "reason")}
                for e in sorted(in_shift, key=lambda e: (e["startTime"], e["id"]))
            ],
            "segments": _shift_segments(in_shift, lo, length),
        })
    return timeline


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------
def _ranked(df, key):
    """Sum durationMinutes by *key*, worst first, ties broken by name."""
    agg = (
        df.groupby(key)
        .agg(value=("durationMinutes", "sum"), count=("durationMinutes", "count"))
        .reset_index()
        .rename(columns={key: "name"})
        .sort_values(["value", "name"], ascending=[False, True], kind="mergesort")
    )
    return [
        {"name": str(r["name"]), "value": int(r["value"]), "count": int(r["count"])}
        for r in agg.to_dict("records")
    ]


def _type_bucket(downtime_type):
    t = downtime_type.lower()
    if "interno" in t:
        return "interno"
    if "externo" in t:
        return "externo"
    return "sin_tipo"


def empty_downtime():
    return summarize_events([])


def summarize_events(events):
    """Build the downtime aggregate from already-normalized events."""
    result = {
        "events": list(events),
        "eventCount": len(events),
        "totalMinutes": 0,
        "byReason": [],
        "byEquipment": [],
        "stackKeys": [],
        "byCategory": [],
        "byType": {"interno": 0, "externo": 0, "sin_tipo": 0},
        "timeline": build_timeline(events),
    }
    if not events:
        return result

    df = pd.DataFrame(events, columns=EVENT_COLUMNS)
    df["reason"] = df["reason"].replace("", NO_REASON)
    df["hac"] = df["hac"].replace("", NO_EQUIPMENT)
    df["typeBucket"] = df["downtimeType"].map(_type_bucket)

    result["totalMinutes"] = int(df["durationMinutes"].sum())
    result["byReason"] = _ranked(df, "reason")
    result["byCategory"] = _ranked(df, "category")
    result["stackKeys"] = [r["name"] for r in result["byReason"]]

    # Equipment x reason stack, Pareto-ordered by equipment total.
    stacked = df.groupby(["hac", "reason"])["durationMinutes"].sum()
    by_equipment = []
    for item in _ranked(df, "hac"):
        entry = {"name": item["name"], "totalDuration": item["value"]}
        for reason, minutes in stacked.loc[item["name"]].items():
            if minutes > 0:
                entry[str(reason)] = int(minutes)
        by_equipment.append(entry)
    result["byEquipment"] = by_equipment

    for bucket, minutes in df.groupby("typeBucket")["durationMinutes"].sum().items():
        result["byType"][bucket] = int(minutes)
    return result


def aggregate_downtime(rows, start, end, kind="all"):
    """Downtime aggregate for rows dated within [start, end]."""
    events = filter_by_type(load_events(rows, start, end), kind)
    return summarize_events(events)
