"""
Locale parsers for plant spreadsheet rows.

Cells arrive as whatever the sheet holds: "05/03/2024" or "2024-03-05"
dates, "1.200,50" or "50,5%" numbers, "1:05:30" durations, and free text
with inconsistent accents and case.  Every parser here returns a safe
default instead of raising, so one malformed cell never aborts the
aggregation of the rest of the sheet.
"""

import math
import numbers
import re
import unicodedata
from datetime import date, datetime, time, timedelta

import pandas as pd


def _is_blank(val):
    if val is None:
        return True
    if isinstance(val, float) and val != val:  # NaN check
        return True
    if val is pd.NaT:
        return True
    return isinstance(val, str) and not val.strip()


def _round_half_up(x):
    return int(math.floor(x + 0.5))


def cell(row, *names, default=""):
    """Return the first non-blank value among *names* in a raw row.

    Falls back to accent/case/punctuation-insensitive header matching so a
    renamed column ("Duracion" vs "DURACIÓN") still resolves.
    """
    for name in names:
        val = row.get(name)
        if not _is_blank(val):
            return val
    by_key = {normalize_key(k): v for k, v in row.items()}
    for name in names:
        val = by_key.get(normalize_key(name))
        if not _is_blank(val):
            return val
    return default


def text(row, *names, default=""):
    """Like cell(), but always returns a stripped string."""
    val = cell(row, *names, default=default)
    return str(val).strip() if not _is_blank(val) else default


def record_id(row, *names):
    """Join key as a string; integral floats from the workbook lose '.0'."""
    val = cell(row, *names, default="")
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    return str(val).strip()


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------
def _expand_year(year):
    return year + 2000 if year < 100 else year


def parse_date(raw):
    """Parse a sheet date cell into a calendar date, or None.

    Accepts DD/MM/YYYY, DD/MM/YY, YYYY-MM-DD and DD-MM-YY[YY] strings (an
    optional trailing time-of-day is ignored) as well as datetime objects
    handed over by the workbook reader.  No timezone conversion is applied.
    """
    if _is_blank(raw):
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None

    s = raw.strip().split()[0].split("T")[0]
    try:
        if "/" in s:
            parts = s.split("/")
            if len(parts) != 3:
                return None
            day, month, year = (int(p) for p in parts)
            return date(_expand_year(year), month, day)
        if "-" in s:
            parts = s.split("-")
            if len(parts) != 3:
                return None
            if len(parts[0]) == 4:
                year, month, day = (int(p) for p in parts)
                return date(year, month, day)
            day, month, year = (int(p) for p in parts)
            return date(_expand_year(year), month, day)
    except ValueError:
        return None
    return None


def date_key(d):
    """History bucket key: 'DD/MM'."""
    return f"{d.day:02d}/{d.month:02d}"


def parse_range(start, end):
    """Parse ?start=YYYY-MM-DD&end=YYYY-MM-DD query values.

    Raises ValueError when either value is missing or malformed.
    """
    if not start or not end:
        raise ValueError("Missing date params")
    return date.fromisoformat(start.strip()), date.fromisoformat(end.strip())


def filter_by_date_range(rows, start, end, date_field):
    """Keep rows whose date lies in [start, end], both days inclusive.

    Returns (row, date) pairs so the date is parsed once per row.  Rows with
    an unparseable date are dropped silently.
    """
    out = []
    for row in rows:
        d = parse_date(cell(row, date_field, default=None))
        if d is not None and start <= d <= end:
            out.append((row, d))
    return out


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------
def parse_number(raw):
    """Parse a LATAM/US formatted number cell.  Never raises; bad cells are 0.

    "1.200,50" -> 1200.5, "1200,5" -> 1200.5, "50,5%" -> 0.505.

    NOTE: a lone "." is read as a thousands separator ("1.200" -> 1200),
    never as a decimal point.  Bag and pallet counts in these sheets are
    integers, so this holds for quantity columns; confirm with the sheet
    owners before feeding genuine US decimals ("12.5") through here.
    """
    if isinstance(raw, bool):
        return float(raw)
    if isinstance(raw, numbers.Real):
        return float(raw) if math.isfinite(raw) else 0.0
    if _is_blank(raw):
        return 0.0

    s = str(raw).strip()
    is_pct = "%" in s
    if is_pct:
        s = s.replace("%", "").strip()

    if "." in s and "," in s:
        s = s.replace(".", "").replace(",", ".")
    elif "." in s:
        s = s.replace(".", "")
    elif "," in s:
        s = s.replace(",", ".")

    try:
        val = float(s)
    except ValueError:
        return 0.0
    if not math.isfinite(val):
        return 0.0
    return val / 100 if is_pct else val


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------
def normalize_name(raw):
    """Trim, uppercase and strip accents: 'Rápido ' -> 'RAPIDO'."""
    if _is_blank(raw):
        return ""
    s = unicodedata.normalize("NFD", str(raw).strip().upper())
    return "".join(ch for ch in s if not unicodedata.combining(ch))


def normalize_key(raw):
    """normalize_name() plus removal of every non-alphanumeric character."""
    return re.sub(r"[^A-Z0-9]", "", normalize_name(raw))


def safe_key(name):
    """Chart-series key for a free-text name: never starts with a digit,
    only [A-Za-z0-9_]."""
    return "id_" + re.sub(r"[^a-zA-Z0-9]", "_", str(name).strip())


# ---------------------------------------------------------------------------
# Times and durations
# ---------------------------------------------------------------------------
def duration_to_minutes(raw):
    """'H:MM:SS' -> h*60 + m + round(s/60); 'M:SS' -> round(m + s/60)."""
    if _is_blank(raw):
        return 0
    if isinstance(raw, timedelta):
        return _round_half_up(raw.total_seconds() / 60)
    if isinstance(raw, time):
        return raw.hour * 60 + raw.minute + _round_half_up(raw.second / 60)
    parts = str(raw).strip().split(":")
    try:
        nums = [float(p) for p in parts]
    except ValueError:
        return 0
    if len(nums) == 3:
        h, m, s = nums
        return int(h * 60 + m) + _round_half_up(s / 60)
    if len(nums) == 2:
        m, s = nums
        return _round_half_up(m + s / 60)
    return 0


def format_time_hhmm(raw):
    """'6:5:00' -> '06:05'.  Unreadable values become '00:00'."""
    if isinstance(raw, (time, datetime)):
        return raw.strftime("%H:%M")
    if _is_blank(raw):
        return "00:00"
    parts = str(raw).strip().split(":")
    if len(parts) >= 2 and parts[0].strip().isdigit() and parts[1].strip()[:2].isdigit():
        return f"{parts[0].strip().zfill(2)}:{parts[1].strip()[:2].zfill(2)}"
    return "00:00"


def time_to_minutes(hhmm):
    """'HH:MM' -> minutes since midnight."""
    h, _, m = hhmm.partition(":")
    try:
        return int(h) * 60 + int(m or 0)
    except ValueError:
        return 0
