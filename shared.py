"""
Shared constants and utilities for the Plant Dashboard Analyzer
================================================================
Single source of truth for sheet layouts, shift tables, breakage sectors,
produced-in-house products, keyword classification rules, and the settings
lookup used across downtime.py, production.py, breakage.py, stocks.py,
ai_analyst.py, and api.py.
"""

import os

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def get_setting(name, default=None):
    """Resolve a setting from the environment, then Streamlit secrets."""
    value = os.environ.get(name)
    if value:
        return value
    try:
        import streamlit as st
        value = st.secrets.get(name)
        if value:
            return value
    except Exception:
        # No secrets.toml outside a Streamlit deployment.
        pass
    return default


# ---------------------------------------------------------------------------
# Sheet titles in the plant workbook
# ---------------------------------------------------------------------------
SHEET_DOWNTIME = "PARO DE MAQUINA"
SHEET_PRODUCTION_HEADER = "PRODUCCION_CABECERA"
SHEET_PRODUCTION_DETAIL = "PRODUCCION_LISTA"
SHEET_STOCK_COUNT = "DETALLE CONTEO"

# ---------------------------------------------------------------------------
# Shift tables
# ---------------------------------------------------------------------------
SHIFT_NIGHT = "3.NOCHE"
SHIFT_NIGHT_PREFIX = "3."

# Clock-time buckets for the downtime timeline: (key, label, start_min, end_min)
VISUAL_SHIFTS = [
    ("morning", "Mañana (06:00 - 14:00)", 6 * 60, 14 * 60),
    ("afternoon", "Tarde (14:00 - 22:00)", 14 * 60, 22 * 60),
    ("night_tail", "Noche (22:00 - 00:00)", 22 * 60, 24 * 60),
    ("night", "Noche (00:00 - 06:00)", 0, 6 * 60),
]

# ---------------------------------------------------------------------------
# Breakage sectors: (display name, chart key, sheet column)
# ---------------------------------------------------------------------------
BREAKAGE_SECTORS = [
    ("Ensacadora", "Ensacadora", "BOLSAS DESCARTADAS_ENSACADORA"),
    ("No Emboquillada", "NoEmboquillada", "BOLSAS DESCARTADAS_NO_EMBOQUILLADA"),
    ("Ventocheck", "Ventocheck", "BOLSAS_DESCARTADAS_VENTOCHECK"),
    ("Transporte", "Transporte", "BOLSAS_DESCARTADAS_TRANSPORTE"),
]

# ---------------------------------------------------------------------------
# Stock
# ---------------------------------------------------------------------------
# Exact names after normalize_name(); night output is added back to these.
PRODUCED_PRODUCTS = {
    "CEMENTO MAESTRO",
    "CEMENTO CPF 40",
    "CEMENTO RAPIDO",
    "CEMENTO CPF 30",
}

# Ordered (keywords, category) rules, first match wins.
STOCK_CATEGORY_RULES = [
    (("TARIMA", "PALLET"), "pallets"),
    (("ENVASE", "SACO", "BOLSA", "BIG BAG", "FILM"), "packaging"),
]
STOCK_DEFAULT_CATEGORY = "supplies"

# ---------------------------------------------------------------------------
# Downtime categories, inferred from cause text
# ---------------------------------------------------------------------------
DOWNTIME_CATEGORY_RULES = [
    (("SIN MOTIVO", "DESCONOCID"), "Sin codificar"),
    (("FALTA DE CEMENTO", "FALTA CEMENTO", "SILO", "MOLIENDA", "ABASTECIMIENTO"), "Proceso aguas arriba"),
    (("CAMBIO DE", "LIMPIEZA", "AJUSTE", "CALIBRACION"), "Proceso / Cambio"),
    (("ALMUERZO", "REUNION", "CAPACITACION", "PROGRAMAD"), "Programado"),
    (("SENSOR", "ELECTRIC", "PLC", "MOTOR", "VARIADOR"), "Eléctrico"),
    (("CINTA", "TRANSPORT", "MORDAZA", "ROTURA", "CADENA", "RODAMIENTO",
      "NEUMATIC", "ENSACADORA", "PALETIZADORA", "ENVOLVEDORA"), "Mecánico"),
]
DOWNTIME_DEFAULT_CATEGORY = "Otros"


def classify(text, rules, default):
    """Return the category of the first rule whose keyword appears in *text*.

    *text* must already be normalized (see sheet_parsers.normalize_name);
    keywords are matched as plain substrings.
    """
    for keywords, category in rules:
        if any(kw in text for kw in keywords):
            return category
    return default


# ---------------------------------------------------------------------------
# Diagnostic thresholds
# ---------------------------------------------------------------------------
OEE_GOOD = 0.85
OEE_FAIR = 0.65
BREAKAGE_RATE_HIGH = 2.0     # % of produced bags
BREAKAGE_RATE_MEDIUM = 1.0
DOWNTIME_MINUTES_HIGH = 120
FALLBACK_PREFIX = "[Respaldo] "
