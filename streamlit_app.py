"""
Plant Dashboard — Web Interface
===============================
Downtime, OEE, breakage and stock views over the plant spreadsheet export,
with an "Analyze" button per tab that asks the AI analyst (or its
rule-based fallback) for a short diagnostic.

Usage:
  PLANT_WORKBOOK=planta.xlsx streamlit run streamlit_app.py
"""

from datetime import date, timedelta

import altair as alt
import pandas as pd
import streamlit as st

import ai_analyst
from breakage import aggregate_breakage
from downtime import aggregate_downtime
from production import aggregate_production
from shared import (
    FALLBACK_PREFIX,
    SHEET_DOWNTIME,
    SHEET_PRODUCTION_DETAIL,
    SHEET_PRODUCTION_HEADER,
    SHEET_STOCK_COUNT,
    get_setting,
)
from sheet_source import configured_source
from snapshot_cache import DEFAULT_TTL, SnapshotCache
from stocks import aggregate_stocks

PRIORITY_COLORS = {"high": "red", "medium": "orange", "low": "green"}

st.set_page_config(
    page_title="Plant Dashboard",
    page_icon="🏭",
    layout="wide",
)


@st.cache_resource
def _cache():
    return SnapshotCache(ttl=float(get_setting("PLANT_CACHE_TTL", DEFAULT_TTL)))


def load(resource, start, end, compute):
    value, _hit = _cache().get_or_compute(
        SnapshotCache.make_key(resource, start.isoformat(), end.isoformat()), compute)
    return value


def show_analysis(result):
    color = PRIORITY_COLORS.get(result["priority"], "gray")
    st.markdown(f"**Prioridad:** :{color}[{result['priority'].upper()}]")
    st.markdown(result["insight"])
    for rec in result["recommendations"]:
        st.markdown(f"- {rec}")
    if result["insight"].startswith(FALLBACK_PREFIX):
        st.caption("Diagnóstico generado por reglas (sin IA).")


st.title("Plant Dashboard")
st.markdown("Paros, OEE, roturas y stock de la planta de ensacado.")

today = date.today()
picked = st.date_input("Rango de fechas", value=(today - timedelta(days=7), today))
if not isinstance(picked, (tuple, list)) or len(picked) != 2:
    st.info("Seleccione fecha de inicio y fin.")
    st.stop()
start, end = picked

source = configured_source()
api_key = ai_analyst.get_openai_api_key()

tab_summary, tab_downtime, tab_breakage, tab_stocks = st.tabs(
    ["Resumen", "Paros", "Roturas", "Stock"])

# =====================================================================
# TAB 1: SUMMARY (production + OEE)
# =====================================================================
with tab_summary:
    prod = load("production", start, end, lambda: aggregate_production(
        source.rows(SHEET_PRODUCTION_HEADER), source.rows(SHEET_PRODUCTION_DETAIL), start, end))
    paros = load("paros", start, end, lambda: aggregate_downtime(
        source.rows(SHEET_DOWNTIME), start, end))
    g = prod["global"]

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("OEE", f"{g['oee'] * 100:.1f}%")
    c2.metric("Disponibilidad", f"{g['availability'] * 100:.1f}%")
    c3.metric("Rendimiento", f"{g['performance'] * 100:.1f}%")
    c4.metric("Toneladas", f"{prod['totalTn']:,.1f}")

    if prod["byMachine"]:
        st.subheader("Bolsas por paletizadora")
        machine_chart = alt.Chart(pd.DataFrame(prod["byMachine"])).mark_bar(color="#1B2A4A").encode(
            x=alt.X("name:N", title="Paletizadora"),
            y=alt.Y("value:Q", title="Bolsas"),
            tooltip=[
                alt.Tooltip("name:N", title="Paletizadora"),
                alt.Tooltip("value:Q", title="Bolsas", format=",.0f"),
                alt.Tooltip("valueTn:Q", title="Toneladas", format=",.1f"),
            ],
        )
        st.altair_chart(machine_chart, use_container_width=True)

    if prod["machines"]:
        st.subheader("OEE por máquina")
        ranking = pd.DataFrame(prod["machines"])
        for col in ("availability", "performance", "oee"):
            ranking[col] = (ranking[col] * 100).round(1)
        st.dataframe(ranking, use_container_width=True, hide_index=True)
    else:
        st.info("Sin producción registrada en el rango seleccionado.")

    if st.button("Analizar planta", type="primary", key="analyze_plant"):
        with st.spinner("Analizando..."):
            show_analysis(ai_analyst.analyze_plant(
                g, paros["events"], prod["machines"], api_key=api_key))

# =====================================================================
# TAB 2: DOWNTIME
# =====================================================================
with tab_downtime:
    kind = st.radio("Tipo de paro", ["all", "interno", "externo"], horizontal=True,
                    format_func={"all": "Todos", "interno": "Interno", "externo": "Externo"}.get)
    paros_kind = paros if kind == "all" else load(f"paros[{kind}]", start, end,
                                                  lambda: aggregate_downtime(
                                                      source.rows(SHEET_DOWNTIME), start, end, kind))

    c1, c2, c3 = st.columns(3)
    c1.metric("Eventos", paros_kind["eventCount"])
    c2.metric("Minutos totales", f"{paros_kind['totalMinutes']:,}")
    c3.metric("Externo (min)", f"{paros_kind['byType']['externo']:,}")

    if paros_kind["byReason"]:
        st.subheader("Pareto de motivos")
        pareto = pd.DataFrame(paros_kind["byReason"][:10])
        pareto_chart = alt.Chart(pareto).mark_bar(color="#E74C3C").encode(
            x=alt.X("value:Q", title="Minutos"),
            y=alt.Y("name:N", sort="-x", title=""),
            tooltip=[
                alt.Tooltip("name:N", title="Motivo"),
                alt.Tooltip("value:Q", title="Minutos", format=",.0f"),
                alt.Tooltip("count:Q", title="Eventos"),
            ],
        ).properties(height=min(400, 40 * len(pareto)))
        st.altair_chart(pareto_chart, use_container_width=True)

        st.subheader("Disponibilidad por franja")
        timeline = pd.DataFrame(
            [{k: t[k] for k in ("label", "downtimeMinutes", "availability")}
             for t in paros_kind["timeline"]])
        timeline.columns = ["Franja", "Minutos de paro", "Disponibilidad %"]
        st.dataframe(timeline, use_container_width=True, hide_index=True)

        st.subheader("Eventos")
        st.dataframe(pd.DataFrame(paros_kind["events"]), use_container_width=True, hide_index=True)
    else:
        st.info("No hay paros registrados en el rango seleccionado.")

    if st.button("Analizar paros", type="primary", key="analyze_downtime"):
        with st.spinner("Analizando..."):
            show_analysis(ai_analyst.analyze_downtime(paros_kind["events"], api_key=api_key))

# =====================================================================
# TAB 3: BREAKAGE
# =====================================================================
with tab_breakage:
    roturas = load("breakage", start, end, lambda: aggregate_breakage(
        source.rows(SHEET_PRODUCTION_DETAIL), start, end))

    c1, c2, c3 = st.columns(3)
    c1.metric("Bolsas producidas", f"{roturas['totalProduced']:,.0f}")
    c2.metric("Bolsas rotas", f"{roturas['totalBroken']:,.0f}")
    c3.metric("Tasa de rotura", f"{roturas['globalRate']:.2f}%")

    if roturas["bySector"]:
        st.subheader("Roturas por sector")
        sector_chart = alt.Chart(pd.DataFrame(roturas["bySector"])).mark_arc().encode(
            theta=alt.Theta("value:Q"),
            color=alt.Color("name:N", title="Sector"),
            tooltip=[
                alt.Tooltip("name:N", title="Sector"),
                alt.Tooltip("value:Q", title="Bolsas", format=",.0f"),
                alt.Tooltip("percentage:Q", title="%", format=".1f"),
            ],
        )
        st.altair_chart(sector_chart, use_container_width=True)

    if roturas["history"]:
        st.subheader("Tasa diaria por proveedor")
        history = pd.DataFrame(roturas["history"]).melt(
            id_vars="date", var_name="id", value_name="rate").dropna()
        history["provider"] = history["id"].map(roturas["providers"])
        history_chart = alt.Chart(history).mark_line(point=True).encode(
            x=alt.X("date:N", sort=None, title="Día"),
            y=alt.Y("rate:Q", title="Rotura %"),
            color=alt.Color("provider:N", title="Proveedor"),
        )
        st.altair_chart(history_chart, use_container_width=True)

    if roturas["byProvider"]:
        st.subheader("Proveedores")
        st.dataframe(pd.DataFrame(roturas["byProvider"]).drop(columns="id"),
                     use_container_width=True, hide_index=True)

    if st.button("Analizar roturas", type="primary", key="analyze_breakage"):
        with st.spinner("Analizando..."):
            show_analysis(ai_analyst.analyze_breakage(roturas, api_key=api_key))

# =====================================================================
# TAB 4: STOCKS
# =====================================================================
with tab_stocks:
    stock = load("stocks", start, end, lambda: aggregate_stocks(
        source.rows(SHEET_STOCK_COUNT), source.rows(SHEET_PRODUCTION_HEADER),
        source.rows(SHEET_PRODUCTION_DETAIL), start, end))

    if not stock["items"]:
        st.info("No hay conteos de stock en el rango seleccionado.")
    else:
        st.caption(f"Conteo del {stock['date']}")
        if stock["produced"]:
            st.subheader("Cemento (incluye producción del turno noche)")
            produced = pd.DataFrame(stock["produced"])[
                ["product", "countedTonnage", "nightTonnage", "tonnage"]]
            produced.columns = ["Producto", "Contado (tn)", "Noche (tn)", "Total (tn)"]
            st.dataframe(produced, use_container_width=True, hide_index=True)

        for title, bucket in (("Pallets", "pallets"), ("Envases", "packaging"),
                              ("Insumos", "supplies")):
            if stock[bucket]:
                st.subheader(title)
                table = pd.DataFrame(stock[bucket])[["product", "quantity", "tonnage"]]
                table.columns = ["Producto", "Cantidad", "Toneladas"]
                st.dataframe(table, use_container_width=True, hide_index=True)

# --- Footer ---
st.markdown("---")
st.caption("Datos del tablero de planta | Diagnósticos IA con respaldo por reglas")
