"""
Plant Dashboard - HTTP API
FastAPI service serving the downtime, production, breakage and stock
aggregates, plus the AI-or-fallback diagnostics.

Run:
    uvicorn api:app --reload
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import ai_analyst
from breakage import aggregate_breakage, empty_breakage
from downtime import DOWNTIME_TYPES, aggregate_downtime, empty_downtime
from production import aggregate_production, empty_production
from shared import (
    SHEET_DOWNTIME,
    SHEET_PRODUCTION_DETAIL,
    SHEET_PRODUCTION_HEADER,
    SHEET_STOCK_COUNT,
    get_setting,
)
from sheet_parsers import parse_range
from sheet_source import configured_source
from snapshot_cache import DEFAULT_TTL, SnapshotCache
from stocks import aggregate_stocks, empty_stocks

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Plant Dashboard API",
    description="Downtime, OEE, breakage and stock aggregates for the bagging plant",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

cache = SnapshotCache(ttl=float(get_setting("PLANT_CACHE_TTL", DEFAULT_TTL)))

UNAVAILABLE = "analysis unavailable"


class AIAnalysisResult(BaseModel):
    insight: str
    recommendations: List[str]
    priority: str


class PlantAnalysisRequest(BaseModel):
    """OEE figures plus the downtime events behind them."""
    oee: Dict[str, float] = {}
    downtimes: List[Dict[str, Any]] = []
    machines: Optional[List[Dict[str, Any]]] = None


class BreakageAnalysisRequest(BaseModel):
    stats: Dict[str, Any] = {}


class DowntimeAnalysisRequest(BaseModel):
    downtimes: List[Dict[str, Any]] = []


def get_source():
    return configured_source()


def _cached_aggregate(resource, start, end, compute, empty, extra=""):
    """Shared GET flow: validate range, serve from cache or compute and store."""
    try:
        start_d, end_d = parse_range(start, end)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})

    key = SnapshotCache.make_key(resource + extra, start_d.isoformat(), end_d.isoformat())
    try:
        value, hit = cache.get_or_compute(key, lambda: compute(start_d, end_d))
    except Exception:
        logger.exception("Aggregation failed for %s", key)
        return JSONResponse(status_code=500, content={"error": UNAVAILABLE, **empty()})

    return JSONResponse(content=value, headers={"X-Cache": "HIT-MEMORY" if hit else "MISS"})


@app.get("/api/paros")
def get_downtime(start: Optional[str] = None, end: Optional[str] = None,
                 kind: str = Query("all", alias="type"), source=Depends(get_source)):
    kind = kind.lower()
    if kind not in DOWNTIME_TYPES:
        return JSONResponse(status_code=400, content={"error": f"Unknown downtime type: {kind}"})
    return _cached_aggregate(
        "paros", start, end,
        lambda s, e: aggregate_downtime(source.rows(SHEET_DOWNTIME), s, e, kind=kind),
        empty_downtime,
        extra="" if kind == "all" else f"[{kind}]",
    )


@app.get("/api/production")
def get_production(start: Optional[str] = None, end: Optional[str] = None,
                   source=Depends(get_source)):
    return _cached_aggregate(
        "production", start, end,
        lambda s, e: aggregate_production(source.rows(SHEET_PRODUCTION_HEADER),
                                          source.rows(SHEET_PRODUCTION_DETAIL), s, e),
        empty_production,
    )


@app.get("/api/breakage")
def get_breakage(start: Optional[str] = None, end: Optional[str] = None,
                 source=Depends(get_source)):
    return _cached_aggregate(
        "breakage", start, end,
        lambda s, e: aggregate_breakage(source.rows(SHEET_PRODUCTION_DETAIL), s, e),
        empty_breakage,
    )


@app.get("/api/stocks")
def get_stocks(start: Optional[str] = None, end: Optional[str] = None,
               source=Depends(get_source)):
    return _cached_aggregate(
        "stocks", start, end,
        lambda s, e: aggregate_stocks(source.rows(SHEET_STOCK_COUNT),
                                      source.rows(SHEET_PRODUCTION_HEADER),
                                      source.rows(SHEET_PRODUCTION_DETAIL), s, e),
        empty_stocks,
    )


def _safe_analysis(label, run):
    try:
        return run()
    except Exception:
        logger.exception("%s analysis failed", label)
        return dict(ai_analyst.UNAVAILABLE_RESULT)


@app.post("/api/analyze", response_model=AIAnalysisResult)
def analyze_plant(req: PlantAnalysisRequest):
    return _safe_analysis("Plant", lambda: ai_analyst.analyze_plant(
        req.oee, req.downtimes, req.machines, api_key=ai_analyst.get_openai_api_key()))


@app.post("/api/analyze/breakage", response_model=AIAnalysisResult)
def analyze_breakage(req: BreakageAnalysisRequest):
    return _safe_analysis("Breakage", lambda: ai_analyst.analyze_breakage(
        req.stats, api_key=ai_analyst.get_openai_api_key()))


@app.post("/api/analyze/downtime", response_model=AIAnalysisResult)
def analyze_downtime(req: DowntimeAnalysisRequest):
    return _safe_analysis("Downtime", lambda: ai_analyst.analyze_downtime(
        req.downtimes, api_key=ai_analyst.get_openai_api_key()))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
