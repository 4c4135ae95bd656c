"""
AI Analyst via OpenAI, with a rule-based fallback
=================================================
Phrases a short diagnostic ({insight, recommendations, priority}) for the
plant, breakage and downtime aggregates.

Model discipline, per request:
  - no API key                   -> skip the API, use the fallback
  - 404 / 400 model not found    -> try the next model
  - 429 quota                    -> try the next model (quotas are per model)
  - 400/401 invalid API key      -> stop, no model can succeed; fallback
  - reply is not the JSON shape  -> try the next model
  - every model failed           -> fallback

Models are tried strictly in order, one request each.  The fallback is
deterministic, needs no network and always returns all three fields; its
insight starts with FALLBACK_PREFIX so callers can tell where it came from.
"""

import json
import logging
import re

import openai

from shared import (
    BREAKAGE_RATE_HIGH,
    BREAKAGE_RATE_MEDIUM,
    DOWNTIME_MINUTES_HIGH,
    FALLBACK_PREFIX,
    OEE_FAIR,
    OEE_GOOD,
    get_setting,
)

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ["gpt-5-mini", "gpt-5.1", "gpt-4o-mini"]
PRIORITIES = ("low", "medium", "high")
MAX_RECOMMENDATIONS = 3
REQUEST_TIMEOUT = 30.0

UNAVAILABLE_RESULT = {
    "insight": "Análisis no disponible.",
    "recommendations": ["Revisar el ranking de Pareto manualmente."],
    "priority": "low",
}

_INVALID_KEY_MARKERS = (
    "api key not valid", "api_key_invalid", "invalid api key",
    "incorrect api key", "invalid_api_key",
)
_REASONING_PREFIXES = ("o1", "o3", "o4", "gpt-5")


def get_openai_api_key():
    """OpenAI API key from the environment or Streamlit secrets, else None."""
    return get_setting("OPENAI_API_KEY")


def get_models():
    """Ordered model list from OPENAI_ANALYST_MODELS (comma-separated)."""
    raw = get_setting("OPENAI_ANALYST_MODELS")
    if not raw:
        return list(DEFAULT_MODELS)
    return [m.strip() for m in raw.split(",") if m.strip()]


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------
def extract_json(text):
    """Extract a JSON object from model output.

    Handles bare JSON, markdown code fences, and prose around the object
    (first '{' to last '}').  Raises json.JSONDecodeError when nothing parses.
    """
    text = (text or "").strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if fenced:
        try:
            return json.loads(fenced.group(1))
        except json.JSONDecodeError:
            pass

    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return json.loads(text[first:last + 1])

    raise json.JSONDecodeError("No valid JSON object found", text, 0)


def coerce_result(obj):
    """Validate a parsed reply.  Returns a clean result dict or None."""
    if not isinstance(obj, dict):
        return None
    insight = obj.get("insight")
    recs = obj.get("recommendations")
    priority = str(obj.get("priority", "")).strip().lower()
    if not isinstance(insight, str) or not insight.strip():
        return None
    if isinstance(recs, str):
        recs = [recs]
    if not isinstance(recs, list):
        return None
    recs = [str(r).strip() for r in recs if str(r).strip()][:MAX_RECOMMENDATIONS]
    if not recs or priority not in PRIORITIES:
        return None
    return {"insight": insight.strip(), "recommendations": recs, "priority": priority}


# ---------------------------------------------------------------------------
# Model loop
# ---------------------------------------------------------------------------
def is_invalid_key_error(exc):
    """True when no model can succeed with this key."""
    status = getattr(exc, "status_code", None)
    if status == 401:
        return True
    return status == 400 and any(m in str(exc).lower() for m in _INVALID_KEY_MARKERS)


def _create_kwargs(model, prompt):
    kwargs = {"model": model, "messages": [{"role": "user", "content": prompt}]}
    # Reasoning models reject temperature and need room for hidden tokens.
    if model.lower().startswith(_REASONING_PREFIXES):
        kwargs["max_completion_tokens"] = 4000
        kwargs["reasoning_effort"] = "low"
    else:
        kwargs["max_completion_tokens"] = 800
        kwargs["temperature"] = 0.2
    return kwargs


def _complete(client, model, prompt):
    resp = client.chat.completions.create(**_create_kwargs(model, prompt))
    if not resp.choices:
        return ""
    return resp.choices[0].message.content or ""


def _default_client(api_key):
    return openai.OpenAI(api_key=api_key, timeout=REQUEST_TIMEOUT)


def run_analysis(prompt, fallback, api_key=None, models=None, client_factory=None):
    """Ask each model in turn for a diagnostic; fallback() when none succeeds."""
    if not api_key:
        logger.info("No OpenAI API key configured; using rule-based diagnostic")
        return fallback()

    client = (client_factory or _default_client)(api_key)
    for model in (models if models is not None else get_models()):
        try:
            text = _complete(client, model, prompt)
        except openai.APIStatusError as e:
            if is_invalid_key_error(e):
                logger.warning("OpenAI rejected the API key; skipping remaining models")
                break
            logger.warning("Model %s failed with HTTP %s; trying next", model, e.status_code)
            continue
        except openai.APIConnectionError as e:
            logger.warning("Model %s unreachable (%s); trying next", model, e)
            continue
        except Exception as e:
            logger.warning("Model %s call failed (%s); trying next", model, e)
            continue

        if not text.strip():
            logger.warning("Model %s returned an empty reply; trying next", model)
            continue
        try:
            result = coerce_result(extract_json(text))
        except json.JSONDecodeError:
            logger.warning("Model %s reply is not JSON; trying next", model)
            continue
        if result is None:
            logger.warning("Model %s reply has the wrong shape; trying next", model)
            continue
        return result

    return fallback()


def _fallback_result(insight, recommendations, priority):
    return {
        "insight": FALLBACK_PREFIX + insight,
        "recommendations": recommendations[:MAX_RECOMMENDATIONS],
        "priority": priority,
    }


_JSON_REPLY_FORMAT = """
Responde SOLO con un objeto JSON válido. NO uses markdown. NO agregues texto antes ni después.
Estructura:
{
  "insight": "Diagnóstico breve (máx 150 caracteres).",
  "recommendations": ["Acción 1", "Acción 2", "Acción 3"],
  "priority": "high" | "medium" | "low"
}"""


# ---------------------------------------------------------------------------
# Plant (OEE) analysis
# ---------------------------------------------------------------------------
def _top_downtime(downtimes):
    """Longest event (ties: first seen) or None."""
    best = None
    for d in downtimes or []:
        if best is None or d.get("durationMinutes", 0) > best.get("durationMinutes", 0):
            best = d
    return best


def build_plant_prompt(oee, downtimes):
    top = sorted(downtimes or [], key=lambda d: -d.get("durationMinutes", 0))[:3]
    top_str = ", ".join(f"{d.get('reason') or 'Sin motivo'} ({d.get('durationMinutes', 0)}m)"
                        for d in top) or "Ninguno"
    return f"""Actúa como Ingeniero de Planta. Analiza estos datos de paletizado:

OEE Global: {oee.get('oee', 0) * 100:.1f}% (Disp: {oee.get('availability', 0) * 100:.1f}%, Rend: {oee.get('performance', 0) * 100:.1f}%)
Top Paros: {top_str}
{_JSON_REPLY_FORMAT}"""


def plant_fallback(oee, downtimes, machines=None):
    """Rule-based OEE diagnostic.  OEE < 65% is high priority, < 85% medium."""
    oee_val = (oee or {}).get("oee", 0) or 0
    top = _top_downtime(downtimes)
    top_reason = (top or {}).get("reason") or "Falla técnica"
    worst_machine = machines[-1]["name"] if machines else None

    if oee_val < OEE_FAIR:
        priority = "high"
        insight = f"OEE crítico ({oee_val * 100:.1f}%) impulsado principalmente por '{top_reason}'."
    elif oee_val < OEE_GOOD:
        priority = "medium"
        insight = f"OEE aceptable ({oee_val * 100:.1f}%), con pérdidas recurrentes por '{top_reason}'."
    else:
        priority = "low"
        insight = f"La planta opera de manera estable (OEE {oee_val * 100:.1f}%)."

    recommendations = [f"Investigar causa raíz de: {top_reason}."]
    if worst_machine:
        recommendations.append(f"Revisar velocidad y microparos en {worst_machine}.")
    recommendations.append("Optimizar cambios de turno para recuperar disponibilidad.")
    return _fallback_result(insight, recommendations, priority)


def analyze_plant(oee, downtimes=None, machines=None, api_key=None, models=None,
                  client_factory=None):
    oee = oee or {}
    downtimes = downtimes or []
    return run_analysis(
        build_plant_prompt(oee, downtimes),
        lambda: plant_fallback(oee, downtimes, machines),
        api_key=api_key, models=models, client_factory=client_factory,
    )


# ---------------------------------------------------------------------------
# Breakage analysis
# ---------------------------------------------------------------------------
NO_PRODUCTION_RESULT = {
    "insight": "No hay suficientes datos de producción para realizar un análisis de calidad.",
    "recommendations": ["Seleccione un rango de fecha con producción."],
    "priority": "low",
}


def build_breakage_prompt(stats):
    sectors = "\n".join(f"- {s['name']}: {s['value']:.0f}" for s in stats.get("bySector", [])) or "N/A"
    providers = "\n".join(f"- {p['name']}: {p['rate']:.2f}%"
                          for p in stats.get("byProvider", [])[:3]) or "N/A"
    materials = "\n".join(f"- {m['name']}: {m['rate']:.2f}%"
                          for m in stats.get("byMaterial", [])[:3]) or "N/A"
    return f"""Actúa como un Ingeniero de Calidad experto. Analiza estos datos de merma de sacos:

DATOS:
- Producción: {stats.get('totalProduced', 0):,.0f}
- Roturas: {stats.get('totalBroken', 0):,.0f}
- Tasa Falla: {stats.get('globalRate', 0):.2f}%

SECTORES (Fallas):
{sectors}

PROVEEDORES (Peores):
{providers}

MATERIALES (Peores):
{materials}
{_JSON_REPLY_FORMAT}"""


def breakage_fallback(stats):
    """Rule-based breakage diagnostic.  Rate > 2% is high priority, > 1% medium."""
    rate = stats.get("globalRate", 0) or 0
    sectors = stats.get("bySector") or []
    top_sector = max(sectors, key=lambda s: s["value"])["name"] if sectors else "Ensacadora"
    providers = stats.get("byProvider") or []
    top_provider = providers[0]["name"] if providers else "Sin Proveedor"

    if rate > BREAKAGE_RATE_HIGH:
        priority = "high"
    elif rate > BREAKAGE_RATE_MEDIUM:
        priority = "medium"
    else:
        priority = "low"
    insight = (f"Tasa de rotura {rate:.2f}%, concentrada en el sector {top_sector}; "
               f"proveedor más afectado: {top_provider}.")
    return _fallback_result(insight, [
        f"Revisar calibración de mordazas en {top_sector}.",
        f"Solicitar revisión de lote a {top_provider}.",
        "Aumentar frecuencia de limpieza en sensores de transporte.",
    ], priority)


def analyze_breakage(stats, api_key=None, models=None, client_factory=None):
    stats = stats or {}
    if not stats.get("totalProduced"):
        return dict(NO_PRODUCTION_RESULT)
    return run_analysis(
        build_breakage_prompt(stats),
        lambda: breakage_fallback(stats),
        api_key=api_key, models=models, client_factory=client_factory,
    )


# ---------------------------------------------------------------------------
# Downtime analysis
# ---------------------------------------------------------------------------
NO_EVENTS_RESULT = {
    "insight": "No hay eventos de parada registrados en este rango.",
    "recommendations": ["Verificar carga de datos en planilla."],
    "priority": "low",
}


def build_downtime_prompt(downtimes):
    top = sorted(downtimes, key=lambda d: -d.get("durationMinutes", 0))[:8]
    lines = "\n".join(
        f"- {d.get('reason') or 'Sin motivo'} en {d.get('hac') or 'Sin HAC'} "
        f"({d.get('durationMinutes', 0)}m, Tipo: {d.get('downtimeType') or 'N/D'})"
        for d in top
    )
    return f"""Actúa como Especialista en Mantenimiento Industrial. Analiza estos paros de planta:
Eventos:
{lines}
{_JSON_REPLY_FORMAT}"""


def downtime_fallback(downtimes):
    """Rule-based downtime diagnostic.  More than 120 min total is high priority."""
    total = sum(d.get("durationMinutes", 0) for d in downtimes)
    top = _top_downtime(downtimes)
    reason = (top or {}).get("reason") or "Sin motivo"
    hac = (top or {}).get("hac") or "Sin HAC"

    if total > DOWNTIME_MINUTES_HIGH:
        priority = "high"
        insight = f"CRÍTICO: elevada acumulación de parada ({total} min). Falla principal: '{reason}' en {hac}."
    else:
        priority = "medium"
        insight = f"OPERATIVO: paros menores en el periodo ({total} min). Motivo recurrente: '{reason}'."

    recommendations = []
    if top:
        recommendations.append(f"Inspeccionar sensor/mecanismo asociado a: {reason}.")
        recommendations.append(f"Revisar historial de mantenimiento de equipo: {hac}.")
    recommendations.append("Validar correcta carga de motivos en SAP/Hoja de Campo.")
    return _fallback_result(insight, recommendations, priority)


def analyze_downtime(downtimes, api_key=None, models=None, client_factory=None):
    downtimes = downtimes or []
    if not downtimes:
        return dict(NO_EVENTS_RESULT)
    return run_analysis(
        build_downtime_prompt(downtimes),
        lambda: downtime_fallback(downtimes),
        api_key=api_key, models=models, client_factory=client_factory,
    )
