# agent_pricing/tools/tool_pricing.py
from __future__ import annotations

from typing import Optional, Literal, List, Dict, Any
import dataclasses
from datetime import date, datetime
from decimal import Decimal
import math

import numpy as np
import pandas as pd
from pydantic import ValidationError as PydanticValidationError

# === Capa de dominio =========================================================
from .pricing.config import AppConfig
from .pricing.dto import PricingQuery
from .pricing.exceptions import PricingError
from .pricing.service import run_ingestion, run_pricing_query

# Config por defecto
DEFAULT_CFG = AppConfig()


# ------------------------------- Helpers -------------------------------------
def _norm_mode(x: Optional[str]) -> Optional[str]:
    if not x:
        return x
    v = x.lower().strip()
    # Sinónimos que suele mandar el LLM
    mapping = {
        "trackers": "trackers",
        "tracker": "trackers",
        "item": "trackers",
        "precio": "trackers",
        "by_vendor": "by_vendor",
        "by-vendor": "by_vendor",
        "vendor": "by_vendor",
        "por_proveedor": "by_vendor",
        "history": "history",
        "historial": "history",
        "alerts": "alerts",
        "alertas": "alerts",
        "trends": "trends",
        "tendencias": "trends",
        "summary": "summary",
        "resumen": "summary",
        "activity": "activity",
        "actividad": "activity",
    }
    return mapping.get(v, v)


def _json_safe(obj: Any) -> Any:
    """Convierte recursivamente a tipos JSON-serializables."""
    if obj is None:
        return None
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, float) and (math.isnan(obj) or math.isinf(obj)):
        return None

    # pandas / numpy
    if obj is pd.NaT:
        return None
    if isinstance(obj, np.generic):
        return _json_safe(obj.item())
    if isinstance(obj, np.ndarray):
        return [_json_safe(x) for x in obj.tolist()]

    if isinstance(obj, dict):
        return {str(k): _json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_json_safe(v) for v in obj]

    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _json_safe(dataclasses.asdict(obj))

    # pydantic v2
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        return _json_safe(model_dump())

    return obj


# --------------------------- Tools públicas (AFC) ------------------------------
def price_insights(
    mode: Literal["trackers", "by_vendor", "history", "alerts", "trends", "summary", "activity"],
    restaurant_id: str,
    vendor_id: Optional[str] = None,
    item_number: Optional[str] = None,
    as_of: Optional[str] = None,        # "YYYY-MM-DD"
    days: Optional[int] = None,
    threshold_pct: Optional[float] = None,
    fresh: bool = False,
    app_cfg: Optional[AppConfig] = None,
) -> Dict[str, Any]:
    """
    Tool pública AFC-friendly: inteligencia de precios de compras a proveedores.

    Parámetros:
      - mode: "trackers" (un item), "by_vendor" (todos los items de un vendor),
        "history" (rollups diarios), "alerts", "trends", "summary", "activity".
      - restaurant_id: restaurante consultado.
      - vendor_id / item_number: requeridos por trackers/history; by_vendor solo vendor_id.
      - as_of: fecha de corte "YYYY-MM-DD" (default: última materializada u hoy).
      - days: tamaño de ventana para history/trends/activity.
      - threshold_pct: umbral de alertas en % (default 10).
      - fresh: recalcular en vez de leer los trackers materializados.
      - app_cfg: config alternativa (pruebas); default DEFAULT_CFG.

    Retorna:
      dict JSON-serializable con llaves: ok, mode, filters, meta, data, warnings, error.
    """
    cfg = app_cfg or DEFAULT_CFG
    mode_norm = _norm_mode(mode)

    if days is not None and (not isinstance(days, int) or days <= 0):
        return {"ok": False, "mode": mode_norm, "data": [], "error": f"days inválido: {days}"}

    try:
        q = PricingQuery(
            mode=mode_norm,
            restaurant_id=restaurant_id,
            vendor_id=vendor_id,
            item_number=item_number,
            as_of=as_of or None,
            days=days,
            threshold_pct=threshold_pct,
            fresh=fresh,
            locale=cfg.locale,
            currency=cfg.currency,
        )
    except PydanticValidationError as exc:
        return {"ok": False, "mode": mode_norm, "data": [], "error": f"Parámetros inválidos: {exc.errors()[0].get('msg')}"}

    try:
        result = run_pricing_query(q=q, app_cfg=cfg)
    except Exception as exc:
        return {"ok": False, "mode": mode_norm, "data": [], "error": f"{type(exc).__name__}: {exc}"}

    out = _json_safe(result)
    if not out.get("ok") and out.get("data"):
        out["error"] = out["data"][0].get("error")
    return out


def ingest_invoice_lines(
    restaurant_id: str,
    lines: List[Dict[str, Any]],
    app_cfg: Optional[AppConfig] = None,
) -> Dict[str, Any]:
    """
    Tool pública: registra líneas de factura ya extraídas.

    Cada línea: vendor_id, item_number, name, unit, unit_price, quantity,
    business_date ("YYYY-MM-DD"). Las líneas inválidas se reportan sin
    abortar el resto. Reenviar una línea la cuenta dos veces.
    """
    try:
        batch = run_ingestion(restaurant_id, lines, app_cfg=app_cfg or DEFAULT_CFG)
    except PricingError as exc:
        return {"ok": False, "data": [], "error": str(exc)}
    payload = _json_safe(batch)
    payload["ok"] = batch.error_count == 0
    return payload
