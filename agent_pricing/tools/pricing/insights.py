# agent_pricing/tools/pricing/insights.py
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import logging

import numpy as np
import pandas as pd

from .config import AppConfig
from .dto import ZERO
from .schema import BUSINESS_DATE, ITEM_KEY, ITEM_NUMBER, QTY_SUM, SPEND_SUM, VENDOR_ID
from .stats import rollups_to_frame
from .store import RollupStore

logger = logging.getLogger(__name__)

# Columnas de precio que se pasan a float para analítica/presentación
_PRICE_COLS = ["last_paid_price", "avg_7d", "avg_28d", "min_28d", "max_28d", "best_price_across_vendors"]
_PCT_COLS = ["diff_vs_7d_pct", "diff_vs_28d_pct", "diff_vs_best_pct"]


def trackers_frame(store: RollupStore, restaurant_id: str) -> pd.DataFrame:
    """Trackers materializados del restaurante + nombre/unidad del vendor item."""
    trackers = store.list_trackers(restaurant_id)
    if not trackers:
        return pd.DataFrame()

    df = pd.DataFrame([t.model_dump() for t in trackers])
    for c in _PRICE_COLS:
        df[c] = pd.to_numeric(df[c].map(lambda v: None if v is None else float(v)), errors="coerce")
    for c in _PCT_COLS:
        df[c] = pd.to_numeric(df[c], errors="coerce")
    df["last_paid_date"] = pd.to_datetime(df["last_paid_date"], errors="coerce")

    items = pd.DataFrame(
        [
            {VENDOR_ID: vi.vendor_id, ITEM_NUMBER: vi.item_number, "item_name": vi.last_seen_name, "item_unit": vi.last_seen_unit}
            for vi in store.list_vendor_items(restaurant_id=restaurant_id)
        ],
        columns=[VENDOR_ID, ITEM_NUMBER, "item_name", "item_unit"],
    )
    return df.merge(items, on=[VENDOR_ID, ITEM_NUMBER], how="left")


def _with_alert_labels(df: pd.DataFrame, high_pct: float) -> pd.DataFrame:
    d7 = df["diff_vs_7d_pct"].fillna(0.0).abs()
    d28 = df["diff_vs_28d_pct"].fillna(0.0).abs()
    out = df.copy()
    out["alert_type"] = np.where(d7 > d28, "7d_change", "28d_change")
    out["severity"] = np.where(np.maximum(d7, d28) > high_pct, "high", "medium")
    return out


def price_alerts(
    store: RollupStore,
    restaurant_id: str,
    threshold_pct: Optional[float] = None,
    cfg: Optional[AppConfig] = None,
) -> List[Dict[str, Any]]:
    """Items cuyo último precio se aleja ≥ threshold_pct de su promedio 7d o 28d."""
    cfg = cfg or AppConfig()
    thr = cfg.alert_threshold_pct if threshold_pct is None else threshold_pct
    df = trackers_frame(store, restaurant_id)
    if df.empty:
        return []

    mask = (df["diff_vs_7d_pct"].abs() >= thr) | (df["diff_vs_28d_pct"].abs() >= thr)
    alerts = _with_alert_labels(df[mask & df["has_history"]], cfg.alert_high_pct)
    if alerts.empty:
        return []

    alerts = alerts.sort_values(by=["diff_vs_7d_pct", VENDOR_ID, ITEM_NUMBER], ascending=[False, True, True], kind="mergesort")
    alerts["last_paid_date"] = alerts["last_paid_date"].dt.date
    cols = [
        *ITEM_KEY, "item_name", "last_paid_price", "last_paid_date", "avg_7d", "avg_28d",
        "diff_vs_7d_pct", "diff_vs_28d_pct", "alert_type", "severity",
    ]
    logger.info("Alertas de precio restaurant=%s threshold=%s -> %s", restaurant_id, thr, len(alerts))
    return alerts[cols].to_dict(orient="records")  # type: ignore[return-value]


def pricing_trends(
    store: RollupStore,
    restaurant_id: str,
    days: int = 30,
    as_of: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Items con compra en los últimos `days` días y su volatilidad 28d.

    price_volatility_pct = (max_28d - min_28d) / avg_28d * 100 (0 si falta algún dato).
    """
    df = trackers_frame(store, restaurant_id)
    if df.empty:
        return []

    cutoff = pd.Timestamp((as_of or date.today()) - timedelta(days=days))
    recent = df[df["last_paid_date"] >= cutoff].copy()
    if recent.empty:
        return []

    ok = (recent["max_28d"] > 0) & (recent["min_28d"] > 0) & (recent["avg_28d"] > 0)
    recent["price_volatility_pct"] = np.where(
        ok, (recent["max_28d"] - recent["min_28d"]) / recent["avg_28d"].where(ok, 1.0) * 100.0, 0.0
    )
    recent = recent.sort_values(by=["last_paid_date", VENDOR_ID, ITEM_NUMBER], ascending=[False, True, True], kind="mergesort")
    recent["last_paid_date"] = recent["last_paid_date"].dt.date

    cols = [
        *ITEM_KEY, "item_name", "canonical_item_id", "last_paid_price", "last_paid_date",
        "avg_7d", "avg_28d", "min_28d", "max_28d", "diff_vs_7d_pct", "diff_vs_28d_pct",
        "best_price_across_vendors", "best_vendor_id", "diff_vs_best_pct", "price_volatility_pct",
    ]
    return recent[cols].to_dict(orient="records")  # type: ignore[return-value]


def price_summary(store: RollupStore, restaurant_id: str, cfg: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Resumen de cobertura, alertas y movimientos de precio del restaurante."""
    cfg = cfg or AppConfig()
    generated_at = datetime.now(tz=timezone.utc).isoformat(timespec="seconds")
    df = trackers_frame(store, restaurant_id)
    total = int(len(df))
    if df.empty:
        return {
            "restaurant_id": restaurant_id,
            "total_items": 0,
            "coverage": {"items_with_pricing": 0, "items_with_7d_avg": 0, "items_with_28d_avg": 0,
                         "items_with_cross_vendor": 0, "coverage_pct": 0.0},
            "alerts": {"total": 0, "high": 0, "medium": 0},
            "price_movements": {"increases": 0, "decreases": 0, "stable": 0},
            "generated_at": generated_at,
        }

    with_pricing = int((df["last_paid_price"] > 0).sum())
    alerts = price_alerts(store, restaurant_id, cfg=cfg)
    d7 = df["diff_vs_7d_pct"].fillna(0.0)
    increases = int((d7 > 5).sum())
    decreases = int((d7 < -5).sum())

    return {
        "restaurant_id": restaurant_id,
        "total_items": total,
        "coverage": {
            "items_with_pricing": with_pricing,
            "items_with_7d_avg": int((df["avg_7d"] > 0).sum()),
            "items_with_28d_avg": int((df["avg_28d"] > 0).sum()),
            "items_with_cross_vendor": int((df["best_price_across_vendors"].fillna(0.0) > 0).sum()),
            "coverage_pct": with_pricing / total * 100.0,
        },
        "alerts": {
            "total": len(alerts),
            "high": sum(1 for a in alerts if a["severity"] == "high"),
            "medium": sum(1 for a in alerts if a["severity"] == "medium"),
        },
        "price_movements": {"increases": increases, "decreases": decreases, "stable": total - increases - decreases},
        "generated_at": generated_at,
    }


def daily_activity(
    store: RollupStore,
    restaurant_id: str,
    days: int = 7,
    as_of: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Gasto/cantidad por día de negocio, con items y vendors distintos. Más reciente primero."""
    end = as_of or date.today()
    start = end - timedelta(days=days - 1)
    frame = rollups_to_frame(store.activity_between(restaurant_id, start, end))
    if frame.empty:
        return []

    frame["item_uid"] = frame[VENDOR_ID].astype(str) + ":" + frame[ITEM_NUMBER].astype(str)
    g = frame.groupby(BUSINESS_DATE, dropna=False)
    act = g.agg(
        total_spend=(SPEND_SUM, lambda s: sum(s, ZERO)),
        total_quantity=(QTY_SUM, lambda s: sum(s, ZERO)),
        unique_items=("item_uid", "nunique"),
        unique_vendors=(VENDOR_ID, "nunique"),
    ).reset_index()

    act = act.sort_values(by=BUSINESS_DATE, ascending=False, kind="mergesort")
    act[BUSINESS_DATE] = act[BUSINESS_DATE].dt.date
    return act.to_dict(orient="records")  # type: ignore[return-value]
