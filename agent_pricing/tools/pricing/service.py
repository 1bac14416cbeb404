# agent_pricing/tools/pricing/service.py
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
import logging
from datetime import date, timedelta

from .config import AppConfig
from .dto import BatchResult, PricingQuery, PricingResult, PurgeResult
from .exceptions import PricingError
from .formatters import build_filter_echo, rollup_row, to_error, to_result, tracker_row
from .i18n import LocaleConfig
from .insights import daily_activity, price_alerts, price_summary, pricing_trends
from .repo import PricingRepository, get_repo
from .validators import validate_query

logger = logging.getLogger(__name__)

Rows = List[Dict[str, Any]]
Handler = Callable[[PricingRepository, PricingQuery, AppConfig], Tuple[Rows, List[str]]]


def _locale(q: PricingQuery) -> LocaleConfig:
    return LocaleConfig(locale=q.locale, currency=q.currency)


# ------------------------------- Handlers por modo ------------------------------
# validate_query ya garantizó los parámetros requeridos por cada modo.

def _trackers(repo: PricingRepository, q: PricingQuery, cfg: AppConfig) -> Tuple[Rows, List[str]]:
    t = repo.stats.get(q.restaurant_id, q.vendor_id, q.item_number, as_of=q.as_of, fresh=q.fresh)
    warnings = [] if t.has_history else ["Sin historial de compras en la ventana; trackers en cero."]
    if t.canonical_item_id is None:
        warnings.append("Item sin emparejar: no hay comparación entre vendors.")
    return [tracker_row(t, _locale(q))], warnings


def _by_vendor(repo: PricingRepository, q: PricingQuery, cfg: AppConfig) -> Tuple[Rows, List[str]]:
    rows = [tracker_row(t, _locale(q)) for t in repo.stats.list_for_vendor(q.restaurant_id, q.vendor_id, as_of=q.as_of, fresh=q.fresh)]
    return rows, [] if rows else [f"Vendor '{q.vendor_id}' sin items registrados."]


def _history(repo: PricingRepository, q: PricingQuery, cfg: AppConfig) -> Tuple[Rows, List[str]]:
    rollups = repo.stats.get_history(q.restaurant_id, q.vendor_id, q.item_number, days=q.days, as_of=q.as_of)
    return [rollup_row(r, _locale(q)) for r in rollups], []


def _alerts(repo: PricingRepository, q: PricingQuery, cfg: AppConfig) -> Tuple[Rows, List[str]]:
    return price_alerts(repo.store, q.restaurant_id, threshold_pct=q.threshold_pct, cfg=cfg), []


def _trends(repo: PricingRepository, q: PricingQuery, cfg: AppConfig) -> Tuple[Rows, List[str]]:
    return pricing_trends(repo.store, q.restaurant_id, days=q.days or cfg.history_days, as_of=q.as_of), []


def _summary(repo: PricingRepository, q: PricingQuery, cfg: AppConfig) -> Tuple[Rows, List[str]]:
    return [price_summary(repo.store, q.restaurant_id, cfg=cfg)], []


def _activity(repo: PricingRepository, q: PricingQuery, cfg: AppConfig) -> Tuple[Rows, List[str]]:
    return daily_activity(repo.store, q.restaurant_id, days=q.days or cfg.window_short_days, as_of=q.as_of), []


_HANDLERS: Dict[str, Handler] = {
    "trackers": _trackers,
    "by_vendor": _by_vendor,
    "history": _history,
    "alerts": _alerts,
    "trends": _trends,
    "summary": _summary,
    "activity": _activity,
}


def get_handler(mode: str) -> Handler:
    """Devuelve el handler adecuado para el modo."""
    try:
        return _HANDLERS[mode]
    except KeyError:
        raise ValueError(f"Modo no soportado: {mode}") from None


# ------------------------------- Puntos de entrada ------------------------------

def run_pricing_query(
    q: PricingQuery,
    app_cfg: Optional[AppConfig] = None,
    repo: Optional[PricingRepository] = None,
) -> PricingResult:
    """
    Punto de entrada de lectura. Orquesta:
    validación -> repo -> handler -> payload (PricingResult).
    """
    cfg = app_cfg or AppConfig()
    filters = build_filter_echo(q)
    try:
        validate_query(q)
        repo = repo or get_repo(cfg)
        data, warnings = get_handler(q.mode)(repo, q, cfg)
        return to_result(mode=q.mode, filters=filters, data=data, warnings=warnings)

    except PricingError as pe:
        logger.exception("Error de dominio en pricing service.")
        return to_error(q.mode, filters, {"error": str(pe), "type": type(pe).__name__})
    except Exception as ex:
        logger.exception("Fallo no controlado en pricing service.")
        return to_error(q.mode, filters, {"error": "Unexpected error", "detail": str(ex)})


def _with_restaurant(line: Any, restaurant_id: str) -> Any:
    # las líneas que no son mapping se dejan pasar: el motor las reporta como error
    if not isinstance(line, Mapping):
        return line
    merged = dict(line)
    if not merged.get("restaurant_id"):
        merged["restaurant_id"] = restaurant_id
    return merged


def run_ingestion(
    restaurant_id: str,
    lines: Sequence[Mapping[str, Any]],
    app_cfg: Optional[AppConfig] = None,
    repo: Optional[PricingRepository] = None,
) -> BatchResult:
    """Ingresa líneas de una factura. restaurant_id completa las líneas que no lo traen."""
    cfg = app_cfg or AppConfig()
    repo = repo or get_repo(cfg)
    prepared = [_with_restaurant(line, restaurant_id) for line in lines]
    return repo.rollups.record_batch(prepared)


def run_retention(
    restaurant_id: str,
    app_cfg: Optional[AppConfig] = None,
    repo: Optional[PricingRepository] = None,
    as_of: Optional[date] = None,
) -> PurgeResult:
    """Borra rollups más viejos que retention_days y recalcula los trackers
    cuya ventana larga tocaba filas purgadas (mismo as_of que tenían).
    """
    cfg = app_cfg or AppConfig()
    repo = repo or get_repo(cfg)
    cutoff = (as_of or date.today()) - timedelta(days=cfg.retention_days)
    result = repo.store.purge_older_than(restaurant_id, cutoff, window_days=cfg.window_long_days)
    for t in result.invalidated:
        repo.stats.refresh(t.restaurant_id, t.vendor_id, t.item_number, as_of=t.as_of_date)
    return result.model_copy(update={"refreshed": len(result.invalidated)})
