# agent_pricing/tools/pricing/formatters.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .dto import DailyRollup, FilterEcho, MetaInfo, PriceTrackers, PricingQuery, PricingResult
from .i18n import LocaleConfig, add_formatted_fields

TRACKER_CURRENCY_FIELDS = ("last_paid_price", "avg_7d", "avg_28d", "min_28d", "max_28d", "best_price_across_vendors")
TRACKER_PERCENT_FIELDS = ("diff_vs_7d_pct", "diff_vs_28d_pct", "diff_vs_best_pct")


def build_filter_echo(q: PricingQuery) -> FilterEcho:
    return FilterEcho(
        restaurant_id=q.restaurant_id,
        vendor_id=q.vendor_id,
        item_number=q.item_number,
        as_of=q.as_of,
        days=q.days,
        threshold_pct=q.threshold_pct,
        locale=q.locale,
        currency=q.currency,
    )


def build_meta(row_count: int, locale: str, currency: str) -> MetaInfo:
    ts = datetime.now(tz=timezone.utc).isoformat(timespec="seconds")
    return MetaInfo(row_count=row_count, generated_at=ts, currency=currency, locale=locale)


def tracker_row(t: PriceTrackers, locale: LocaleConfig) -> Dict[str, Any]:
    return add_formatted_fields(t.model_dump(), TRACKER_CURRENCY_FIELDS, TRACKER_PERCENT_FIELDS, cfg=locale)


def rollup_row(r: DailyRollup, locale: LocaleConfig) -> Dict[str, Any]:
    return add_formatted_fields(r.model_dump(), ("spend_sum", "avg_unit_price"), (), cfg=locale)


def to_result(mode: str, filters: FilterEcho, data: List[Dict[str, Any]], warnings: Optional[List[str]] = None) -> PricingResult:
    meta = build_meta(row_count=len(data), locale=filters.locale, currency=filters.currency)
    return PricingResult(ok=True, mode=mode, filters=filters, warnings=warnings or [], meta=meta, data=data)


def to_error(mode: str, filters: FilterEcho, error: Dict[str, Any]) -> PricingResult:
    meta = build_meta(row_count=0, locale=filters.locale, currency=filters.currency)
    return PricingResult(ok=False, mode=mode, filters=filters, warnings=[], meta=meta, data=[error])
