# agent_pricing/tools/pricing/stats.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
import logging

import pandas as pd

from .config import AppConfig
from .dto import DailyRollup, PriceTrackers, VendorItem, ZERO
from .matching import CanonicalLookup, StoreCanonicalLookup
from .schema import AVG_UNIT_PRICE, BUSINESS_DATE, PRICE_QUANT, QTY_SUM, ROLLUP_COLS, SPEND_SUM, quantize
from .store import RollupStore

logger = logging.getLogger(__name__)


# ------------------------------- Helpers puros --------------------------------

def window_bounds(as_of: date, days: int) -> Tuple[date, date]:
    """Ventana de `days` días calendario que termina en as_of, ambos extremos incluidos."""
    return as_of - timedelta(days=days - 1), as_of


def rollups_to_frame(rollups: Iterable[DailyRollup]) -> pd.DataFrame:
    """DataFrame ordenado por fecha. Montos quedan como Decimal (dtype object)."""
    records = [r.model_dump() for r in rollups]
    if not records:
        return pd.DataFrame(columns=ROLLUP_COLS)
    df = pd.DataFrame.from_records(records, columns=ROLLUP_COLS)
    df[BUSINESS_DATE] = pd.to_datetime(df[BUSINESS_DATE])
    return df.sort_values(by=BUSINESS_DATE, kind="mergesort").reset_index(drop=True)


def _dsum(s: pd.Series) -> Decimal:
    # sum() de pandas sobre object devuelve int 0 si está vacío; forzamos Decimal
    return sum(s.tolist(), ZERO)


def weighted_avg(frame: pd.DataFrame) -> Decimal:
    """Σ gasto / Σ cantidad. No es el promedio de los promedios diarios."""
    if frame.empty:
        return ZERO
    qty = _dsum(frame[QTY_SUM])
    if qty <= 0:
        return ZERO
    return _dsum(frame[SPEND_SUM]) / qty


def pct_diff(value: Decimal, base: Decimal) -> float:
    """(value - base) / base * 100; 0 cuando base es 0. Porcentaje solo de presentación."""
    if base == 0:
        return 0.0
    return float((value - base) / base * 100)


def last_paid(frame: pd.DataFrame) -> Tuple[Decimal, Optional[date]]:
    """Precio promedio y fecha del día más reciente con cantidad > 0."""
    if frame.empty:
        return ZERO, None
    active = frame[frame[QTY_SUM] > 0]
    if active.empty:
        return ZERO, None
    row = active.iloc[-1]
    return row[AVG_UNIT_PRICE], row[BUSINESS_DATE].date()


@dataclass(frozen=True)
class WindowStats:
    """Estadísticos sin redondear de una ventana (insumo de PriceTrackers)."""
    last_paid_price: Decimal
    last_paid_date: Optional[date]
    avg_short: Decimal
    avg_long: Decimal
    min_long: Decimal
    max_long: Decimal
    active_days: int


def window_stats(frame: pd.DataFrame, as_of: date, short_days: int) -> WindowStats:
    """Cálculo puro sobre la ventana larga ya filtrada."""
    price, paid_on = last_paid(frame)
    if frame.empty:
        return WindowStats(price, paid_on, ZERO, ZERO, ZERO, ZERO, 0)

    short_start, _ = window_bounds(as_of, short_days)
    short = frame[frame[BUSINESS_DATE] >= pd.Timestamp(short_start)]

    # días sin actividad no cuentan como precio 0
    priced = [p for p in frame[AVG_UNIT_PRICE].tolist() if p > 0]
    return WindowStats(
        last_paid_price=price,
        last_paid_date=paid_on,
        avg_short=weighted_avg(short),
        avg_long=weighted_avg(frame),
        min_long=min(priced) if priced else ZERO,
        max_long=max(priced) if priced else ZERO,
        active_days=len(priced),
    )


# ------------------------------- Motor -----------------------------------------

class StatisticsEngine:
    """Deriva PriceTrackers desde los rollups diarios.

    compute_trackers es puro respecto del store (solo lee); refresh materializa
    el resultado como caché con timestamp. La caché nunca es fuente de verdad:
    siempre puede recalcularse y debe coincidir.
    """

    def __init__(
        self,
        store: RollupStore,
        lookup: Optional[CanonicalLookup] = None,
        cfg: Optional[AppConfig] = None,
    ) -> None:
        self._store = store
        self._lookup: CanonicalLookup = lookup or StoreCanonicalLookup(store)
        self._cfg = cfg or AppConfig()

    @property
    def store(self) -> RollupStore:
        return self._store

    def _long_window(self, restaurant_id: str, vendor_id: str, item_number: str, as_of: date) -> pd.DataFrame:
        start, end = window_bounds(as_of, self._cfg.window_long_days)
        return rollups_to_frame(self._store.get_window(restaurant_id, vendor_id, item_number, start, end))

    def _siblings(self, restaurant_id: str, canonical_item_id: str) -> List[VendorItem]:
        """Vendor items del restaurante con el mismo id canónico, según el lookup."""
        return [
            vi for vi in self._store.list_vendor_items(restaurant_id=restaurant_id)
            if self._lookup.canonical_id_for(vi.restaurant_id, vi.vendor_id, vi.item_number) == canonical_item_id
        ]

    def compute_trackers(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        as_of: Optional[date] = None,
    ) -> PriceTrackers:
        """Trackers del item al cierre de as_of. Sin historial => resultado en ceros."""
        as_of = as_of or date.today()
        frame = self._long_window(restaurant_id, vendor_id, item_number, as_of)
        ws = window_stats(frame, as_of, self._cfg.window_short_days)

        trackers = PriceTrackers(
            restaurant_id=restaurant_id,
            vendor_id=vendor_id,
            item_number=item_number,
            as_of_date=as_of,
            has_history=ws.last_paid_date is not None,
            last_paid_price=quantize(ws.last_paid_price, PRICE_QUANT),
            last_paid_date=ws.last_paid_date,
            avg_7d=quantize(ws.avg_short, PRICE_QUANT),
            avg_28d=quantize(ws.avg_long, PRICE_QUANT),
            diff_vs_7d_pct=pct_diff(ws.last_paid_price, ws.avg_short),
            diff_vs_28d_pct=pct_diff(ws.last_paid_price, ws.avg_long),
            min_28d=quantize(ws.min_long, PRICE_QUANT),
            max_28d=quantize(ws.max_long, PRICE_QUANT),
            days_with_activity_28d=ws.active_days,
            computed_at=datetime.now(tz=timezone.utc),
        )

        canonical_id = self._lookup.canonical_id_for(restaurant_id, vendor_id, item_number)
        if canonical_id is None:
            return trackers
        return self._with_cross_vendor(trackers, canonical_id, ws.last_paid_price)

    def _with_cross_vendor(self, trackers: PriceTrackers, canonical_id: str, own_price: Decimal) -> PriceTrackers:
        candidates: List[Tuple[Decimal, str, str]] = []
        for vi in self._siblings(trackers.restaurant_id, canonical_id):
            if (vi.vendor_id, vi.item_number) == (trackers.vendor_id, trackers.item_number):
                price = own_price
            else:
                frame = self._long_window(vi.restaurant_id, vi.vendor_id, vi.item_number, trackers.as_of_date)
                price, _ = last_paid(frame)
            if price > 0:
                candidates.append((price, vi.vendor_id, vi.item_number))

        update = {"canonical_item_id": canonical_id}
        if own_price > 0 and not any(c[1:] == (trackers.vendor_id, trackers.item_number) for c in candidates):
            # el lookup puede no reconocer al propio item como miembro del grupo
            candidates.append((own_price, trackers.vendor_id, trackers.item_number))
        if candidates:
            best_price, best_vendor, _ = min(candidates)
            update.update(
                best_price_across_vendors=quantize(best_price, PRICE_QUANT),
                best_vendor_id=best_vendor,
                diff_vs_best_pct=pct_diff(own_price, best_price) if own_price > 0 else None,
            )
        return trackers.model_copy(update=update)

    def refresh(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        as_of: Optional[date] = None,
        keep_latest: bool = True,
    ) -> PriceTrackers:
        """Recalcula y materializa los trackers del item y de sus hermanos canónicos.

        Con keep_latest, un backfill de fechas viejas no retrocede el as_of ya
        materializado.
        """
        as_of = self._effective_as_of(restaurant_id, vendor_id, item_number, as_of, keep_latest)
        trackers = self.compute_trackers(restaurant_id, vendor_id, item_number, as_of)
        self._store.save_trackers(trackers)

        if trackers.canonical_item_id is not None:
            for vi in self._siblings(restaurant_id, trackers.canonical_item_id):
                if (vi.vendor_id, vi.item_number) == (vendor_id, item_number):
                    continue
                sib_as_of = self._effective_as_of(restaurant_id, vi.vendor_id, vi.item_number, as_of, keep_latest)
                self._store.save_trackers(self.compute_trackers(restaurant_id, vi.vendor_id, vi.item_number, sib_as_of))

        logger.info(
            "Trackers materializados %s/%s/%s as_of=%s last=%s avg7=%s avg28=%s",
            restaurant_id, vendor_id, item_number, as_of,
            trackers.last_paid_price, trackers.avg_7d, trackers.avg_28d,
        )
        return trackers

    def _effective_as_of(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        as_of: Optional[date],
        keep_latest: bool,
    ) -> date:
        as_of = as_of or date.today()
        if not keep_latest:
            return as_of
        current = self._store.get_trackers(restaurant_id, vendor_id, item_number)
        if current is not None and current.as_of_date > as_of:
            return current.as_of_date
        return as_of

    # ----------------------- API para reportes / capa HTTP -----------------------

    def get(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        as_of: Optional[date] = None,
        fresh: bool = False,
    ) -> PriceTrackers:
        """Trackers materializados si existen; si no (o fresh/as_of explícito), se calculan."""
        if not fresh and as_of is None:
            cached = self._store.get_trackers(restaurant_id, vendor_id, item_number)
            if cached is not None:
                return cached
        return self.compute_trackers(restaurant_id, vendor_id, item_number, as_of)

    def list_for_vendor(
        self,
        restaurant_id: str,
        vendor_id: str,
        as_of: Optional[date] = None,
        fresh: bool = False,
    ) -> List[PriceTrackers]:
        return [
            self.get(restaurant_id, vendor_id, vi.item_number, as_of=as_of, fresh=fresh)
            for vi in self._store.list_vendor_items(restaurant_id=restaurant_id, vendor_id=vendor_id)
        ]

    def get_history(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        days: Optional[int] = None,
        as_of: Optional[date] = None,
    ) -> List[DailyRollup]:
        """Rollups de los últimos `days` días (incluye as_of), ascendente."""
        start, end = window_bounds(as_of or date.today(), days or self._cfg.history_days)
        return self._store.get_window(restaurant_id, vendor_id, item_number, start, end)
