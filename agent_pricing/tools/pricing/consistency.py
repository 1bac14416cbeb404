# agent_pricing/tools/pricing/consistency.py
"""
Validador offline de trackers de precios.

Recalcula los 7 campos numéricos de PriceTrackers directamente desde el
historial crudo de rollups, con una implementación independiente del motor
de estadísticas (sin pandas, recorriendo los días a mano), y los compara con
lo materializado usando una tolerancia absoluta (default 0.005).

Un pass rate menor a 100% es una regresión de correctitud: el CLI termina con
código 1 y nada se corrige automáticamente.

Uso:
    pricing-validate --db pricing.db
    pricing-validate --db pricing.db --restaurant R001 --sample 200 --seed 7 --json
"""
from __future__ import annotations

import argparse
import logging
import random
import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union

from .config import AppConfig
from .dto import DailyRollup, FieldDiscrepancy, ItemCheck, PriceTrackers, ValidationReport, VendorItem
from .schema import CHECKED_FIELDS
from .store import RollupStore

logger = logging.getLogger(__name__)

Number = Union[Decimal, float]


def reference_trackers(
    history: Sequence[DailyRollup],
    as_of: date,
    short_days: int = 7,
    long_days: int = 28,
) -> Dict[str, Number]:
    """Reimplementación independiente de las fórmulas de trackers."""
    long_start = as_of - timedelta(days=long_days - 1)
    short_start = as_of - timedelta(days=short_days - 1)

    days = sorted(
        (r.business_date, r.quantity_sum, r.spend_sum)
        for r in history
        if long_start <= r.business_date <= as_of
    )

    zero = Decimal("0")
    qty_long = spend_long = qty_short = spend_short = zero
    prices: List[Decimal] = []
    last_price = zero
    for day, qty, spend in days:
        qty_long += qty
        spend_long += spend
        if day >= short_start:
            qty_short += qty
            spend_short += spend
        if qty > 0:
            price = spend / qty
            last_price = price
            if price > 0:
                prices.append(price)

    avg_short = spend_short / qty_short if qty_short > 0 else zero
    avg_long = spend_long / qty_long if qty_long > 0 else zero

    def pct(base: Decimal) -> float:
        return float((last_price - base) / base * 100) if base != 0 else 0.0

    return {
        "last_paid_price": last_price,
        "avg_7d": avg_short,
        "avg_28d": avg_long,
        "diff_vs_7d_pct": pct(avg_short),
        "diff_vs_28d_pct": pct(avg_long),
        "min_28d": min(prices) if prices else zero,
        "max_28d": max(prices) if prices else zero,
    }


def _as_decimal(x: Number) -> Decimal:
    return x if isinstance(x, Decimal) else Decimal(repr(x))


def check_trackers(
    trackers: PriceTrackers,
    history: Sequence[DailyRollup],
    tolerance: Decimal,
    cfg: Optional[AppConfig] = None,
) -> ItemCheck:
    """Compara un PriceTrackers contra la recomputación desde `history`."""
    cfg = cfg or AppConfig()
    expected = reference_trackers(history, trackers.as_of_date, cfg.window_short_days, cfg.window_long_days)

    discrepancies: List[FieldDiscrepancy] = []
    for field in CHECKED_FIELDS:
        stored = getattr(trackers, field)
        want = expected[field]
        delta = abs(_as_decimal(stored) - _as_decimal(want))
        if delta > tolerance:
            discrepancies.append(
                FieldDiscrepancy(field=field, stored=float(stored), expected=float(want), delta=float(delta))
            )

    return ItemCheck(
        restaurant_id=trackers.restaurant_id,
        vendor_id=trackers.vendor_id,
        item_number=trackers.item_number,
        as_of_date=trackers.as_of_date,
        passed=not discrepancies,
        discrepancies=discrepancies,
    )


def check_item(store: RollupStore, item: VendorItem, tolerance: Decimal, cfg: Optional[AppConfig] = None) -> ItemCheck:
    stored = store.get_trackers(item.restaurant_id, item.vendor_id, item.item_number)
    if stored is None:
        return ItemCheck(
            restaurant_id=item.restaurant_id,
            vendor_id=item.vendor_id,
            item_number=item.item_number,
            passed=False,
            error="Sin trackers materializados.",
        )
    history = store.get_history(item.restaurant_id, item.vendor_id, item.item_number)
    return check_trackers(stored, history, tolerance, cfg)


def validate_store(
    store: RollupStore,
    restaurant_id: Optional[str] = None,
    sample_size: Optional[int] = None,
    seed: Optional[int] = None,
    tolerance: Optional[Decimal] = None,
    cfg: Optional[AppConfig] = None,
) -> ValidationReport:
    """Corre el validador sobre todos (o una muestra de) los vendor items."""
    cfg = cfg or AppConfig()
    tol = Decimal(tolerance) if tolerance is not None else cfg.tolerance

    items = store.list_vendor_items(restaurant_id=restaurant_id)
    if sample_size is not None and 0 < sample_size < len(items):
        items = random.Random(seed).sample(items, sample_size)

    checks = [check_item(store, vi, tol, cfg) for vi in items]
    passed = sum(1 for c in checks if c.passed)
    report = ValidationReport(
        checked=len(checks),
        passed=passed,
        failed=len(checks) - passed,
        tolerance=tol,
        generated_at=datetime.now(tz=timezone.utc),
        items=checks,
    )

    for c in report.failures():
        logger.error(
            "Fuera de tolerancia %s/%s/%s: %s",
            c.restaurant_id, c.vendor_id, c.item_number,
            c.error or ", ".join(f"{d.field} Δ={d.delta:.6f}" for d in c.discrepancies),
        )
    logger.info("Validación: %s/%s ok (%.2f%%)", report.passed, report.checked, report.pass_rate)
    return report


def _print_summary(report: ValidationReport) -> None:
    print(f"Items revisados: {report.checked}")
    print(f"Pass rate:       {report.pass_rate:.2f}% (tolerancia {report.tolerance})")
    for c in report.failures():
        print(f"  FAIL {c.restaurant_id}/{c.vendor_id}/{c.item_number} as_of={c.as_of_date}")
        if c.error:
            print(f"       {c.error}")
        for d in c.discrepancies:
            print(f"       {d.field}: guardado={d.stored} esperado={d.expected} Δ={d.delta:.6f}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pricing-validate",
        description="Recalcula trackers desde los rollups y los compara con lo materializado.",
    )
    parser.add_argument("--db", type=str, default=None, help="Ruta de la base SQLite (default: PRICING_DB_PATH)")
    parser.add_argument("--restaurant", type=str, default=None, help="Limitar a un restaurante")
    parser.add_argument("--sample", type=int, default=None, help="Tamaño de muestra aleatoria")
    parser.add_argument("--seed", type=int, default=None, help="Semilla de la muestra")
    parser.add_argument("--tolerance", type=str, default=None, help="Tolerancia absoluta (default 0.005)")
    parser.add_argument("--json", action="store_true", help="Salida JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log a nivel DEBUG")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg = AppConfig()
    store = RollupStore(args.db or cfg.db_path)
    try:
        report = validate_store(
            store,
            restaurant_id=args.restaurant,
            sample_size=args.sample,
            seed=args.seed,
            tolerance=Decimal(args.tolerance) if args.tolerance else None,
            cfg=cfg,
        )
    finally:
        store.close()

    if args.json:
        print(report.model_dump_json(indent=2))
    else:
        _print_summary(report)
    return 0 if report.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
