# agent_pricing/tools/pricing/schema.py
from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Final, List, Tuple

# Nombres canónicos de columnas (evita strings sueltos en el resto del código)
RESTAURANT_ID: Final[str] = "restaurant_id"
VENDOR_ID: Final[str] = "vendor_id"
ITEM_NUMBER: Final[str] = "item_number"
BUSINESS_DATE: Final[str] = "business_date"
QTY_SUM: Final[str] = "quantity_sum"
SPEND_SUM: Final[str] = "spend_sum"
AVG_UNIT_PRICE: Final[str] = "avg_unit_price"

# Claves candidatas
ITEM_KEY: Final[Tuple[str, str, str]] = (RESTAURANT_ID, VENDOR_ID, ITEM_NUMBER)
ROLLUP_KEY: Final[Tuple[str, str, str, str]] = (*ITEM_KEY, BUSINESS_DATE)

ROLLUP_COLS: Final[List[str]] = [*ROLLUP_KEY, QTY_SUM, SPEND_SUM, AVG_UNIT_PRICE]

# Campos numéricos comparados por el validador (los 7 de la regla de consistencia)
CHECKED_FIELDS: Final[Tuple[str, ...]] = (
    "last_paid_price",
    "avg_7d",
    "avg_28d",
    "diff_vs_7d_pct",
    "diff_vs_28d_pct",
    "min_28d",
    "max_28d",
)

# —— Punto fijo ——
# Cantidades y gasto se guardan como enteros escalados a 4 decimales: la suma
# en SQL queda exacta y el incremento es una sola sentencia atómica.
AMOUNT_PLACES: Final[int] = 4
AMOUNT_QUANT: Final[Decimal] = Decimal(1).scaleb(-AMOUNT_PLACES)   # 0.0001
PRICE_QUANT: Final[Decimal] = AMOUNT_QUANT
CENT: Final[Decimal] = Decimal("0.01")

# Tope de SQLite INTEGER (64 bits con signo) expresado como monto
MAX_UNITS: Final[int] = 2**63 - 1
MAX_AMOUNT: Final[Decimal] = Decimal(MAX_UNITS).scaleb(-AMOUNT_PLACES)


def quantize(value: Decimal, quant: Decimal = AMOUNT_QUANT) -> Decimal:
    return value.quantize(quant, rounding=ROUND_HALF_EVEN)


def to_units(value: Decimal) -> int:
    """Decimal -> entero escalado (0.0001 => 1)."""
    return int(quantize(value).scaleb(AMOUNT_PLACES))


def from_units(units: int) -> Decimal:
    """Entero escalado -> Decimal con 4 decimales."""
    return Decimal(int(units)).scaleb(-AMOUNT_PLACES)


SCHEMA_VERSION: Final[int] = 1

DDL: Final[str] = """
CREATE TABLE IF NOT EXISTS vendor_items (
    restaurant_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    item_number TEXT NOT NULL,
    last_seen_name TEXT NOT NULL DEFAULT '',
    last_seen_unit TEXT NOT NULL DEFAULT '',
    last_seen_at TEXT NOT NULL,
    canonical_item_id TEXT,
    PRIMARY KEY (restaurant_id, vendor_id, item_number)
);

CREATE TABLE IF NOT EXISTS daily_rollups (
    restaurant_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    item_number TEXT NOT NULL,
    business_date TEXT NOT NULL,
    quantity_units INTEGER NOT NULL DEFAULT 0 CHECK (quantity_units >= 0),
    spend_units INTEGER NOT NULL DEFAULT 0 CHECK (spend_units >= 0),
    updated_at TEXT NOT NULL,
    PRIMARY KEY (restaurant_id, vendor_id, item_number, business_date)
);

CREATE INDEX IF NOT EXISTS idx_rollups_date ON daily_rollups(restaurant_id, business_date);

CREATE TABLE IF NOT EXISTS price_trackers (
    restaurant_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    item_number TEXT NOT NULL,
    as_of_date TEXT NOT NULL,
    payload TEXT NOT NULL,
    computed_at TEXT NOT NULL,
    PRIMARY KEY (restaurant_id, vendor_id, item_number)
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);
"""
