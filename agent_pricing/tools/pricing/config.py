# agent_pricing/tools/pricing/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Final

# —— Almacenamiento ——
DB_PATH: Final[Path] = Path(os.getenv("PRICING_DB_PATH", "pricing.db"))

# —— Localización ——
DEFAULT_LOCALE: Final[str] = os.getenv("PRICING_LOCALE", "es-MX")
DEFAULT_CURRENCY: Final[str] = os.getenv("PRICING_CURRENCY", "MXN")

# —— Ingesta ——
BATCH_CHUNK_SIZE: Final[int] = int(os.getenv("PRICING_BATCH_CHUNK", "50"))
INGEST_WORKERS:   Final[int] = int(os.getenv("PRICING_INGEST_WORKERS", "4"))

# —— Ventanas (días calendario, inclusivas) ——
WINDOW_SHORT_DAYS: Final[int] = int(os.getenv("PRICING_WINDOW_SHORT_DAYS", "7"))
WINDOW_LONG_DAYS:  Final[int] = int(os.getenv("PRICING_WINDOW_LONG_DAYS", "28"))
HISTORY_DAYS:      Final[int] = int(os.getenv("PRICING_HISTORY_DAYS", "30"))
RETENTION_DAYS:    Final[int] = int(os.getenv("PRICING_RETENTION_DAYS", "400"))

# —— Validación / alertas ——
TOLERANCE:          Final[Decimal] = Decimal(os.getenv("PRICING_TOLERANCE", "0.005"))
ALERT_THRESHOLD_PCT: Final[float] = float(os.getenv("PRICING_ALERT_THRESHOLD_PCT", "10"))
ALERT_HIGH_PCT:      Final[float] = float(os.getenv("PRICING_ALERT_HIGH_PCT", "20"))


@dataclass(frozen=True)
class AppConfig:
    """Snapshot inmutable de configuración consumida por store, motores y servicio."""
    db_path: Path = DB_PATH
    locale: str = DEFAULT_LOCALE
    currency: str = DEFAULT_CURRENCY
    batch_chunk_size: int = BATCH_CHUNK_SIZE
    ingest_workers: int = INGEST_WORKERS
    window_short_days: int = WINDOW_SHORT_DAYS
    window_long_days: int = WINDOW_LONG_DAYS
    history_days: int = HISTORY_DAYS
    retention_days: int = RETENTION_DAYS
    tolerance: Decimal = TOLERANCE
    alert_threshold_pct: float = ALERT_THRESHOLD_PCT
    alert_high_pct: float = ALERT_HIGH_PCT
