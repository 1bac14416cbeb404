# agent_pricing/tools/pricing/dto.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from .exceptions import ConsistencyError

# —— Literales y tipos ——
ModeLiteral = Literal["trackers", "by_vendor", "history", "alerts", "trends", "summary", "activity"]
SeverityLiteral = Literal["high", "medium"]
AlertTypeLiteral = Literal["7d_change", "28d_change"]

ZERO = Decimal("0")


# —— Claves ——

@dataclass(frozen=True)
class ItemKey:
    restaurant_id: str
    vendor_id: str
    item_number: str


@dataclass(frozen=True)
class RollupKey:
    restaurant_id: str
    vendor_id: str
    item_number: str
    business_date: date

    @property
    def item(self) -> ItemKey:
        return ItemKey(self.restaurant_id, self.vendor_id, self.item_number)


# —— Entrada ——

class PurchaseLine(BaseModel):
    """Línea de factura ya extraída por el parser externo."""
    restaurant_id: str
    vendor_id: str
    item_number: str
    name: str = ""
    unit: str = ""
    unit_price: Decimal = Field(ge=0)
    quantity: Decimal = Field(ge=0)
    business_date: date

    @field_validator("restaurant_id", "vendor_id", "item_number")
    @classmethod
    def _require_identity(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("identificador requerido vacío.")
        return v

    @field_validator("name", "unit")
    @classmethod
    def _strip_text(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @property
    def line_spend(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def key(self) -> RollupKey:
        return RollupKey(self.restaurant_id, self.vendor_id, self.item_number, self.business_date)


# —— Entidades persistidas ——

class VendorItem(BaseModel):
    restaurant_id: str
    vendor_id: str
    item_number: str
    last_seen_name: str = ""
    last_seen_unit: str = ""
    last_seen_at: datetime
    canonical_item_id: Optional[str] = None


class DailyRollup(BaseModel):
    """Agregado diario. avg_unit_price se deriva siempre de las sumas."""
    restaurant_id: str
    vendor_id: str
    item_number: str
    business_date: date
    quantity_sum: Decimal = ZERO
    spend_sum: Decimal = ZERO

    @computed_field  # type: ignore[prop-decorator]
    @property
    def avg_unit_price(self) -> Decimal:
        if self.quantity_sum > 0:
            return self.spend_sum / self.quantity_sum
        return ZERO


class PriceTrackers(BaseModel):
    """Trackers materializados: función pura del historial de rollups."""
    restaurant_id: str
    vendor_id: str
    item_number: str
    as_of_date: date
    has_history: bool = False

    last_paid_price: Decimal = ZERO
    last_paid_date: Optional[date] = None
    avg_7d: Decimal = ZERO
    avg_28d: Decimal = ZERO
    diff_vs_7d_pct: float = 0.0
    diff_vs_28d_pct: float = 0.0
    min_28d: Decimal = ZERO
    max_28d: Decimal = ZERO
    days_with_activity_28d: int = 0

    # cross-vendor: None mientras el item no esté emparejado
    canonical_item_id: Optional[str] = None
    best_price_across_vendors: Optional[Decimal] = None
    best_vendor_id: Optional[str] = None
    diff_vs_best_pct: Optional[float] = None

    computed_at: datetime

    @property
    def key(self) -> ItemKey:
        return ItemKey(self.restaurant_id, self.vendor_id, self.item_number)


# —— Resultados de ingesta ——

class LineOutcome(BaseModel):
    index: int
    ok: bool
    item_number: Optional[str] = None
    business_date: Optional[date] = None
    error: Optional[str] = None
    rollup: Optional[DailyRollup] = None


class BatchResult(BaseModel):
    total_lines: int
    success_count: int
    error_count: int
    chunks: int
    outcomes: List[LineOutcome] = Field(default_factory=list)


# —— Retención ——

class PurgeResult(BaseModel):
    """Resultado de la purga: rollups borrados y trackers invalidados (ya sin fila)."""
    cutoff: date
    rollups_deleted: int = 0
    invalidated: List[PriceTrackers] = Field(default_factory=list)
    refreshed: int = 0


# —— Reporte del validador ——

class FieldDiscrepancy(BaseModel):
    field: str
    stored: Optional[float] = None
    expected: Optional[float] = None
    delta: float


class ItemCheck(BaseModel):
    restaurant_id: str
    vendor_id: str
    item_number: str
    as_of_date: Optional[date] = None
    passed: bool
    discrepancies: List[FieldDiscrepancy] = Field(default_factory=list)
    error: Optional[str] = None


class ValidationReport(BaseModel):
    checked: int
    passed: int
    failed: int
    tolerance: Decimal
    generated_at: datetime
    items: List[ItemCheck] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def pass_rate(self) -> float:
        # sin items revisados no hay regresión que reportar
        if self.checked == 0:
            return 100.0
        return self.passed / self.checked * 100.0

    def failures(self) -> List[ItemCheck]:
        return [i for i in self.items if not i.passed]

    def raise_for_failures(self) -> None:
        """Compuerta de release: cualquier item fuera de tolerancia es regresión."""
        if self.failed:
            raise ConsistencyError(
                f"{self.failed}/{self.checked} items fuera de tolerancia ({self.tolerance}).",
                failed=self.failed,
                checked=self.checked,
            )


# —— Consulta / respuesta del servicio ——

class PricingQuery(BaseModel):
    """Contrato de entrada para la tool de precios."""
    mode: ModeLiteral
    restaurant_id: str
    vendor_id: Optional[str] = None
    item_number: Optional[str] = None
    as_of: Optional[date] = None
    days: Optional[int] = Field(default=None, gt=0)
    threshold_pct: Optional[float] = Field(default=None, ge=0)
    fresh: bool = False

    locale: str = "es-MX"
    currency: str = "MXN"

    @field_validator("restaurant_id", "vendor_id", "item_number")
    @classmethod
    def _normalize_ids(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class FilterEcho(BaseModel):
    """Se devuelve en la respuesta para transparencia de filtros aplicados."""
    restaurant_id: Optional[str] = None
    vendor_id: Optional[str] = None
    item_number: Optional[str] = None
    as_of: Optional[date] = None
    days: Optional[int] = None
    threshold_pct: Optional[float] = None
    locale: str = "es-MX"
    currency: str = "MXN"


class MetaInfo(BaseModel):
    row_count: int
    generated_at: str
    currency: str
    locale: str


class PricingResult(BaseModel):
    """Contrato de salida: estable, serializable y amigable para UI."""
    ok: bool
    mode: ModeLiteral
    filters: FilterEcho
    warnings: List[str] = Field(default_factory=list)
    meta: MetaInfo
    data: List[Dict[str, Any]] = Field(default_factory=list)

    @staticmethod
    def empty(mode: ModeLiteral, filters: FilterEcho, meta: MetaInfo, warnings: Optional[List[str]] = None) -> "PricingResult":
        return PricingResult(ok=True, mode=mode, filters=filters, meta=meta, warnings=warnings or [], data=[])
