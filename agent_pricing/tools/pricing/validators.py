# agent_pricing/tools/pricing/validators.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .dto import PricingQuery, PurchaseLine
from .exceptions import ValidationError
from .schema import MAX_AMOUNT

# Parámetros requeridos por modo (extensible)
REQUIRED_BY_MODE: Dict[str, tuple[str, ...]] = {
    "trackers": ("vendor_id", "item_number"),
    "history": ("vendor_id", "item_number"),
    "by_vendor": ("vendor_id",),
    "alerts": (),
    "trends": (),
    "summary": (),
    "activity": (),
}


def _describe(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "line"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_line(raw: Union[PurchaseLine, Mapping[str, Any]]) -> PurchaseLine:
    """Convierte un mapping crudo del parser de facturas en PurchaseLine.

    Cualquier problema (negativos, fecha malformada, identidad vacía) sale
    como ValidationError del dominio, nunca como error de pydantic.
    """
    if isinstance(raw, PurchaseLine):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Línea no es un mapping: {type(raw).__name__}")
    try:
        line = PurchaseLine.model_validate(dict(raw))
    except PydanticValidationError as exc:
        raise ValidationError(f"Línea inválida: {_describe(exc)}") from exc
    _check_amount("unit_price", line.unit_price)
    _check_amount("quantity", line.quantity)
    _check_amount("line_spend", line.line_spend)
    return line


def _check_amount(field: str, value: Decimal) -> None:
    # el almacén guarda enteros escalados de 64 bits
    if value > MAX_AMOUNT:
        raise ValidationError(f"{field} fuera de rango: {value} > {MAX_AMOUNT}")


def parse_business_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise ValidationError(f"Fecha inválida (se espera YYYY-MM-DD): {value!r}") from exc


def validate_deltas(quantity_delta: Decimal, spend_delta: Decimal) -> None:
    """Las compras solo suman: incrementos negativos están prohibidos."""
    try:
        q = Decimal(quantity_delta)
        s = Decimal(spend_delta)
    except (InvalidOperation, TypeError) as exc:
        raise ValidationError("Incrementos deben ser numéricos.") from exc
    if not q.is_finite() or not s.is_finite():
        raise ValidationError("Incrementos deben ser finitos.")
    if q < 0:
        raise ValidationError("quantity_delta no puede ser negativo.")
    if s < 0:
        raise ValidationError("spend_delta no puede ser negativo.")
    _check_amount("quantity_delta", q)
    _check_amount("spend_delta", s)


def validate_date_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError("start_date no puede ser mayor que end_date.")


def validate_query(q: PricingQuery) -> None:
    """Valida aspectos semánticos de la query."""
    missing = [f for f in REQUIRED_BY_MODE.get(q.mode, ()) if not getattr(q, f)]
    if missing:
        raise ValidationError(f"mode='{q.mode}' requiere: {', '.join(missing)}.")
    if not q.restaurant_id:
        raise ValidationError("restaurant_id es requerido.")
