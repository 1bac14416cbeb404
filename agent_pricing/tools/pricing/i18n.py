# agent_pricing/tools/pricing/i18n.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Mapping, Optional, Union

from .schema import CENT, quantize

Amount = Union[Decimal, int, float]


@dataclass(frozen=True)
class LocaleConfig:
    """Configuración mínima de formato para la capa de reportes."""
    locale: str = "es-MX"
    currency: str = "MXN"
    currency_symbol: str = "$"
    decimal_sep: str = "."
    thousand_sep: str = ","


DEFAULT_LOCALE = LocaleConfig()


def format_currency(value: Optional[Amount], cfg: LocaleConfig = DEFAULT_LOCALE) -> str:
    """Redondea a centavos (half-even) y formatea. None => '-'."""
    if value is None:
        return "-"
    cents = quantize(Decimal(str(value)), CENT)
    s = f"{cents:,.2f}"
    if cfg.thousand_sep != "," or cfg.decimal_sep != ".":
        s = s.replace(",", "X").replace(".", cfg.decimal_sep).replace("X", cfg.thousand_sep)
    return f"{cfg.currency_symbol}{s}"


def format_percent(value: Optional[float], ndigits: int = 2) -> str:
    """Formatea un porcentaje ya multiplicado por 100, con signo: '+3.77%'."""
    if value is None:
        return "-"
    return f"{float(value):+.{ndigits}f}%"


def add_formatted_fields(
    row: Mapping[str, object],
    currency_fields: Iterable[str],
    percent_fields: Iterable[str],
    cfg: LocaleConfig = DEFAULT_LOCALE,
    suffix: str = "_fmt",
) -> Dict[str, object]:
    """Devuelve un nuevo dict con campos formateados añadidos para UI.
    Ej.: 'avg_7d' -> 'avg_7d_fmt'
    """
    out: Dict[str, object] = dict(row)
    for c in currency_fields:
        v = row.get(c)
        out[f"{c}{suffix}"] = format_currency(v if isinstance(v, (Decimal, int, float)) else None, cfg=cfg)
    for p in percent_fields:
        v = row.get(p)
        out[f"{p}{suffix}"] = format_percent(v if isinstance(v, (int, float)) else None)
    return out
