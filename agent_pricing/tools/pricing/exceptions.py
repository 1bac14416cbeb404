# agent_pricing/tools/pricing/exceptions.py
from __future__ import annotations

class PricingError(Exception):
    """Base para errores del dominio de inteligencia de precios."""

class ValidationError(PricingError):
    """Línea o parámetro inválido; se rechaza antes de mutar el store."""

class NotFoundError(PricingError):
    """El recurso pedido (vendor item, trackers) no existe."""

class ConsistencyError(PricingError):
    """El validador encontró trackers fuera de tolerancia. No se corrige solo."""

    def __init__(self, message: str, failed: int = 0, checked: int = 0) -> None:
        super().__init__(message)
        self.failed = failed
        self.checked = checked
