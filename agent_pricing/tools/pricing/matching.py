# agent_pricing/tools/pricing/matching.py
from __future__ import annotations

from typing import Dict, Mapping, Optional, Protocol, Tuple

from .store import RollupStore


class CanonicalLookup(Protocol):
    """Contrato del servicio externo de identidad de items.

    Decide qué vendor items son "el mismo" producto físico; este core solo
    consume el id canónico (o None si el item aún no está emparejado).
    """
    def canonical_id_for(self, restaurant_id: str, vendor_id: str, item_number: str) -> Optional[str]: ...


class StoreCanonicalLookup:
    """Lee el enlace canónico que el matcher externo escribió en vendor_items."""

    def __init__(self, store: RollupStore) -> None:
        self._store = store

    def canonical_id_for(self, restaurant_id: str, vendor_id: str, item_number: str) -> Optional[str]:
        item = self._store.get_vendor_item(restaurant_id, vendor_id, item_number)
        return item.canonical_item_id if item else None


class StaticCanonicalLookup:
    """Lookup en memoria (restaurant, vendor, item) -> canonical id. Útil en pruebas y backfills."""

    def __init__(self, links: Optional[Mapping[Tuple[str, str, str], str]] = None) -> None:
        self._links: Dict[Tuple[str, str, str], str] = dict(links or {})

    def link(self, restaurant_id: str, vendor_id: str, item_number: str, canonical_item_id: str) -> None:
        self._links[(restaurant_id, vendor_id, item_number)] = canonical_item_id

    def canonical_id_for(self, restaurant_id: str, vendor_id: str, item_number: str) -> Optional[str]:
        return self._links.get((restaurant_id, vendor_id, item_number))
