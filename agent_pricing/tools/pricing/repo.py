# agent_pricing/tools/pricing/repo.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional
import logging
import threading

from .config import AppConfig
from .matching import CanonicalLookup
from .rollup import RollupEngine
from .stats import StatisticsEngine
from .store import RollupStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingRepository:
    """Store + motores ya cableados sobre la misma base."""
    store: RollupStore
    stats: StatisticsEngine
    rollups: RollupEngine


def build_repo(cfg: Optional[AppConfig] = None, lookup: Optional[CanonicalLookup] = None) -> PricingRepository:
    """Arma un repositorio nuevo (sin singleton). El llamador cierra el store."""
    cfg = cfg or AppConfig()
    store = RollupStore(cfg.db_path)
    stats = StatisticsEngine(store, lookup=lookup, cfg=cfg)
    return PricingRepository(store=store, stats=stats, rollups=RollupEngine(store, stats=stats, cfg=cfg))


class _LazyRepo:
    """Un repositorio por ruta de base, creado en el primer uso."""
    def __init__(self) -> None:
        self._repos: Dict[str, PricingRepository] = {}
        self._lock = threading.Lock()

    def get(self, cfg: AppConfig) -> PricingRepository:
        key = str(cfg.db_path)
        with self._lock:
            if key not in self._repos:
                logger.info("Abriendo repositorio de precios en %s", key)
                self._repos[key] = build_repo(cfg)
            return self._repos[key]

    def reset(self) -> None:
        with self._lock:
            for repo in self._repos.values():
                repo.store.close()
            self._repos.clear()


_lazy_repo = _LazyRepo()


def get_repo(cfg: Optional[AppConfig] = None) -> PricingRepository:
    """Punto de acceso al repositorio (singleton perezoso por db_path)."""
    cfg = cfg or AppConfig()
    return _lazy_repo.get(cfg)


def reset_repos() -> None:
    _lazy_repo.reset()
