# agent_pricing/tools/pricing/rollup.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging
import sqlite3

from .config import AppConfig
from .dto import BatchResult, DailyRollup, ItemKey, LineOutcome, PurchaseLine
from .exceptions import PricingError
from .stats import StatisticsEngine
from .store import RollupStore
from .validators import parse_line

logger = logging.getLogger(__name__)

RawLine = Union[PurchaseLine, Mapping[str, Any]]


def _chunks(items: Sequence[RawLine], size: int) -> List[List[Tuple[int, RawLine]]]:
    indexed = list(enumerate(items))
    return [indexed[i:i + size] for i in range(0, len(indexed), size)]


class RollupEngine:
    """Aplica líneas de compra al store: vendor item + incremento del día.

    No deduplica: reenviar una línea ya ingerida la cuenta dos veces; evitarlo
    es responsabilidad del llamador.
    """

    def __init__(
        self,
        store: RollupStore,
        stats: Optional[StatisticsEngine] = None,
        cfg: Optional[AppConfig] = None,
    ) -> None:
        self._store = store
        self._stats = stats
        self._cfg = cfg or AppConfig()

    def record_line(self, line: RawLine, refresh: bool = True) -> DailyRollup:
        """Ingresa una línea y devuelve el rollup del día ya actualizado.

        La validación ocurre antes de cualquier escritura: una línea inválida
        nunca queda aplicada a medias.
        """
        parsed = parse_line(line)

        self._store.upsert_vendor_item(
            parsed.restaurant_id,
            parsed.vendor_id,
            parsed.item_number,
            name=parsed.name,
            unit=parsed.unit,
        )
        rollup = self._store.upsert_increment(parsed.key, parsed.quantity, parsed.line_spend)

        logger.debug(
            "Línea aplicada %s/%s/%s %s qty=%s spend=%s -> avg=%s",
            parsed.restaurant_id, parsed.vendor_id, parsed.item_number, parsed.business_date,
            parsed.quantity, parsed.line_spend, rollup.avg_unit_price,
        )

        if refresh and self._stats is not None:
            self._stats.refresh(parsed.restaurant_id, parsed.vendor_id, parsed.item_number, as_of=parsed.business_date)
        return rollup

    def _apply(self, index: int, raw: RawLine) -> LineOutcome:
        try:
            parsed = parse_line(raw)
            rollup = self.record_line(parsed, refresh=False)
            return LineOutcome(
                index=index,
                ok=True,
                item_number=parsed.item_number,
                business_date=parsed.business_date,
                rollup=rollup,
            )
        except PricingError as exc:
            logger.warning("Línea %s rechazada: %s", index, exc)
            return LineOutcome(index=index, ok=False, error=str(exc))
        except Exception as exc:
            # almacenamiento u otro fallo: la línea se reporta, el lote sigue
            logger.exception("Fallo al aplicar línea %s.", index)
            return LineOutcome(index=index, ok=False, error=f"{type(exc).__name__}: {exc}")

    def record_batch(self, lines: Sequence[RawLine], refresh: bool = True) -> BatchResult:
        """Ingresa un lote en chunks de tamaño fijo.

        - Cada línea es atómica por clave; el lote completo no lo es.
        - Una línea fallida se reporta y el resto sigue.
        - Al final se refrescan los trackers una vez por item (última fecha vista).
        """
        chunk_size = max(1, self._cfg.batch_chunk_size)
        chunks = _chunks(lines, chunk_size)
        logger.info("Procesando lote de %s líneas en %s chunks", len(lines), len(chunks))

        outcomes: List[LineOutcome] = []
        workers = max(1, self._cfg.ingest_workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for chunk in chunks:
                outcomes.extend(pool.map(lambda pair: self._apply(*pair), chunk))

        if refresh and self._stats is not None:
            self._refresh_touched(outcomes)

        ok = sum(1 for o in outcomes if o.ok)
        result = BatchResult(
            total_lines=len(lines),
            success_count=ok,
            error_count=len(outcomes) - ok,
            chunks=len(chunks),
            outcomes=outcomes,
        )
        logger.info("Lote completado: ok=%s errores=%s", result.success_count, result.error_count)
        return result

    def _refresh_touched(self, outcomes: List[LineOutcome]) -> None:
        if self._stats is None:
            return
        latest: Dict[ItemKey, date] = {}
        for o in outcomes:
            if not o.ok or o.rollup is None:
                continue
            r = o.rollup
            key = ItemKey(r.restaurant_id, r.vendor_id, r.item_number)
            if key not in latest or r.business_date > latest[key]:
                latest[key] = r.business_date

        for key, as_of in latest.items():
            try:
                self._stats.refresh(key.restaurant_id, key.vendor_id, key.item_number, as_of=as_of)
            except (PricingError, sqlite3.Error):
                logger.exception("No se pudo refrescar trackers de %s", key)
