# agent_pricing/tools/pricing/store.py
from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterator, List, Optional, Union

from .config import DB_PATH
from .dto import DailyRollup, PriceTrackers, PurgeResult, RollupKey, VendorItem
from .exceptions import NotFoundError
from .schema import DDL, SCHEMA_VERSION, from_units, to_units
from .validators import validate_date_range, validate_deltas

logger = logging.getLogger(__name__)

_ROLLUP_SELECT = """
SELECT restaurant_id, vendor_id, item_number, business_date, quantity_units, spend_units
FROM daily_rollups
"""


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def ensure_schema(db_path: Union[str, Path]) -> sqlite3.Connection:
    """Abre (o crea) la base y aplica el esquema si hace falta.

    La conexión queda en autocommit (isolation_level=None): las transacciones
    se abren explícitamente con BEGIN IMMEDIATE en RollupStore._transaction.
    """
    target = str(db_path)
    if target != ":memory:":
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        target = str(path)

    conn = sqlite3.connect(target, timeout=30.0, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")

    try:
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        current_version = row["version"] if row else 0
    except sqlite3.OperationalError:
        current_version = 0

    if current_version < SCHEMA_VERSION:
        conn.executescript(DDL)
        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        logger.info("Esquema de precios aplicado (version=%s) en %s", SCHEMA_VERSION, target)

    return conn


def _row_to_rollup(row: sqlite3.Row) -> DailyRollup:
    return DailyRollup(
        restaurant_id=row["restaurant_id"],
        vendor_id=row["vendor_id"],
        item_number=row["item_number"],
        business_date=date.fromisoformat(row["business_date"]),
        quantity_sum=from_units(row["quantity_units"]),
        spend_sum=from_units(row["spend_units"]),
    )


def _row_to_vendor_item(row: sqlite3.Row) -> VendorItem:
    return VendorItem(
        restaurant_id=row["restaurant_id"],
        vendor_id=row["vendor_id"],
        item_number=row["item_number"],
        last_seen_name=row["last_seen_name"],
        last_seen_unit=row["last_seen_unit"],
        last_seen_at=datetime.fromisoformat(row["last_seen_at"]),
        canonical_item_id=row["canonical_item_id"],
    )


class RollupStore:
    """Almacén durable de rollups diarios, vendor items y trackers materializados.

    Una sola conexión SQLite protegida por un RLock: dentro del proceso los
    accesos se serializan; entre procesos manda el lock de escritura de SQLite.
    """

    def __init__(self, db_path: Union[str, Path] = DB_PATH) -> None:
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "RollupStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._get_conn()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._get_conn().execute(sql, params).fetchall()

    # ------------------------------ Rollups diarios ------------------------------

    def get(self, restaurant_id: str, vendor_id: str, item_number: str, business_date: date) -> Optional[DailyRollup]:
        rows = self._query(
            _ROLLUP_SELECT
            + " WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ? AND business_date = ?",
            (restaurant_id, vendor_id, item_number, business_date.isoformat()),
        )
        return _row_to_rollup(rows[0]) if rows else None

    def get_window(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        start_date: date,
        end_date: date,
    ) -> List[DailyRollup]:
        """Rollups en [start_date, end_date], ascendente. Los días sin compra no tienen fila."""
        validate_date_range(start_date, end_date)
        rows = self._query(
            _ROLLUP_SELECT
            + """ WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ?
                    AND business_date >= ? AND business_date <= ?
                  ORDER BY business_date ASC""",
            (restaurant_id, vendor_id, item_number, start_date.isoformat(), end_date.isoformat()),
        )
        return [_row_to_rollup(r) for r in rows]

    def get_history(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        end_date: Optional[date] = None,
    ) -> List[DailyRollup]:
        """Historial completo (hasta end_date si se indica), ascendente."""
        sql = _ROLLUP_SELECT + " WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ?"
        params: tuple = (restaurant_id, vendor_id, item_number)
        if end_date is not None:
            sql += " AND business_date <= ?"
            params = params + (end_date.isoformat(),)
        rows = self._query(sql + " ORDER BY business_date ASC", params)
        return [_row_to_rollup(r) for r in rows]

    def activity_between(self, restaurant_id: str, start_date: date, end_date: date) -> List[DailyRollup]:
        """Todos los rollups del restaurante en el rango (todos los vendors/items)."""
        validate_date_range(start_date, end_date)
        rows = self._query(
            _ROLLUP_SELECT
            + """ WHERE restaurant_id = ? AND business_date >= ? AND business_date <= ?
                  ORDER BY business_date ASC, vendor_id ASC, item_number ASC""",
            (restaurant_id, start_date.isoformat(), end_date.isoformat()),
        )
        return [_row_to_rollup(r) for r in rows]

    def upsert_increment(self, key: RollupKey, quantity_delta: Decimal, spend_delta: Decimal) -> DailyRollup:
        """Suma atómica de cantidad y gasto al rollup de la clave.

        Una sola sentencia INSERT ... ON CONFLICT DO UPDATE con aritmética en
        SQL: dos incrementos concurrentes a la misma clave nunca se pisan.
        """
        validate_deltas(quantity_delta, spend_delta)
        q_units = to_units(Decimal(quantity_delta))
        s_units = to_units(Decimal(spend_delta))
        day = key.business_date.isoformat()

        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO daily_rollups
                   (restaurant_id, vendor_id, item_number, business_date,
                    quantity_units, spend_units, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(restaurant_id, vendor_id, item_number, business_date)
                   DO UPDATE SET
                       quantity_units = quantity_units + excluded.quantity_units,
                       spend_units = spend_units + excluded.spend_units,
                       updated_at = excluded.updated_at""",
                (key.restaurant_id, key.vendor_id, key.item_number, day, q_units, s_units, _utcnow().isoformat()),
            )
            row = conn.execute(
                _ROLLUP_SELECT
                + " WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ? AND business_date = ?",
                (key.restaurant_id, key.vendor_id, key.item_number, day),
            ).fetchone()
        return _row_to_rollup(row)

    def purge_older_than(self, restaurant_id: str, cutoff: date, window_days: int = 28) -> PurgeResult:
        """Borra rollups con business_date < cutoff (política de retención).

        En la misma transacción borra los trackers materializados cuya ventana
        de `window_days` días (as_of - window_days + 1) empieza antes del cutoff:
        fueron calculados con filas que ya no existen. Quedan en `invalidated`
        para que el llamador los recalcule.
        """
        stale_before = (cutoff + timedelta(days=window_days - 1)).isoformat()
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM daily_rollups WHERE restaurant_id = ? AND business_date < ?",
                (restaurant_id, cutoff.isoformat()),
            )
            deleted = cur.rowcount
            stale = [
                PriceTrackers.model_validate_json(r["payload"])
                for r in conn.execute(
                    "SELECT payload FROM price_trackers WHERE restaurant_id = ? AND as_of_date < ?",
                    (restaurant_id, stale_before),
                ).fetchall()
            ]
            conn.execute(
                "DELETE FROM price_trackers WHERE restaurant_id = ? AND as_of_date < ?",
                (restaurant_id, stale_before),
            )
        logger.info(
            "Retención: %s rollups borrados, %s trackers invalidados (restaurant=%s, cutoff=%s)",
            deleted, len(stale), restaurant_id, cutoff,
        )
        return PurgeResult(cutoff=cutoff, rollups_deleted=deleted, invalidated=stale)

    # ------------------------------ Vendor items ---------------------------------

    def upsert_vendor_item(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        name: str,
        unit: str,
        seen_at: Optional[datetime] = None,
    ) -> VendorItem:
        """Crea el vendor item o pisa nombre/unidad/last_seen_at (last-write-wins).

        canonical_item_id no se toca: lo escribe el servicio de matching.
        """
        seen = (seen_at or _utcnow()).isoformat()
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO vendor_items
                   (restaurant_id, vendor_id, item_number, last_seen_name, last_seen_unit, last_seen_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(restaurant_id, vendor_id, item_number)
                   DO UPDATE SET
                       last_seen_name = excluded.last_seen_name,
                       last_seen_unit = excluded.last_seen_unit,
                       last_seen_at = excluded.last_seen_at""",
                (restaurant_id, vendor_id, item_number, name, unit, seen),
            )
            row = conn.execute(
                "SELECT * FROM vendor_items WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ?",
                (restaurant_id, vendor_id, item_number),
            ).fetchone()
        return _row_to_vendor_item(row)

    def get_vendor_item(self, restaurant_id: str, vendor_id: str, item_number: str) -> Optional[VendorItem]:
        rows = self._query(
            "SELECT * FROM vendor_items WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ?",
            (restaurant_id, vendor_id, item_number),
        )
        return _row_to_vendor_item(rows[0]) if rows else None

    def list_vendor_items(self, restaurant_id: Optional[str] = None, vendor_id: Optional[str] = None) -> List[VendorItem]:
        sql = "SELECT * FROM vendor_items WHERE 1 = 1"
        params: tuple = ()
        if restaurant_id is not None:
            sql += " AND restaurant_id = ?"
            params += (restaurant_id,)
        if vendor_id is not None:
            sql += " AND vendor_id = ?"
            params += (vendor_id,)
        rows = self._query(sql + " ORDER BY restaurant_id, vendor_id, item_number", params)
        return [_row_to_vendor_item(r) for r in rows]

    def set_canonical_item(
        self,
        restaurant_id: str,
        vendor_id: str,
        item_number: str,
        canonical_item_id: Optional[str],
    ) -> VendorItem:
        """Punto de escritura del servicio de matching externo."""
        with self._transaction() as conn:
            cur = conn.execute(
                """UPDATE vendor_items SET canonical_item_id = ?
                   WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ?""",
                (canonical_item_id, restaurant_id, vendor_id, item_number),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Vendor item no encontrado: {restaurant_id}/{vendor_id}/{item_number}")
        item = self.get_vendor_item(restaurant_id, vendor_id, item_number)
        if item is None:
            raise NotFoundError(f"Vendor item borrado durante el enlace: {restaurant_id}/{vendor_id}/{item_number}")
        return item

    def delete_vendor_item(self, restaurant_id: str, vendor_id: str, item_number: str) -> bool:
        """Borrado administrativo: vendor item, sus rollups y sus trackers."""
        params = (restaurant_id, vendor_id, item_number)
        where = "WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ?"
        with self._transaction() as conn:
            conn.execute(f"DELETE FROM daily_rollups {where}", params)
            conn.execute(f"DELETE FROM price_trackers {where}", params)
            cur = conn.execute(f"DELETE FROM vendor_items {where}", params)
        logger.warning("Vendor item borrado por acción administrativa: %s/%s/%s", *params)
        return cur.rowcount > 0

    # --------------------------- Trackers materializados -------------------------

    def save_trackers(self, trackers: PriceTrackers) -> None:
        with self._transaction() as conn:
            conn.execute(
                """INSERT INTO price_trackers
                   (restaurant_id, vendor_id, item_number, as_of_date, payload, computed_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(restaurant_id, vendor_id, item_number)
                   DO UPDATE SET
                       as_of_date = excluded.as_of_date,
                       payload = excluded.payload,
                       computed_at = excluded.computed_at""",
                (
                    trackers.restaurant_id,
                    trackers.vendor_id,
                    trackers.item_number,
                    trackers.as_of_date.isoformat(),
                    trackers.model_dump_json(),
                    trackers.computed_at.isoformat(),
                ),
            )

    def get_trackers(self, restaurant_id: str, vendor_id: str, item_number: str) -> Optional[PriceTrackers]:
        rows = self._query(
            """SELECT payload FROM price_trackers
               WHERE restaurant_id = ? AND vendor_id = ? AND item_number = ?""",
            (restaurant_id, vendor_id, item_number),
        )
        return PriceTrackers.model_validate_json(rows[0]["payload"]) if rows else None

    def list_trackers(self, restaurant_id: str, vendor_id: Optional[str] = None) -> List[PriceTrackers]:
        sql = "SELECT payload FROM price_trackers WHERE restaurant_id = ?"
        params: tuple = (restaurant_id,)
        if vendor_id is not None:
            sql += " AND vendor_id = ?"
            params += (vendor_id,)
        rows = self._query(sql + " ORDER BY vendor_id, item_number", params)
        return [PriceTrackers.model_validate_json(r["payload"]) for r in rows]
