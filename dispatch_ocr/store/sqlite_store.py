"""SQLite-backed dispatch store.

Holds only the dispatch fields the OCR pipeline reads and writes. A new
connection is opened for every operation so the store can be shared
across threads.
"""

import json
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from dispatch_ocr.errors import StoreError
from dispatch_ocr.models import DeliveryStatus, Dispatch
from dispatch_ocr.utils.logger import get_logger

logger = get_logger(__name__)

_COLUMNS = (
    "id",
    "tracking_id",
    "amount",
    "payment_received",
    "delivery_status",
    "payment_received_at",
    "payment_received_by",
    "ocr_processed",
    "ocr_processed_at",
    "ocr_confidence",
    "ocr_raw_data",
)
_UPDATABLE = frozenset(_COLUMNS) - {"id"}


def _to_column(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in ("payment_received", "ocr_processed"):
        return int(bool(value))
    if name == "amount":
        return str(value)
    if name == "ocr_raw_data":
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value) if name == "delivery_status" else value


def _from_row(row: sqlite3.Row) -> Dispatch:
    def _ts(value: str | None) -> datetime | None:
        return datetime.fromisoformat(value) if value else None

    return Dispatch(
        id=row["id"],
        tracking_id=row["tracking_id"],
        amount=Decimal(row["amount"]),
        payment_received=bool(row["payment_received"]),
        delivery_status=DeliveryStatus(row["delivery_status"]),
        payment_received_at=_ts(row["payment_received_at"]),
        payment_received_by=row["payment_received_by"],
        ocr_processed=bool(row["ocr_processed"]),
        ocr_processed_at=_ts(row["ocr_processed_at"]),
        ocr_confidence=row["ocr_confidence"],
        ocr_raw_data=json.loads(row["ocr_raw_data"]) if row["ocr_raw_data"] else None,
    )


class SQLiteDispatchStore:
    """Dispatch store persisted in a single SQLite file.

    Args:
        db_path: Path of the database file; created on ``init_db``.
    """

    def __init__(self, db_path: str | Path = "dispatches.db") -> None:
        self.db_path = str(db_path)

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            con = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open {self.db_path}: {exc}") from exc
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        except StoreError:
            con.rollback()
            raise
        except sqlite3.Error as exc:
            con.rollback()
            raise StoreError(str(exc)) from exc
        except (ValueError, InvalidOperation) as exc:
            con.rollback()
            raise StoreError(f"Malformed dispatch row: {exc}") from exc
        finally:
            con.close()

    def init_db(self) -> None:
        with self._conn() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS dispatches (
                  id TEXT PRIMARY KEY,
                  tracking_id TEXT NOT NULL,
                  amount TEXT NOT NULL,
                  payment_received INTEGER NOT NULL DEFAULT 0,
                  delivery_status TEXT NOT NULL DEFAULT 'Dispatched',
                  payment_received_at TEXT,
                  payment_received_by TEXT,
                  ocr_processed INTEGER NOT NULL DEFAULT 0,
                  ocr_processed_at TEXT,
                  ocr_confidence REAL,
                  ocr_raw_data TEXT
                );
                """
            )
            # Not unique: duplicates are reported by the lookup, not rejected here.
            con.execute(
                "CREATE INDEX IF NOT EXISTS idx_dispatches_tracking_id "
                "ON dispatches(tracking_id)"
            )
        logger.debug("Dispatch schema verified at %s", self.db_path)

    def add(self, dispatch: Dispatch) -> None:
        self.add_many([dispatch])

    def add_many(self, dispatches: Iterable[Dispatch]) -> int:
        """Insert dispatches in one transaction; nothing is kept if any fails.

        Returns:
            Number of dispatches inserted.

        Raises:
            StoreError: If a dispatch cannot be inserted, e.g. a duplicate id.
        """
        sql = (
            f"INSERT INTO dispatches({', '.join(_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in _COLUMNS)})"
        )
        count = 0
        with self._conn() as con:
            for dispatch in dispatches:
                values = [_to_column(c, getattr(dispatch, c)) for c in _COLUMNS]
                values[1] = dispatch.tracking_id.upper()
                try:
                    con.execute(sql, values)
                except sqlite3.IntegrityError as exc:
                    raise StoreError(f"Cannot add dispatch {dispatch.id}: {exc}") from exc
                count += 1
        return count

    def get(self, dispatch_id: str) -> Dispatch | None:
        with self._conn() as con:
            row = con.execute(
                "SELECT * FROM dispatches WHERE id=?", (dispatch_id,)
            ).fetchone()
            return _from_row(row) if row else None

    def find_by_tracking_id(self, tracking_id: str) -> list[Dispatch]:
        with self._conn() as con:
            rows = con.execute(
                "SELECT * FROM dispatches WHERE tracking_id=? ORDER BY rowid",
                (tracking_id.upper(),),
            ).fetchall()
            return [_from_row(r) for r in rows]

    def update(self, dispatch_id: str, changes: dict[str, Any]) -> None:
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise StoreError(f"Unknown dispatch fields: {', '.join(sorted(unknown))}")
        if not changes:
            return

        assignments = ", ".join(f"{name}=?" for name in changes)
        values = [_to_column(name, value) for name, value in changes.items()]
        with self._conn() as con:
            cur = con.execute(
                f"UPDATE dispatches SET {assignments} WHERE id=?",
                (*values, dispatch_id),
            )
            if cur.rowcount == 0:
                raise StoreError(f"Dispatch {dispatch_id} not found")
