"""SQLite persistence for product snapshots and purchases."""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    fetched_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS purchases (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL,
    is_urgent INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_purchases_created_at ON purchases (created_at);
"""


class InventoryRepository:
    """Simple SQLite-backed repository for the replenishment data."""

    DEFAULT_ID_FIELDS: tuple[str, ...] = ("id", "productId", "product_id", "externalId")
    TIMESTAMP_FIELDS: tuple[str, ...] = ("updatedAt", "updated_at", "lastUpdated")

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    # -- products -------------------------------------------------------------

    def upsert_products(
        self,
        records: Iterable[dict[str, Any]],
        record_id_field: str | Sequence[str] | None = None,
    ) -> int:
        """Insert or replace product snapshots, keeping their first-seen order."""

        now = datetime.utcnow().isoformat()
        if isinstance(record_id_field, str):
            candidate_fields: tuple[str, ...] = (record_id_field,)
        else:
            candidate_fields = tuple(record_id_field or ()) or self.DEFAULT_ID_FIELDS
        rows = 0
        skipped = 0
        with self._connection() as conn:
            for record in records:
                record_id = None
                for field in candidate_fields:
                    value = record.get(field)
                    if value is None:
                        continue
                    candidate = str(value).strip()
                    if candidate:
                        record_id = candidate
                        break
                if not record_id:
                    skipped += 1
                    if logger.isEnabledFor(logging.DEBUG):
                        logger.debug(
                            "Skipping product without a usable id. Available fields: %s",
                            sorted(record.keys()),
                        )
                    continue
                updated_at = next(
                    (record[f] for f in self.TIMESTAMP_FIELDS if record.get(f)), None
                )
                conn.execute(
                    """
                    INSERT INTO products (id, data, updated_at, fetched_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        data=excluded.data,
                        updated_at=excluded.updated_at,
                        fetched_at=excluded.fetched_at
                    """,
                    (
                        record_id,
                        json.dumps(record, ensure_ascii=False, default=str),
                        str(updated_at or now),
                        now,
                    ),
                )
                rows += 1
        if skipped:
            logger.warning(
                "Skipped %s product records without an id. Enable DEBUG for details.",
                skipped,
            )
        return rows

    def list_products(self, *, limit: int | None = None) -> list[dict[str, Any]]:
        """Return stored product payloads in insertion order."""

        query = "SELECT data FROM products ORDER BY rowid"
        params: tuple[Any, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (max(1, int(limit)),)
        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def get_product(self, product_id: str | int) -> dict[str, Any] | None:
        record_id = str(product_id).strip()
        if not record_id:
            return None
        with self._connection() as conn:
            row = conn.execute(
                "SELECT data FROM products WHERE id = ? LIMIT 1", (record_id,)
            ).fetchone()
        if not row:
            return None
        return json.loads(row["data"])

    # -- purchases ------------------------------------------------------------

    def insert_purchase(
        self,
        purchase_id: str,
        data: str,
        *,
        is_urgent: bool,
        status: str,
        version: int,
        created_at: str,
        updated_at: str,
    ) -> bool:
        """Store a new purchase row. Returns ``False`` if the id already exists."""

        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO purchases
                    (id, data, is_urgent, status, version, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (purchase_id, data, int(is_urgent), status, version, created_at, updated_at),
            )
            return cursor.rowcount == 1

    def update_purchase(
        self,
        purchase_id: str,
        data: str,
        *,
        status: str,
        version: int,
        updated_at: str,
        expected_version: int,
    ) -> bool:
        """Replace a purchase only if its stored version still matches."""

        with self._connection() as conn:
            cursor = conn.execute(
                """
                UPDATE purchases
                SET data = ?, status = ?, version = ?, updated_at = ?
                WHERE id = ? AND version = ?
                """,
                (data, status, version, updated_at, purchase_id, expected_version),
            )
            return cursor.rowcount == 1

    def get_purchase(self, purchase_id: str) -> str | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT data FROM purchases WHERE id = ? LIMIT 1", (purchase_id,)
            ).fetchone()
        return row["data"] if row else None

    def list_purchases(
        self,
        *,
        is_urgent: bool | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[str], int]:
        """Return a newest-first page of purchase payloads and the total count."""

        where = ""
        params: list[Any] = []
        if is_urgent is not None:
            where = "WHERE is_urgent = ?"
            params.append(int(is_urgent))
        with self._connection() as conn:
            total = conn.execute(
                f"SELECT COUNT(*) AS count FROM purchases {where}", params
            ).fetchone()["count"]
            rows = conn.execute(
                f"""
                SELECT data FROM purchases {where}
                ORDER BY created_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                [*params, limit, offset],
            ).fetchall()
        return [row["data"] for row in rows], int(total)


def chunked(iterable: Iterable[dict], size: int) -> Iterator[Sequence[dict]]:
    batch = []
    for item in iterable:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch
