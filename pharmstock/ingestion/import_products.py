"""Load product stock snapshots from a JSON export into the local database."""
from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path
from typing import Any, Iterable, Iterator

from dotenv import load_dotenv
from pydantic import ValidationError

from ..analytics import ProductSnapshot
from ..logging_config import configure_logging
from ..persistence import InventoryRepository, chunked

logger = logging.getLogger(__name__)


def read_snapshot_file(path: Path | str) -> list[dict[str, Any]]:
    """Read a JSON array of products, or an object wrapping it under ``data``."""

    with open(path, encoding="utf-8") as handle:
        payload = json.load(handle)
    if isinstance(payload, dict):
        payload = payload.get("data") or payload.get("products") or []
    if not isinstance(payload, list):
        raise ValueError(f"{path} does not contain a list of products")
    return [row for row in payload if isinstance(row, dict)]


def _valid_rows(rows: Iterable[dict[str, Any]]) -> Iterator[dict[str, Any]]:
    for index, row in enumerate(rows):
        try:
            snapshot = ProductSnapshot.model_validate(row)
        except ValidationError as exc:
            logger.warning(
                "Skipping product #%s (%s): %s",
                index,
                row.get("id", "sin id"),
                exc.errors(include_url=False),
            )
            continue
        yield {**row, **snapshot.model_dump(by_alias=True)}


def import_products(
    repo: InventoryRepository,
    rows: Iterable[dict[str, Any]],
    *,
    batch_size: int = 100,
) -> int:
    """Validate and persist snapshots in batches. Returns the stored count."""

    total = 0
    for batch in chunked(_valid_rows(rows), batch_size):
        saved = repo.upsert_products(batch)
        total += saved
        logger.debug("Persisted batch of %s/%s products", saved, len(batch))
    logger.info("Product import complete: %s records", total)
    return total


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", help="JSON file with the product snapshots")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=100,
        help="Number of records to persist per transaction",
    )
    parser.add_argument(
        "--db-path",
        help="SQLite database to write (defaults to INVENTORY_DB_PATH)",
    )
    return parser.parse_args()


def main() -> None:
    load_dotenv()
    configure_logging(os.getenv("LOG_LEVEL", "INFO"), os.getenv("LOG_FILE"))
    args = parse_args()

    db_path = args.db_path or os.getenv("INVENTORY_DB_PATH", "data/pharmstock.db")
    repo = InventoryRepository(db_path)
    import_products(repo, read_snapshot_file(args.path), batch_size=args.batch_size)


if __name__ == "__main__":
    main()
