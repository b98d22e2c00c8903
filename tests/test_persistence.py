from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pharmstock.ingestion.import_products import import_products, read_snapshot_file
from pharmstock.persistence import InventoryRepository, chunked
from pharmstock.purchases import (
    Purchase,
    PurchaseActionRejected,
    PurchaseError,
    PurchaseLifecycleManager,
    PurchaseStatus,
    SQLitePurchaseStore,
)

CREATED_AT = datetime(2024, 6, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def repo(tmp_path: Path) -> InventoryRepository:
    return InventoryRepository(tmp_path / "pharmstock.db")


def _purchase(index: int, *, is_urgent: bool = False) -> Purchase:
    created = CREATED_AT + timedelta(minutes=index)
    return Purchase(
        id=f"purchase_{index}",
        created_at=created,
        updated_at=created,
        is_urgent=is_urgent,
        items=[{"name": f"Item {index}", "quantity": 1, "price": 10, "total": 10}],
        total_cost=10,
    )


def test_products_are_upserted_in_first_seen_order(repo: InventoryRepository) -> None:
    saved = repo.upsert_products(
        [
            {"id": 2, "name": "B", "stockQuantity": 4},
            {"productId": "1", "name": "A", "stockQuantity": 9},
            {"name": "sin id"},
        ]
    )
    assert saved == 2

    repo.upsert_products([{"id": 2, "name": "B", "stockQuantity": 1}])

    products = repo.list_products()
    assert [product["name"] for product in products] == ["B", "A"]
    assert products[0]["stockQuantity"] == 1
    assert repo.get_product("1")["name"] == "A"
    assert repo.get_product("missing") is None
    assert repo.get_product("  ") is None
    assert len(repo.list_products(limit=1)) == 1


def test_import_products_skips_invalid_rows(
    repo: InventoryRepository, tmp_path: Path
) -> None:
    export = tmp_path / "products.json"
    export.write_text(
        json.dumps(
            {
                "data": [
                    {"id": 1, "name": "Ibuprofeno", "stockQuantity": 46, "avgDailySales30d": 2.3},
                    {"id": 2, "name": "Paracetamol", "stockQuantity": "muchos"},
                    {"name": "Sin identificador"},
                    {"id": 3, "name": "Omeprazol", "inTransit": 12},
                ]
            }
        ),
        encoding="utf-8",
    )

    stored = import_products(repo, read_snapshot_file(export), batch_size=1)

    assert stored == 2
    assert [product["id"] for product in repo.list_products()] == [1, 3]
    assert repo.get_product(3)["inTransit"] == 12


def test_read_snapshot_file_rejects_non_lists(tmp_path: Path) -> None:
    export = tmp_path / "broken.json"
    export.write_text(json.dumps("nope"), encoding="utf-8")

    with pytest.raises(ValueError):
        read_snapshot_file(export)


def test_chunked_batches() -> None:
    batches = list(chunked(({"n": n} for n in range(5)), 2))

    assert [len(batch) for batch in batches] == [2, 2, 1]


def test_sqlite_store_roundtrip_and_listing(repo: InventoryRepository) -> None:
    store = SQLitePurchaseStore(repo)
    for index in range(4):
        store.add(_purchase(index, is_urgent=index % 2 == 1))

    restored = store.get("purchase_2")
    assert restored is not None
    assert restored.created_at == CREATED_AT + timedelta(minutes=2)
    assert restored.items[0].name == "Item 2"
    assert store.get("purchase_99") is None

    page = store.list(page=1, limit=3)
    assert [p.id for p in page.purchases] == ["purchase_3", "purchase_2", "purchase_1"]
    assert page.total == 4
    assert page.total_pages == 2

    urgent = store.list(is_urgent=True)
    assert [p.id for p in urgent.purchases] == ["purchase_3", "purchase_1"]

    with pytest.raises(PurchaseError):
        store.add(_purchase(0))


def test_sqlite_store_checks_versions(repo: InventoryRepository) -> None:
    store = SQLitePurchaseStore(repo)
    purchase = _purchase(1)
    store.add(purchase)

    accepted = purchase.model_copy(update={"status": PurchaseStatus.ACCEPTED, "version": 1})
    store.save(accepted, expected_version=0)
    assert store.get(purchase.id).status is PurchaseStatus.ACCEPTED

    with pytest.raises(PurchaseActionRejected):
        store.save(accepted, expected_version=0)


def test_manager_with_sqlite_store(repo: InventoryRepository) -> None:
    class SilentSink:
        def send(self, message):
            return ("-1", 5)

        def edit(self, edit):
            pass

        def answer_callback(self, callback_id, text):
            pass

    manager = PurchaseLifecycleManager(
        SQLitePurchaseStore(repo),
        SilentSink(),
        dispatch=lambda func, *args: func(*args),
        clock=lambda: CREATED_AT,
    )
    purchase = manager.create_purchase(
        [{"name": "A", "quantity": 2, "price": 100, "total": 200}], is_urgent=True
    )
    manager.apply_status_event(purchase.id, "accept")

    stored = manager.get_purchase(purchase.id)
    assert stored.status is PurchaseStatus.ACCEPTED
    assert stored.telegram_message_id == 5
    assert stored.version == 2
    assert stored.total_cost == 200
