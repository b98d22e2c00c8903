from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pharmstock.persistence import InventoryRepository
from pharmstock.purchases import (
    InMemoryPurchaseStore,
    NotificationEdit,
    NotificationMessage,
    PurchaseLifecycleManager,
    PurchaseStatus,
)
from pharmstock.web.app import app, get_manager, get_repository


class RecordingSink:
    def __init__(self) -> None:
        self.sent: list[NotificationMessage] = []
        self.edits: list[NotificationEdit] = []
        self.answers: list[tuple[str, str]] = []

    def send(self, message: NotificationMessage) -> tuple[str, int] | None:
        self.sent.append(message)
        return ("-100200", len(self.sent))

    def edit(self, edit: NotificationEdit) -> None:
        self.edits.append(edit)

    def answer_callback(self, callback_id: str, text: str) -> None:
        self.answers.append((callback_id, text))


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)


@pytest.fixture()
def populated_repo(tmp_path: Path) -> InventoryRepository:
    repo = InventoryRepository(tmp_path / "pharmstock.db")
    repo.upsert_products(
        [
            {
                "id": 1,
                "name": "Ibuprofen 400",
                "stockQuantity": 46,
                "avgDailySales30d": 2.3,
                "inTransit": 5,
                "deliveryDays": 14,
                "minStock": 10,
                "costPrice": 3.5,
            },
            {
                "id": 2,
                "name": "Paracetamol 500",
                "stockQuantity": 3,
                "avgDailySales30d": 0.5,
                "deliveryDays": 21,
                "minStock": 5,
                "costPrice": 2,
            },
            {
                "id": 3,
                "name": "Omeprazole 20",
                "stockQuantity": 59,
                "avgDailySales30d": 1.8,
                "inTransit": 12,
                "deliveryDays": 14,
                "minStock": 8,
            },
            {"id": 4, "name": "Vitamin C", "stockQuantity": 0, "avgDailySales30d": 0},
        ]
    )
    return repo


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def client(populated_repo: InventoryRepository, sink: RecordingSink) -> TestClient:
    manager = PurchaseLifecycleManager(
        InMemoryPurchaseStore(), sink, dispatch=lambda func, *args: func(*args)
    )
    get_repository.cache_clear()
    get_manager.cache_clear()
    app.dependency_overrides[get_repository] = lambda: populated_repo
    app.dependency_overrides[get_manager] = lambda: manager
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
    get_repository.cache_clear()
    get_manager.cache_clear()


def _create(client: TestClient, **overrides: Any) -> dict[str, Any]:
    payload = {
        "isUrgent": True,
        "items": [{"productId": 2, "name": "Paracetamol 500", "quantity": 2, "price": 100, "total": 200}],
    }
    payload.update(overrides)
    response = client.post("/api/purchases", json=payload)
    assert response.status_code == 201
    return response.json()["data"]


def test_health(client: TestClient) -> None:
    body = client.get("/health").json()

    assert body["status"] == "OK"
    assert body["telegramConfigured"] is False


def test_import_products_runs_in_background(
    client: TestClient, populated_repo: InventoryRepository
) -> None:
    response = client.post(
        "/api/products/import",
        json=[
            {"id": 5, "name": "Cetirizine", "stockQuantity": 1, "avgDailySales30d": 1},
            {"name": "no id"},
        ],
    )

    assert response.status_code == 202
    assert response.json()["received"] == 2
    assert populated_repo.get_product(5)["name"] == "Cetirizine"
    assert len(populated_repo.list_products()) == 5


def test_product_analytics_with_summary(client: TestClient) -> None:
    response = client.get("/api/analytics/products")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [item["id"] for item in body["data"]] == [1, 2, 3, 4]
    assert body["data"][1]["daysToZero"] == 6
    assert body["data"][1]["recommendedQty"] == 13
    assert body["data"][1]["urgencyLevel"] == "critical"
    assert body["summary"]["totalProducts"] == 4
    assert body["summary"]["criticalProducts"] == 1
    assert "timestamp" in body


def test_product_analytics_filters(client: TestClient) -> None:
    critical = client.get("/api/analytics/products", params={"filter": "critical"}).json()
    ranged = client.get("/api/analytics/products", params={"minDays": 10, "maxDays": 40}).json()

    assert [item["id"] for item in critical["data"]] == [2]
    assert critical["summary"]["totalProducts"] == 4
    assert [item["id"] for item in ranged["data"]] == [1, 3]


def test_unknown_filter_is_rejected(client: TestClient) -> None:
    response = client.get("/api/analytics/products", params={"filter": "cheap"})

    assert response.status_code == 422


def test_low_stock_listing(client: TestClient) -> None:
    default = client.get("/api/analytics/products/low-stock").json()
    wider = client.get("/api/analytics/products/low-stock", params={"days": 30}).json()

    assert [item["id"] for item in default["data"]] == [2]
    assert default["threshold"] == 14
    assert wider["count"] == 2


def test_product_detail_includes_calculations(client: TestClient) -> None:
    response = client.get("/api/analytics/products/2")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["name"] == "Paracetamol 500"
    assert data["calculations"]["daysToZeroCalc"] == "3 ÷ 0.5 = 6 дней"
    assert client.get("/api/analytics/products/99").status_code == 404


def test_purchase_recommendations(client: TestClient) -> None:
    body = client.get("/api/analytics/purchase-recommendations").json()

    assert [item["productId"] for item in body["data"]] == [2, 4]
    assert body["data"][0]["estimatedCost"] == 26
    assert body["summary"] == {
        "totalItems": 2,
        "totalQuantity": 18,
        "totalEstimatedCost": 26.0,
        "criticalItems": 1,
    }


def test_recommendations_pdf(client: TestClient) -> None:
    response = client.get("/api/analytics/purchase-recommendations.pdf")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/pdf")
    assert response.content.startswith(b"%PDF")


def test_create_purchase_sends_notification(client: TestClient, sink: RecordingSink) -> None:
    data = _create(client)

    assert data["status"] == "pending"
    assert data["totalCost"] == 200
    assert data["isUrgent"] is True
    assert len(sink.sent) == 1

    fetched = client.get(f"/api/purchases/{data['id']}").json()["data"]
    assert fetched["telegramMessageId"] == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"items": []},
        {"isUrgent": False},
        {"items": [{"name": "A", "quantity": 0, "price": 10, "total": 0}]},
        [{"name": "A", "quantity": 1, "price": 10, "total": 10}],
        "A",
    ],
)
def test_invalid_purchase_returns_400(client: TestClient, payload: Any) -> None:
    response = client.post("/api/purchases", json=payload)

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_list_purchases(client: TestClient) -> None:
    first = _create(client, isUrgent=False)
    second = _create(client)

    body = client.get("/api/purchases", params={"limit": 1}).json()["data"]
    assert [p["id"] for p in body["purchases"]] == [second["id"]]
    assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "totalPages": 2}

    normal = client.get("/api/purchases", params={"isUrgent": "false"}).json()["data"]
    assert [p["id"] for p in normal["purchases"]] == [first["id"]]


def test_status_events_and_rejections(client: TestClient, sink: RecordingSink) -> None:
    purchase_id = _create(client)["id"]

    accepted = client.post(f"/api/purchases/{purchase_id}/events", json={"event": "accept"})
    assert accepted.status_code == 200
    assert accepted.json()["data"]["status"] == PurchaseStatus.ACCEPTED.value
    assert sink.edits[-1].button.callback_data == f"ready_{purchase_id}"

    again = client.post(f"/api/purchases/{purchase_id}/events", json={"event": "accept"})
    assert again.status_code == 404
    assert again.json() == {
        "success": False,
        "error": "Неизвестное действие",
        "reason": "unknown_action",
    }

    missing = client.get("/api/purchases/purchase_0")
    assert missing.status_code == 404
    assert missing.json()["error"] == "Закупка не найдена"


def test_patch_status_accepts_legacy_labels(client: TestClient) -> None:
    purchase_id = _create(client)["id"]

    response = client.patch(f"/api/purchases/{purchase_id}/status", json={"status": "принята"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "accepted"

    skipped = client.patch(f"/api/purchases/{purchase_id}/status", json={"status": "в_пути"})
    assert skipped.status_code == 404


def test_telegram_webhook_advances_purchase(client: TestClient, sink: RecordingSink) -> None:
    purchase_id = _create(client)["id"]
    update = {
        "update_id": 1,
        "callback_query": {
            "id": "cb-1",
            "from": {"id": 7, "first_name": "Ayşe"},
            "message": {"message_id": 1, "chat": {"id": -100200}},
            "data": f"accept_{purchase_id}",
        },
    }

    response = client.post("/api/telegram/webhook", json=update)

    assert response.json() == {"ok": True}
    assert client.get(f"/api/purchases/{purchase_id}").json()["data"]["status"] == "accepted"
    assert sink.answers == [("cb-1", "Статус обновлен: ✅ Принята")]

    stale = client.post("/api/telegram/webhook", json=update)
    assert stale.json() == {"ok": True}
    assert sink.answers[-1] == ("cb-1", "Неизвестное действие")


def test_webhook_ignores_other_updates(client: TestClient, sink: RecordingSink) -> None:
    response = client.post("/api/telegram/webhook", json={"update_id": 2, "message": {"text": "hi"}})

    assert response.json() == {"ok": True}
    assert sink.answers == []
