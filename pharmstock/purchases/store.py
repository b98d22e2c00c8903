"""Purchase stores: an in-memory one and a SQLite-backed one."""
from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Protocol

from ..persistence import InventoryRepository
from .errors import STALE_VERSION, PurchaseActionRejected, PurchaseError
from .models import Purchase


@dataclass(frozen=True)
class PurchasePage:
    purchases: list[Purchase] = field(default_factory=list)
    page: int = 1
    limit: int = 10
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> dict:
        return {
            "purchases": [p.model_dump(mode="json", by_alias=True) for p in self.purchases],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
            },
        }


class PurchaseStore(Protocol):
    def add(self, purchase: Purchase) -> None:
        ...

    def get(self, purchase_id: str) -> Purchase | None:
        ...

    def list(
        self, *, is_urgent: bool | None = None, page: int = 1, limit: int = 10
    ) -> PurchasePage:
        ...

    def save(self, purchase: Purchase, *, expected_version: int) -> None:
        """Persist ``purchase`` if the stored copy is still at ``expected_version``."""


def _page_bounds(page: int, limit: int) -> tuple[int, int, int]:
    page = max(1, int(page))
    limit = max(1, int(limit))
    return page, limit, (page - 1) * limit


class InMemoryPurchaseStore:
    """Process-local store; starts empty on every process start."""

    def __init__(self) -> None:
        self._items: dict[str, Purchase] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def add(self, purchase: Purchase) -> None:
        with self._guard:
            if purchase.id in self._items:
                raise PurchaseError(f"Duplicate purchase id {purchase.id}")
            self._items[purchase.id] = purchase

    def get(self, purchase_id: str) -> Purchase | None:
        return self._items.get(purchase_id)

    def list(
        self, *, is_urgent: bool | None = None, page: int = 1, limit: int = 10
    ) -> PurchasePage:
        page, limit, offset = _page_bounds(page, limit)
        with self._guard:
            # Newest insertion first; sorted() keeps that order for equal timestamps.
            candidates = list(reversed(self._items.values()))
        if is_urgent is not None:
            candidates = [p for p in candidates if p.is_urgent is is_urgent]
        candidates = sorted(candidates, key=lambda p: p.created_at, reverse=True)
        return PurchasePage(
            purchases=candidates[offset: offset + limit],
            page=page,
            limit=limit,
            total=len(candidates),
        )

    def save(self, purchase: Purchase, *, expected_version: int) -> None:
        with self._guard:
            current = self._items.get(purchase.id)
            if current is None or current.version != expected_version:
                raise PurchaseActionRejected(STALE_VERSION, purchase_id=purchase.id)
            self._items[purchase.id] = purchase


class SQLitePurchaseStore:
    """Stores purchases as JSON payloads next to the product snapshots."""

    def __init__(self, repo: InventoryRepository) -> None:
        self._repo = repo

    def add(self, purchase: Purchase) -> None:
        inserted = self._repo.insert_purchase(
            purchase.id,
            purchase.model_dump_json(by_alias=True),
            is_urgent=purchase.is_urgent,
            status=purchase.status.value,
            version=purchase.version,
            created_at=purchase.created_at.isoformat(),
            updated_at=purchase.updated_at.isoformat(),
        )
        if not inserted:
            raise PurchaseError(f"Duplicate purchase id {purchase.id}")

    def get(self, purchase_id: str) -> Purchase | None:
        payload = self._repo.get_purchase(purchase_id)
        if payload is None:
            return None
        return Purchase.model_validate_json(payload)

    def list(
        self, *, is_urgent: bool | None = None, page: int = 1, limit: int = 10
    ) -> PurchasePage:
        page, limit, offset = _page_bounds(page, limit)
        payloads, total = self._repo.list_purchases(
            is_urgent=is_urgent, offset=offset, limit=limit
        )
        return PurchasePage(
            purchases=[Purchase.model_validate_json(p) for p in payloads],
            page=page,
            limit=limit,
            total=total,
        )

    def save(self, purchase: Purchase, *, expected_version: int) -> None:
        updated = self._repo.update_purchase(
            purchase.id,
            purchase.model_dump_json(by_alias=True),
            status=purchase.status.value,
            version=purchase.version,
            updated_at=purchase.updated_at.isoformat(),
            expected_version=expected_version,
        )
        if not updated:
            raise PurchaseActionRejected(STALE_VERSION, purchase_id=purchase.id)


__all__ = [
    "InMemoryPurchaseStore",
    "PurchasePage",
    "PurchaseStore",
    "SQLitePurchaseStore",
]
