"""Errores del ciclo de vida de compras."""
from __future__ import annotations

from typing import Any

NOT_FOUND = "not_found"
UNKNOWN_ACTION = "unknown_action"
STALE_VERSION = "stale_version"

_USER_MESSAGES = {
    NOT_FOUND: "Закупка не найдена",
    UNKNOWN_ACTION: "Неизвестное действие",
    STALE_VERSION: "Неизвестное действие",
}


class PurchaseError(Exception):
    """Base error for purchase lifecycle failures."""


class PurchaseValidationError(PurchaseError):
    """Raised when a creation request is rejected before any mutation."""

    def __init__(self, detail: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.errors = errors or []


class PurchaseActionRejected(PurchaseError):
    """Raised when an event cannot be applied to a purchase.

    Unknown purchase ids, events that do not apply to the current status and
    malformed callback payloads all surface as this single error kind.
    """

    def __init__(
        self,
        reason: str,
        *,
        purchase_id: str | None = None,
        event: str | None = None,
    ) -> None:
        self.reason = reason
        self.purchase_id = purchase_id
        self.event = event
        super().__init__(self.user_message)

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.reason, _USER_MESSAGES[UNKNOWN_ACTION])

    def __str__(self) -> str:  # pragma: no cover - representation helper
        return (
            f"{self.user_message} (reason={self.reason}, purchase_id={self.purchase_id},"
            f" event={self.event})"
        )


__all__ = [
    "NOT_FOUND",
    "PurchaseActionRejected",
    "PurchaseError",
    "PurchaseValidationError",
    "STALE_VERSION",
    "UNKNOWN_ACTION",
]
