"""Modelos de compras y vocabulario canónico de estados."""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

PURCHASE_ID_PREFIX = "purchase_"


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    READY = "ready"
    AWAITING_PAYMENT = "awaiting_payment"
    IN_TRANSIT = "in_transit"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({PurchaseStatus.IN_TRANSIT, PurchaseStatus.CANCELLED})


class PurchaseEvent(str, Enum):
    ACCEPT = "accept"
    READY = "ready"
    REQUEST_PAYMENT = "request_payment"
    CONFIRM_PAID = "confirm_paid"
    CANCEL = "cancel"


STATUS_LABELS: dict[str, dict[PurchaseStatus, str]] = {
    "ru": {
        PurchaseStatus.PENDING: "Создана",
        PurchaseStatus.ACCEPTED: "✅ Принята",
        PurchaseStatus.READY: "📦 Товар готов",
        PurchaseStatus.AWAITING_PAYMENT: "💰 Ожидает оплаты",
        PurchaseStatus.IN_TRANSIT: "🚚 В пути",
        PurchaseStatus.CANCELLED: "❌ Отменена",
    },
    "en": {
        PurchaseStatus.PENDING: "Created",
        PurchaseStatus.ACCEPTED: "✅ Accepted",
        PurchaseStatus.READY: "📦 Goods ready",
        PurchaseStatus.AWAITING_PAYMENT: "💰 Awaiting payment",
        PurchaseStatus.IN_TRANSIT: "🚚 In transit",
        PurchaseStatus.CANCELLED: "❌ Cancelled",
    },
}

# Los dos vocabularios históricos del panel y del bot se traducen al enum canónico.
LEGACY_STATUS_ALIASES: dict[str, PurchaseStatus] = {
    "создана": PurchaseStatus.PENDING,
    "принята": PurchaseStatus.ACCEPTED,
    "готов": PurchaseStatus.READY,
    "ожидает_оплаты": PurchaseStatus.AWAITING_PAYMENT,
    "в_пути": PurchaseStatus.IN_TRANSIT,
    "paid": PurchaseStatus.IN_TRANSIT,
    "delivering": PurchaseStatus.IN_TRANSIT,
    "received": PurchaseStatus.IN_TRANSIT,
}

LEGACY_EVENT_ALIASES: dict[str, PurchaseEvent] = {
    "payment": PurchaseEvent.REQUEST_PAYMENT,
    "paid": PurchaseEvent.CONFIRM_PAID,
}


def status_label(status: PurchaseStatus, locale: str = "ru") -> str:
    labels = STATUS_LABELS.get(locale) or STATUS_LABELS["ru"]
    return labels[status]


def parse_status(value: str | PurchaseStatus) -> PurchaseStatus:
    """Resuelve un estado canónico o de cualquiera de los vocabularios históricos."""

    if isinstance(value, PurchaseStatus):
        return value
    text = str(value).strip().lower()
    try:
        return PurchaseStatus(text)
    except ValueError:
        pass
    if text in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[text]
    raise ValueError(f"Estado de compra desconocido: {value}")


def parse_event(value: str | PurchaseEvent) -> PurchaseEvent:
    if isinstance(value, PurchaseEvent):
        return value
    text = str(value).strip().lower()
    try:
        return PurchaseEvent(text)
    except ValueError:
        pass
    if text in LEGACY_EVENT_ALIASES:
        return LEGACY_EVENT_ALIASES[text]
    raise ValueError(f"Evento de compra desconocido: {value}")


class PurchaseItem(BaseModel):
    """Línea de una compra tal como la envía el panel."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    product_id: int | str | None = Field(
        None, alias="productId", description="Producto del catálogo, si existe"
    )
    name: str = Field(..., min_length=1, description="Nombre mostrado en la notificación")
    quantity: int = Field(..., gt=0, description="Unidades a comprar")
    price: float = Field(..., gt=0, description="Costo unitario")
    total: float = Field(
        0.0, description="Total de la línea informado por el cliente; no se recalcula"
    )

    @field_validator("name", mode="before")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip() if isinstance(value, str) else value

    @field_validator("total", mode="before")
    @classmethod
    def _none_as_zero(cls, value: object) -> object:
        return 0.0 if value is None else value


class PurchaseCreate(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    is_urgent: bool = Field(False, alias="isUrgent")
    items: list[PurchaseItem] = Field(..., min_length=1)

    @field_validator("is_urgent", mode="before")
    @classmethod
    def _none_as_false(cls, value: object) -> object:
        return False if value is None else value


class Purchase(BaseModel):
    """Compra registrada y su estado actual."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")
    is_urgent: bool = Field(False, alias="isUrgent")
    items: list[PurchaseItem] = Field(..., min_length=1)
    total_cost: float = Field(..., alias="totalCost")
    status: PurchaseStatus = PurchaseStatus.PENDING
    telegram_chat_id: str | None = Field(None, alias="telegramChatId")
    telegram_message_id: int | None = Field(None, alias="telegramMessageId")
    version: int = Field(0, ge=0)

    @property
    def number(self) -> str:
        """Número corto mostrado a los usuarios (sufijo del identificador)."""

        if self.id.startswith(PURCHASE_ID_PREFIX):
            return self.id[len(PURCHASE_ID_PREFIX):]
        return self.id


__all__ = [
    "LEGACY_EVENT_ALIASES",
    "LEGACY_STATUS_ALIASES",
    "PURCHASE_ID_PREFIX",
    "Purchase",
    "PurchaseCreate",
    "PurchaseEvent",
    "PurchaseItem",
    "PurchaseStatus",
    "STATUS_LABELS",
    "TERMINAL_STATUSES",
    "parse_event",
    "parse_status",
    "status_label",
]
