"""Render purchase notifications and describe the messaging collaborator."""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Protocol
from zoneinfo import ZoneInfo

from .callbacks import encode_callback_data
from .models import Purchase, PurchaseEvent, PurchaseItem, PurchaseStatus, status_label
from .state_machine import next_action

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Moscow"
DEFAULT_CURRENCY = "₺"

TITLE_URGENT = "🔥 СРОЧНАЯ ЗАКУПКА"
TITLE_NORMAL = "📦 НОВАЯ ЗАКУПКА"
CANCELLED_FOOTER = "❌ Закупка отменена"

BUTTON_LABELS: dict[PurchaseEvent, str] = {
    PurchaseEvent.ACCEPT: "✅ Принять",
    PurchaseEvent.READY: "📦 Товар готов",
    PurchaseEvent.REQUEST_PAYMENT: "💰 Нужна оплата",
    PurchaseEvent.CONFIRM_PAID: "💳 Я оплатил",
}


@dataclass(frozen=True)
class NotificationButton:
    label: str
    next_event: PurchaseEvent
    purchase_id: str

    @property
    def callback_data(self) -> str:
        return encode_callback_data(self.next_event, self.purchase_id)


@dataclass(frozen=True)
class NotificationMessage:
    text: str
    button: NotificationButton | None = None


@dataclass(frozen=True)
class NotificationEdit:
    """Instruction to rewrite an already delivered message in place."""

    chat_ref: str
    message_ref: int
    text: str
    button: NotificationButton | None = None


class NotificationSink(Protocol):
    def send(self, message: NotificationMessage) -> tuple[str, int] | None:
        """Deliver a new message and return ``(chat_ref, message_ref)`` if known."""

    def edit(self, edit: NotificationEdit) -> None:
        ...

    def answer_callback(self, callback_id: str, text: str) -> None:
        ...


class NullNotificationSink:
    """Sink used when no messaging transport is configured."""

    def send(self, message: NotificationMessage) -> tuple[str, int] | None:
        logger.info(
            "Notifications disabled, dropping message: %s", message.text.splitlines()[0]
        )
        return None

    def edit(self, edit: NotificationEdit) -> None:
        logger.info("Notifications disabled, dropping edit for message %s", edit.message_ref)

    def answer_callback(self, callback_id: str, text: str) -> None:
        logger.info("Notifications disabled, dropping callback answer %s", callback_id)


def _format_amount(value: float | int) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{round(number, 2):g}"


def _format_item(item: PurchaseItem, currency: str) -> str:
    return (
        f"• {html.escape(item.name)} — {item.quantity} шт. × "
        f"{_format_amount(item.price)} {currency} = {_format_amount(item.total)} {currency}"
    )


def _strike(text: str) -> str:
    return "\n".join(f"<s>{line}</s>" if line.strip() else line for line in text.splitlines())


def render_purchase_message(
    purchase: Purchase,
    *,
    timezone: str = DEFAULT_TIMEZONE,
    currency: str = DEFAULT_CURRENCY,
    locale: str = "ru",
) -> NotificationMessage:
    """Build the full notification block for the purchase's current status.

    The whole block is re-rendered on every transition so edits always carry
    the complete text. Cancelled purchases are struck through and lose their
    button.
    """

    title = TITLE_URGENT if purchase.is_urgent else TITLE_NORMAL
    created = purchase.created_at.astimezone(ZoneInfo(timezone))
    items = "\n".join(_format_item(item, currency) for item in purchase.items)
    text = (
        f"{title} #{html.escape(purchase.number)}\n"
        "\n"
        f"💰 Итого: {_format_amount(purchase.total_cost)} {currency}\n"
        f"📊 Статус: {status_label(purchase.status, locale)}\n"
        "\n"
        "📋 СПИСОК ТОВАРОВ:\n"
        f"{items}\n"
        "\n"
        f"⏰ Создано: {created:%d.%m.%Y, %H:%M}"
    )

    if purchase.status is PurchaseStatus.CANCELLED:
        return NotificationMessage(text=f"{_strike(text)}\n\n{CANCELLED_FOOTER}")

    event = next_action(purchase.status)
    button = None
    if event is not None:
        button = NotificationButton(
            label=BUTTON_LABELS[event], next_event=event, purchase_id=purchase.id
        )
    return NotificationMessage(text=text, button=button)


def build_notification_edit(
    purchase: Purchase,
    *,
    timezone: str = DEFAULT_TIMEZONE,
    currency: str = DEFAULT_CURRENCY,
) -> NotificationEdit | None:
    """Edit instruction for the stored message, or ``None`` if none was recorded."""

    if purchase.telegram_chat_id is None or purchase.telegram_message_id is None:
        return None
    message = render_purchase_message(purchase, timezone=timezone, currency=currency)
    return NotificationEdit(
        chat_ref=purchase.telegram_chat_id,
        message_ref=purchase.telegram_message_id,
        text=message.text,
        button=message.button,
    )


__all__ = [
    "BUTTON_LABELS",
    "DEFAULT_CURRENCY",
    "DEFAULT_TIMEZONE",
    "NotificationButton",
    "NotificationEdit",
    "NotificationMessage",
    "NotificationSink",
    "NullNotificationSink",
    "build_notification_edit",
    "render_purchase_message",
]
