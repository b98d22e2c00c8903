"""Codec for inline-button callback payloads of the form ``<verb>_<purchaseId>``.

The verb is everything before the first underscore; the purchase id is every
remaining segment joined back with ``_`` because ids contain underscores
themselves (``purchase_1718000000000``).
"""
from __future__ import annotations

from .errors import UNKNOWN_ACTION, PurchaseActionRejected
from .models import PurchaseEvent, parse_event

SEPARATOR = "_"

# Verbs already embedded in chat messages; they cannot contain the separator.
CALLBACK_VERBS: dict[PurchaseEvent, str] = {
    PurchaseEvent.ACCEPT: "accept",
    PurchaseEvent.READY: "ready",
    PurchaseEvent.REQUEST_PAYMENT: "payment",
    PurchaseEvent.CONFIRM_PAID: "paid",
    PurchaseEvent.CANCEL: "cancel",
}


def encode_callback_data(event: PurchaseEvent, purchase_id: str) -> str:
    return f"{CALLBACK_VERBS[event]}{SEPARATOR}{purchase_id}"


def decode_callback_data(data: str | None) -> tuple[PurchaseEvent, str]:
    """Split a callback payload into ``(event, purchase_id)``.

    Raises :class:`PurchaseActionRejected` when either part is empty or the
    verb is not recognised.
    """

    verb, _, purchase_id = (data or "").strip().partition(SEPARATOR)
    if not verb or not purchase_id:
        raise PurchaseActionRejected(
            UNKNOWN_ACTION, purchase_id=purchase_id or None, event=verb or None
        )
    try:
        event = parse_event(verb)
    except ValueError as exc:
        raise PurchaseActionRejected(
            UNKNOWN_ACTION, purchase_id=purchase_id, event=verb
        ) from exc
    return event, purchase_id


__all__ = ["CALLBACK_VERBS", "decode_callback_data", "encode_callback_data"]
