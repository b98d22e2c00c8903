"""Gestión del ciclo de vida de las compras a proveedores."""
from __future__ import annotations

from .callbacks import decode_callback_data, encode_callback_data
from .errors import PurchaseActionRejected, PurchaseError, PurchaseValidationError
from .manager import PurchaseLifecycleManager
from .models import (
    Purchase,
    PurchaseCreate,
    PurchaseEvent,
    PurchaseItem,
    PurchaseStatus,
    parse_event,
    parse_status,
    status_label,
)
from .notifications import (
    NotificationButton,
    NotificationEdit,
    NotificationMessage,
    NotificationSink,
    NullNotificationSink,
    build_notification_edit,
    render_purchase_message,
)
from .state_machine import allowed_events, next_action, resolve_transition
from .store import InMemoryPurchaseStore, PurchasePage, PurchaseStore, SQLitePurchaseStore

__all__ = [
    "InMemoryPurchaseStore",
    "NotificationButton",
    "NotificationEdit",
    "NotificationMessage",
    "NotificationSink",
    "NullNotificationSink",
    "Purchase",
    "PurchaseActionRejected",
    "PurchaseCreate",
    "PurchaseError",
    "PurchaseEvent",
    "PurchaseItem",
    "PurchaseLifecycleManager",
    "PurchasePage",
    "PurchaseStatus",
    "PurchaseStore",
    "PurchaseValidationError",
    "SQLitePurchaseStore",
    "allowed_events",
    "build_notification_edit",
    "decode_callback_data",
    "encode_callback_data",
    "next_action",
    "parse_event",
    "parse_status",
    "render_purchase_message",
    "resolve_transition",
    "status_label",
]
