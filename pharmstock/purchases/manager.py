"""Ciclo de vida de compras: creación, transiciones de estado y notificaciones.

Las notificaciones se despachan en segundo plano: ni la creación ni las
transiciones esperan al canal de mensajería, y sus fallos solo se registran en
el log.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from .callbacks import decode_callback_data
from .errors import (
    NOT_FOUND,
    UNKNOWN_ACTION,
    PurchaseActionRejected,
    PurchaseValidationError,
)
from .models import (
    PURCHASE_ID_PREFIX,
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
    DEFAULT_CURRENCY,
    DEFAULT_TIMEZONE,
    NotificationSink,
    build_notification_edit,
    render_purchase_message,
)
from .state_machine import event_leading_to, resolve_transition
from .store import PurchasePage, PurchaseStore

logger = logging.getLogger(__name__)

Dispatcher = Callable[..., Any]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


class PurchaseLifecycleManager:
    """Gestiona las compras y la máquina de estados que las hace avanzar."""

    def __init__(
        self,
        store: PurchaseStore,
        sink: NotificationSink,
        *,
        dispatch: Dispatcher | None = None,
        timezone: str = DEFAULT_TIMEZONE,
        currency: str = DEFAULT_CURRENCY,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._sink = sink
        self._executor: ThreadPoolExecutor | None = None
        if dispatch is None:
            self._executor = ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="purchase-notify"
            )
            dispatch = self._executor.submit
        self._dispatch = dispatch
        self._timezone = timezone
        self._currency = currency
        self._clock = clock or _utcnow
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._id_guard = threading.Lock()
        self._last_id_ms = 0

    # -- consultas ------------------------------------------------------------

    def get_purchase(self, purchase_id: str) -> Purchase:
        purchase = self._store.get(purchase_id)
        if purchase is None:
            raise PurchaseActionRejected(NOT_FOUND, purchase_id=purchase_id)
        return purchase

    def list_purchases(
        self, *, is_urgent: bool | None = None, page: int = 1, limit: int = 10
    ) -> PurchasePage:
        return self._store.list(is_urgent=is_urgent, page=page, limit=limit)

    # -- creación -------------------------------------------------------------

    def create_purchase(
        self,
        items: Iterable[PurchaseItem | Mapping[str, Any]] | None,
        is_urgent: bool | None = False,
    ) -> Purchase:
        """Valida y registra una compra nueva en estado ``pending``.

        ``total_cost`` es la suma de los totales de línea enviados por el
        cliente, sin recalcularlos. La notificación se envía en segundo plano.
        """

        if items is None or isinstance(items, (str, bytes, Mapping)):
            raise PurchaseValidationError(
                "Требуется массив items с хотя бы одним товаром"
            )
        try:
            request = PurchaseCreate.model_validate(
                {"is_urgent": is_urgent, "items": list(items)}
            )
        except ValidationError as exc:
            raise PurchaseValidationError(
                "Некорректные данные закупки",
                errors=exc.errors(include_url=False, include_context=False),
            ) from exc

        now = self._clock()
        purchase = Purchase(
            id=self._next_id(now),
            created_at=now,
            updated_at=now,
            is_urgent=request.is_urgent,
            items=request.items,
            total_cost=sum(item.total for item in request.items),
            status=PurchaseStatus.PENDING,
        )
        self._store.add(purchase)
        logger.info(
            "Compra %s creada: total %s, %s items, urgente=%s",
            purchase.id,
            purchase.total_cost,
            len(purchase.items),
            purchase.is_urgent,
        )
        self._schedule(self._announce, purchase.id)
        return purchase

    def _next_id(self, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        with self._id_guard:
            if millis <= self._last_id_ms:
                millis = self._last_id_ms + 1
            self._last_id_ms = millis
        return f"{PURCHASE_ID_PREFIX}{millis}"

    # -- transiciones ---------------------------------------------------------

    def apply_status_event(self, purchase_id: str, event: PurchaseEvent | str) -> Purchase:
        """Aplica un evento a la compra o lo rechaza sin modificar nada."""

        return self._transition(purchase_id, event)

    def advance_to(self, purchase_id: str, status: PurchaseStatus | str) -> Purchase:
        """Lleva la compra al estado indicado si está a un solo paso del actual."""

        try:
            target = parse_status(status)
        except ValueError as exc:
            raise PurchaseActionRejected(
                UNKNOWN_ACTION, purchase_id=purchase_id, event=str(status)
            ) from exc
        current = self.get_purchase(purchase_id)
        event = event_leading_to(current.status, target)
        return self._transition(purchase_id, event, expected_status=current.status)

    def handle_callback(
        self,
        callback_id: str,
        data: str | None,
        *,
        chat_ref: str | None = None,
        message_ref: int | None = None,
    ) -> Purchase | None:
        """Procesa la pulsación de un botón de la notificación.

        Nunca lanza excepciones de dominio: los rechazos se responden al
        usuario y se devuelve ``None``.
        """

        reference = None
        if chat_ref is not None and message_ref is not None:
            reference = (str(chat_ref), int(message_ref))
        try:
            event, purchase_id = decode_callback_data(data)
            purchase = self._transition(purchase_id, event, reference=reference)
        except PurchaseActionRejected as exc:
            logger.info("Callback %s rechazado: %s (%s)", callback_id, data, exc.reason)
            self._schedule(self._sink.answer_callback, callback_id, exc.user_message)
            return None

        self._schedule(
            self._sink.answer_callback,
            callback_id,
            f"Статус обновлен: {status_label(purchase.status)}",
        )
        return purchase

    def _lock_for(self, purchase_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(purchase_id)
            if lock is None:
                lock = self._locks[purchase_id] = threading.Lock()
            return lock

    def _transition(
        self,
        purchase_id: str,
        event: PurchaseEvent | str,
        *,
        reference: tuple[str, int] | None = None,
        expected_status: PurchaseStatus | None = None,
    ) -> Purchase:
        try:
            parsed = parse_event(event)
        except ValueError as exc:
            raise PurchaseActionRejected(
                UNKNOWN_ACTION, purchase_id=purchase_id, event=str(event)
            ) from exc

        # Only ids already in the store get a lock entry.
        if self._store.get(purchase_id) is None:
            raise PurchaseActionRejected(
                NOT_FOUND, purchase_id=purchase_id, event=parsed.value
            )
        with self._lock_for(purchase_id):
            purchase = self._store.get(purchase_id)
            if purchase is None:
                raise PurchaseActionRejected(
                    NOT_FOUND, purchase_id=purchase_id, event=parsed.value
                )
            if expected_status is not None and purchase.status is not expected_status:
                raise PurchaseActionRejected(
                    UNKNOWN_ACTION, purchase_id=purchase_id, event=parsed.value
                )
            try:
                transition = resolve_transition(purchase.status, parsed)
            except PurchaseActionRejected as exc:
                exc.purchase_id = purchase_id
                raise

            update: dict[str, Any] = {
                "status": transition.target,
                "updated_at": self._clock(),
                "version": purchase.version + 1,
            }
            if reference is not None and purchase.telegram_message_id is None:
                update["telegram_chat_id"], update["telegram_message_id"] = reference
            updated = purchase.model_copy(update=update)
            self._store.save(updated, expected_version=purchase.version)

        logger.info(
            "Compra %s: %s -> %s (%s)",
            purchase_id,
            transition.source.value,
            transition.target.value,
            parsed.value,
        )
        if updated.telegram_message_id is not None:
            self._schedule(self._publish_edit, purchase_id)
        return updated

    # -- notificaciones -------------------------------------------------------

    def _schedule(self, func: Callable[..., Any], *args: Any) -> None:
        try:
            self._dispatch(self._run_safely, func, *args)
        except Exception:  # pragma: no cover - runtime safeguard
            logger.exception(
                "No se pudo programar la notificación %s", getattr(func, "__name__", func)
            )

    @staticmethod
    def _run_safely(func: Callable[..., Any], *args: Any) -> None:
        try:
            func(*args)
        except Exception:
            logger.exception(
                "Falló la notificación %s%r", getattr(func, "__name__", func), args
            )

    def _announce(self, purchase_id: str) -> None:
        purchase = self._store.get(purchase_id)
        if purchase is None:
            return
        message = render_purchase_message(
            purchase, timezone=self._timezone, currency=self._currency
        )
        reference = self._sink.send(message)
        if reference is None:
            return
        chat_ref, message_ref = reference

        with self._lock_for(purchase_id):
            current = self._store.get(purchase_id)
            if current is None or current.telegram_message_id is not None:
                return
            self._store.save(
                current.model_copy(
                    update={
                        "telegram_chat_id": str(chat_ref),
                        "telegram_message_id": int(message_ref),
                        "version": current.version + 1,
                    }
                ),
                expected_version=current.version,
            )
        logger.info(
            "Notificación de la compra %s enviada (mensaje %s)", purchase_id, message_ref
        )
        if current.status is not purchase.status:
            # El estado cambió mientras se enviaba el mensaje original.
            self._publish_edit(purchase_id)

    def _publish_edit(self, purchase_id: str) -> None:
        purchase = self._store.get(purchase_id)
        if purchase is None:
            return
        edit = build_notification_edit(
            purchase, timezone=self._timezone, currency=self._currency
        )
        if edit is None:
            return
        self._sink.edit(edit)
        logger.debug("Mensaje %s actualizado a %s", edit.message_ref, purchase.status.value)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


__all__ = ["PurchaseLifecycleManager"]
