"""Tabla de transiciones del ciclo de vida de una compra.

Los estados avanzan en una única cadena lineal::

    pending -> accepted -> ready -> awaiting_payment -> in_transit

``cancel`` lleva a ``cancelled`` desde cualquier estado no terminal. No hay
transiciones hacia atrás ni saltos.
"""
from __future__ import annotations

from dataclasses import dataclass

from .errors import UNKNOWN_ACTION, PurchaseActionRejected
from .models import PurchaseEvent, PurchaseStatus


@dataclass(frozen=True)
class Transition:
    source: PurchaseStatus
    event: PurchaseEvent
    target: PurchaseStatus


_CHAIN: tuple[tuple[PurchaseStatus, PurchaseEvent, PurchaseStatus], ...] = (
    (PurchaseStatus.PENDING, PurchaseEvent.ACCEPT, PurchaseStatus.ACCEPTED),
    (PurchaseStatus.ACCEPTED, PurchaseEvent.READY, PurchaseStatus.READY),
    (PurchaseStatus.READY, PurchaseEvent.REQUEST_PAYMENT, PurchaseStatus.AWAITING_PAYMENT),
    (PurchaseStatus.AWAITING_PAYMENT, PurchaseEvent.CONFIRM_PAID, PurchaseStatus.IN_TRANSIT),
)


def _build_transitions() -> dict[tuple[PurchaseStatus, PurchaseEvent], Transition]:
    table = {
        (source, event): Transition(source, event, target)
        for source, event, target in _CHAIN
    }
    for status in PurchaseStatus:
        if not status.is_terminal:
            table[(status, PurchaseEvent.CANCEL)] = Transition(
                status, PurchaseEvent.CANCEL, PurchaseStatus.CANCELLED
            )
    return table


TRANSITIONS = _build_transitions()
_FORWARD_EVENTS = {source: event for source, event, _ in _CHAIN}


def resolve_transition(status: PurchaseStatus, event: PurchaseEvent) -> Transition:
    """Devuelve la transición válida o rechaza el evento sin efectos."""

    transition = TRANSITIONS.get((status, event))
    if transition is None:
        raise PurchaseActionRejected(UNKNOWN_ACTION, event=event.value)
    return transition


def allowed_events(status: PurchaseStatus) -> tuple[PurchaseEvent, ...]:
    return tuple(event for (source, event) in TRANSITIONS if source is status)


def next_action(status: PurchaseStatus) -> PurchaseEvent | None:
    """Evento que ofrece el botón de la notificación para el estado dado."""

    return _FORWARD_EVENTS.get(status)


def event_leading_to(status: PurchaseStatus, target: PurchaseStatus) -> PurchaseEvent:
    """Evento que lleva de ``status`` a ``target`` en un solo paso."""

    for (source, event), transition in TRANSITIONS.items():
        if source is status and transition.target is target:
            return event
    raise PurchaseActionRejected(UNKNOWN_ACTION, event=target.value)


__all__ = [
    "TRANSITIONS",
    "Transition",
    "allowed_events",
    "event_leading_to",
    "next_action",
    "resolve_transition",
]
