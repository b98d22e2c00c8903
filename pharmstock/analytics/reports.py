"""Resúmenes, filtros y recomendaciones de compra sobre los registros analíticos."""
from __future__ import annotations

import math
from enum import Enum
from typing import Any, Sequence

from .models import (
    AnalyticsRecord,
    ProductSnapshot,
    PurchaseRecommendation,
    UrgencyLevel,
)

LOW_STOCK_THRESHOLD_DAYS = 14
CRITICAL_REASON_DAYS = 7
WARNING_REASON_DAYS = 14

REASON_CRITICAL = "Критически низкий остаток"
REASON_WARNING = "Предупреждение о низком остатке"
REASON_PLANNED = "Плановая закупка"


class AnalyticsFilter(str, Enum):
    CRITICAL = "critical"
    NEEDS_PURCHASE = "needsPurchase"
    LOW_STOCK = "lowStock"


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def summarise(records: Sequence[AnalyticsRecord]) -> dict[str, int]:
    """Resume el conjunto completo de registros.

    El promedio de días hasta quiebre incluye el centinela ``999`` de los
    productos sin ventas, por lo que tiende a inflarse.
    """

    total = len(records)
    average = (
        int(_round_half_up(sum(r.days_to_zero for r in records) / total)) if total else 0
    )
    return {
        "totalProducts": total,
        "criticalProducts": sum(1 for r in records if r.critical_stock),
        "needsPurchase": sum(1 for r in records if r.needs_purchase),
        "totalRecommendedQty": sum(r.recommended_qty for r in records),
        "averageDaysToZero": average,
    }


def filter_records(
    records: Sequence[AnalyticsRecord],
    *,
    filter: AnalyticsFilter | str | None = None,
    min_days: int | None = None,
    max_days: int | None = None,
) -> list[AnalyticsRecord]:
    """Aplica el filtro nombrado y luego el rango inclusivo de días hasta quiebre."""

    selected = list(records)
    if filter is not None:
        kind = AnalyticsFilter(filter)
        if kind is AnalyticsFilter.CRITICAL:
            selected = [r for r in selected if r.critical_stock]
        elif kind is AnalyticsFilter.NEEDS_PURCHASE:
            selected = [r for r in selected if r.needs_purchase]
        elif kind is AnalyticsFilter.LOW_STOCK:
            selected = [r for r in selected if r.days_to_zero < LOW_STOCK_THRESHOLD_DAYS]

    if min_days is not None:
        selected = [r for r in selected if r.days_to_zero >= min_days]
    if max_days is not None:
        selected = [r for r in selected if r.days_to_zero <= max_days]
    return selected


def low_stock_records(
    records: Sequence[AnalyticsRecord], threshold_days: int = LOW_STOCK_THRESHOLD_DAYS
) -> list[AnalyticsRecord]:
    return [r for r in records if r.days_to_zero < threshold_days]


def _recommendation_reason(days_to_zero: int) -> str:
    if days_to_zero < CRITICAL_REASON_DAYS:
        return REASON_CRITICAL
    if days_to_zero < WARNING_REASON_DAYS:
        return REASON_WARNING
    return REASON_PLANNED


def build_purchase_recommendations(
    records: Sequence[AnalyticsRecord],
) -> list[PurchaseRecommendation]:
    """Lista de compras sugeridas, primero lo que se agota antes."""

    recommendations = [
        PurchaseRecommendation(
            product_id=record.id,
            product_name=record.name,
            current_stock=record.stock_quantity,
            in_transit=record.in_transit,
            recommended_qty=record.recommended_qty,
            estimated_cost=record.recommended_qty * (record.cost_price or 0.0),
            urgency=record.urgency_level,
            days_to_zero=record.days_to_zero,
            reason=_recommendation_reason(record.days_to_zero),
        )
        for record in records
        if record.recommended_qty > 0
    ]
    # sorted() es estable: los empates conservan el orden de entrada.
    return sorted(recommendations, key=lambda item: item.days_to_zero)


def summarise_recommendations(
    recommendations: Sequence[PurchaseRecommendation],
) -> dict[str, Any]:
    total_cost = sum(item.estimated_cost for item in recommendations)
    return {
        "totalItems": len(recommendations),
        "totalQuantity": sum(item.recommended_qty for item in recommendations),
        "totalEstimatedCost": _round_half_up(total_cost, 2),
        "criticalItems": sum(
            1 for item in recommendations if item.urgency is UrgencyLevel.CRITICAL
        ),
    }


def _format_number(value: float | int | None) -> str:
    if value is None:
        return "?"
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:g}"


def explain_calculations(
    product: ProductSnapshot, record: AnalyticsRecord
) -> dict[str, Any]:
    """Fórmulas legibles del detalle de producto.

    Son solo informativas; los campos numéricos del registro son los que valen.
    """

    velocity = product.avg_daily_sales_30d
    stock = product.stock_quantity
    safety_stock_days = (
        math.ceil(product.effective_min_stock / velocity) if velocity > 0 else None
    )
    turnover_rate = (
        _round_half_up(velocity * 30 / stock, 2) if stock > 0 else None
    )
    return {
        "dailySalesAvg": velocity,
        "daysToZeroCalc": (
            f"{_format_number(stock)} ÷ {_format_number(velocity)} = "
            f"{record.days_to_zero} дней"
        ),
        "recommendedCalc": (
            f"({_format_number(velocity)} × {product.effective_delivery_days} + "
            f"{product.effective_min_stock}) - {_format_number(stock)} - "
            f"{_format_number(product.in_transit)} = {record.recommended_qty}"
        ),
        "safetyStockDays": safety_stock_days,
        "turnoverRate": turnover_rate,
    }


__all__ = [
    "AnalyticsFilter",
    "LOW_STOCK_THRESHOLD_DAYS",
    "build_purchase_recommendations",
    "explain_calculations",
    "filter_records",
    "low_stock_records",
    "summarise",
    "summarise_recommendations",
]
