"""Reglas de reposición: días hasta agotar stock, cantidad sugerida y urgencia."""
from __future__ import annotations

import math
from typing import Iterable

from .models import AnalyticsRecord, ProductSnapshot, UrgencyLevel

NO_SALES_DAYS_TO_ZERO = 999
CRITICAL_DAYS_THRESHOLD = 7


def calculate_days_to_zero(stock_quantity: float, avg_daily_sales: float) -> int:
    """Días hasta quedarse sin stock al ritmo de venta actual.

    Un producto sin ventas registradas devuelve ``999`` para quedar al final de
    cualquier orden por cercanía al quiebre.
    """

    if avg_daily_sales <= 0:
        return NO_SALES_DAYS_TO_ZERO
    return math.ceil(max(stock_quantity, 0) / avg_daily_sales)


def calculate_reorder_quantity(
    *,
    daily_demand: float,
    lead_time_days: int,
    safety_stock: int,
    stock_quantity: int,
    in_transit: int = 0,
) -> int:
    """Calcula las unidades a pedir para cubrir el tiempo de entrega.

    La necesidad es la demanda esperada durante la entrega más el stock de
    seguridad, descontando lo disponible y lo que ya viene en camino.
    """

    if daily_demand < 0:
        raise ValueError("La demanda diaria no puede ser negativa")
    if lead_time_days < 0:
        raise ValueError("El tiempo de entrega no puede ser negativo")
    if safety_stock < 0:
        raise ValueError("El stock de seguridad no puede ser negativo")

    delivery_need = math.ceil(daily_demand * lead_time_days)
    total_need = delivery_need + safety_stock
    return max(0, total_need - stock_quantity - in_transit)


def classify_urgency(days_to_zero: int, critical_level: int) -> UrgencyLevel:
    """Clasifica la urgencia con un piso fijo de 7 días y otro relativo a la entrega."""

    if days_to_zero <= CRITICAL_DAYS_THRESHOLD:
        return UrgencyLevel.CRITICAL
    if days_to_zero <= critical_level:
        return UrgencyLevel.WARNING
    return UrgencyLevel.NORMAL


def compute_product_analytics(product: ProductSnapshot) -> AnalyticsRecord:
    """Genera el registro analítico de reposición para un producto."""

    stock = max(product.stock_quantity, 0)
    in_transit = max(product.in_transit, 0)
    velocity = max(product.avg_daily_sales_30d, 0.0)
    critical_level = product.effective_delivery_days

    days_to_zero = calculate_days_to_zero(stock, velocity)
    recommended_qty = calculate_reorder_quantity(
        daily_demand=velocity,
        lead_time_days=critical_level,
        safety_stock=product.effective_min_stock,
        stock_quantity=stock,
        in_transit=in_transit,
    )

    return AnalyticsRecord(
        **product.model_dump(),
        days_to_zero=days_to_zero,
        recommended_qty=recommended_qty,
        urgency_level=classify_urgency(days_to_zero, critical_level),
        needs_purchase=recommended_qty > 0,
        critical_stock=days_to_zero < critical_level,
    )


def analyse_products(products: Iterable[ProductSnapshot]) -> list[AnalyticsRecord]:
    """Aplica el motor a cada producto respetando el orden de entrada."""

    return [compute_product_analytics(product) for product in products]


__all__ = [
    "CRITICAL_DAYS_THRESHOLD",
    "NO_SALES_DAYS_TO_ZERO",
    "analyse_products",
    "calculate_days_to_zero",
    "calculate_reorder_quantity",
    "classify_urgency",
    "compute_product_analytics",
]
