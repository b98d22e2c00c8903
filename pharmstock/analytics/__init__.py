"""Motor de analítica de reposición de inventario."""
from __future__ import annotations

from typing import Any, Iterable, Mapping

from .models import (
    AnalyticsRecord,
    ProductSnapshot,
    PurchaseRecommendation,
    UrgencyLevel,
)
from .replenishment import (
    NO_SALES_DAYS_TO_ZERO,
    analyse_products,
    calculate_days_to_zero,
    calculate_reorder_quantity,
    classify_urgency,
    compute_product_analytics,
)
from .reports import (
    AnalyticsFilter,
    build_purchase_recommendations,
    explain_calculations,
    filter_records,
    low_stock_records,
    summarise,
    summarise_recommendations,
)

__all__ = [
    "AnalyticsFilter",
    "AnalyticsRecord",
    "NO_SALES_DAYS_TO_ZERO",
    "ProductSnapshot",
    "PurchaseRecommendation",
    "UrgencyLevel",
    "analyse_products",
    "build_purchase_recommendations",
    "calculate_days_to_zero",
    "calculate_reorder_quantity",
    "classify_urgency",
    "compute_product_analytics",
    "explain_calculations",
    "filter_records",
    "generate_analytics_report",
    "load_snapshots",
    "low_stock_records",
    "summarise",
    "summarise_recommendations",
]


def load_snapshots(rows: Iterable[Mapping[str, Any]]) -> list[ProductSnapshot]:
    """Convierte filas crudas del catálogo en fotos de producto validadas."""

    return [ProductSnapshot.model_validate(row) for row in rows]


def generate_analytics_report(
    products: Iterable[ProductSnapshot],
    *,
    filter: AnalyticsFilter | str | None = None,
    min_days: int | None = None,
    max_days: int | None = None,
) -> dict[str, Any]:
    """Analiza todos los productos y devuelve los registros filtrados con su resumen.

    El resumen siempre se calcula sobre el conjunto completo, no sobre el
    resultado del filtro.
    """

    records = analyse_products(products)
    return {
        "data": filter_records(
            records, filter=filter, min_days=min_days, max_days=max_days
        ),
        "summary": summarise(records),
    }
