from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pharmstock.analytics import (
    NO_SALES_DAYS_TO_ZERO,
    AnalyticsFilter,
    ProductSnapshot,
    UrgencyLevel,
    analyse_products,
    build_purchase_recommendations,
    calculate_reorder_quantity,
    compute_product_analytics,
    explain_calculations,
    filter_records,
    generate_analytics_report,
    load_snapshots,
    low_stock_records,
    summarise,
    summarise_recommendations,
)
from pharmstock.analytics.reports import (
    REASON_CRITICAL,
    REASON_PLANNED,
    REASON_WARNING,
)


def _product(product_id: int | str, **fields: object) -> ProductSnapshot:
    return ProductSnapshot.model_validate({"id": product_id, **fields})


@pytest.fixture()
def scenario_products() -> list[ProductSnapshot]:
    return [
        _product(
            1,
            name="Ibuprofeno 400",
            stockQuantity=46,
            avgDailySales30d=2.3,
            inTransit=5,
            deliveryDays=14,
            minStock=10,
        ),
        _product(
            2,
            name="Paracetamol 500",
            stockQuantity=3,
            avgDailySales30d=0.5,
            inTransit=0,
            deliveryDays=21,
            minStock=5,
        ),
        _product(
            3,
            name="Omeprazol 20",
            stockQuantity=59,
            avgDailySales30d=1.8,
            inTransit=12,
            deliveryDays=14,
            minStock=8,
        ),
    ]


def test_well_stocked_product_needs_nothing(scenario_products: list[ProductSnapshot]) -> None:
    record = compute_product_analytics(scenario_products[0])

    assert record.days_to_zero == 20
    assert record.recommended_qty == 0
    assert record.urgency_level is UrgencyLevel.NORMAL
    assert record.needs_purchase is False
    assert record.critical_stock is False


def test_fast_moving_product_is_critical(scenario_products: list[ProductSnapshot]) -> None:
    record = compute_product_analytics(scenario_products[1])

    assert record.days_to_zero == 6
    assert record.recommended_qty == 13
    assert record.urgency_level is UrgencyLevel.CRITICAL
    assert record.needs_purchase is True
    assert record.critical_stock is True


def test_in_transit_units_cover_the_shortfall(
    scenario_products: list[ProductSnapshot],
) -> None:
    record = compute_product_analytics(scenario_products[2])

    assert record.days_to_zero == 33
    assert record.recommended_qty == 0
    assert record.urgency_level is UrgencyLevel.NORMAL


def test_product_without_sales_uses_sentinel() -> None:
    record = compute_product_analytics(
        _product("SKU-9", stockQuantity=0, avgDailySales30d=0, deliveryDays=30)
    )

    assert record.days_to_zero == NO_SALES_DAYS_TO_ZERO
    assert record.urgency_level is UrgencyLevel.NORMAL
    assert record.critical_stock is False
    # Only the safety stock is suggested.
    assert record.recommended_qty == 5


def test_missing_fields_fall_back_to_defaults() -> None:
    product = _product(
        "SKU-1",
        stockQuantity=None,
        avgDailySales30d=1,
        inTransit=None,
        deliveryDays=None,
        minStock=0,
    )
    record = compute_product_analytics(product)

    assert product.effective_delivery_days == 14
    assert product.effective_min_stock == 5
    assert record.days_to_zero == 0
    assert record.recommended_qty == 19
    assert record.critical_stock is True


def test_negative_inputs_are_treated_as_zero() -> None:
    record = compute_product_analytics(
        _product(
            "SKU-2",
            stockQuantity=-8,
            avgDailySales30d=-1.5,
            inTransit=-3,
            deliveryDays=10,
            minStock=4,
        )
    )

    assert record.days_to_zero == NO_SALES_DAYS_TO_ZERO
    assert record.recommended_qty == 4
    assert record.recommended_qty >= 0


@pytest.mark.parametrize(
    "stock, velocity, delivery_days",
    [(0, 3.0, 7), (10, 1.0, 10), (10, 1.0, None), (100, 0.2, 30), (5, 0.0, 14)],
)
def test_critical_stock_matches_effective_lead_time(
    stock: int, velocity: float, delivery_days: int | None
) -> None:
    product = _product("P", stockQuantity=stock, avgDailySales30d=velocity, deliveryDays=delivery_days)
    record = compute_product_analytics(product)

    assert record.critical_stock is (record.days_to_zero < product.effective_delivery_days)


def test_analytics_are_idempotent(scenario_products: list[ProductSnapshot]) -> None:
    first = analyse_products(scenario_products)
    second = analyse_products(scenario_products)

    assert first == second
    assert [record.id for record in first] == [1, 2, 3]


def test_reorder_quantity_rejects_negative_arguments() -> None:
    with pytest.raises(ValueError):
        calculate_reorder_quantity(
            daily_demand=-1, lead_time_days=14, safety_stock=5, stock_quantity=0
        )
    with pytest.raises(ValueError):
        calculate_reorder_quantity(
            daily_demand=1, lead_time_days=-1, safety_stock=5, stock_quantity=0
        )


def test_summary_covers_every_record(scenario_products: list[ProductSnapshot]) -> None:
    summary = summarise(analyse_products(scenario_products))

    assert summary == {
        "totalProducts": 3,
        "criticalProducts": 1,
        "needsPurchase": 1,
        "totalRecommendedQty": 13,
        "averageDaysToZero": 20,
    }
    assert summarise([])["averageDaysToZero"] == 0


def test_filters_and_day_ranges(scenario_products: list[ProductSnapshot]) -> None:
    records = analyse_products(scenario_products)

    assert [r.id for r in filter_records(records, filter=AnalyticsFilter.CRITICAL)] == [2]
    assert [r.id for r in filter_records(records, filter="needsPurchase")] == [2]
    assert [r.id for r in filter_records(records, filter="lowStock")] == [2]
    assert [r.id for r in filter_records(records, min_days=10, max_days=20)] == [1]
    assert [r.id for r in filter_records(records, min_days=20)] == [1, 3]
    assert [r.id for r in low_stock_records(records, threshold_days=21)] == [1, 2]


def test_report_summary_ignores_filter(scenario_products: list[ProductSnapshot]) -> None:
    report = generate_analytics_report(scenario_products, filter="critical")

    assert [record.id for record in report["data"]] == [2]
    assert report["summary"]["totalProducts"] == 3


def test_load_snapshots_accepts_camel_case_rows() -> None:
    snapshots = load_snapshots(
        [{"id": 7, "name": "  Loratadina ", "stockQuantity": 4, "costPrice": 1.25}]
    )

    assert snapshots[0].name == "Loratadina"
    assert snapshots[0].stock_quantity == 4
    assert snapshots[0].cost_price == pytest.approx(1.25)


def test_recommendations_are_sorted_and_explained() -> None:
    products = [
        _product("A", name="A", stockQuantity=10, avgDailySales30d=1, costPrice=2.5),
        _product("B", name="B", stockQuantity=3, avgDailySales30d=1),
        _product("C", name="C", stockQuantity=20, avgDailySales30d=2),
        _product("D", name="D", stockQuantity=0, avgDailySales30d=0, costPrice=1.0),
        _product("E", name="E", stockQuantity=46, avgDailySales30d=2.3, inTransit=5, minStock=10),
    ]
    recommendations = build_purchase_recommendations(analyse_products(products))

    assert [item.product_id for item in recommendations] == ["B", "A", "C", "D"]
    assert [item.reason for item in recommendations] == [
        REASON_CRITICAL,
        REASON_WARNING,
        REASON_WARNING,
        REASON_PLANNED,
    ]
    assert recommendations[1].estimated_cost == pytest.approx(22.5)
    assert recommendations[0].estimated_cost == 0

    assert summarise_recommendations(recommendations) == {
        "totalItems": 4,
        "totalQuantity": 43,
        "totalEstimatedCost": 27.5,
        "criticalItems": 1,
    }


def test_recommendation_serialises_with_camel_case_keys() -> None:
    recommendations = build_purchase_recommendations(
        analyse_products([_product(1, name="X", stockQuantity=0, avgDailySales30d=1)])
    )
    payload = recommendations[0].model_dump(mode="json", by_alias=True)

    assert payload["productId"] == 1
    assert payload["recommendedQty"] == 19
    assert payload["urgency"] == "critical"


def test_explain_calculations(scenario_products: list[ProductSnapshot]) -> None:
    product = scenario_products[1]
    calculations = explain_calculations(product, compute_product_analytics(product))

    assert calculations == {
        "dailySalesAvg": 0.5,
        "daysToZeroCalc": "3 ÷ 0.5 = 6 дней",
        "recommendedCalc": "(0.5 × 21 + 5) - 3 - 0 = 13",
        "safetyStockDays": 10,
        "turnoverRate": 5.0,
    }


def test_explain_calculations_with_degenerate_inputs() -> None:
    product = _product("Z", stockQuantity=0, avgDailySales30d=0)
    calculations = explain_calculations(product, compute_product_analytics(product))

    assert calculations["safetyStockDays"] is None
    assert calculations["turnoverRate"] is None
    assert calculations["daysToZeroCalc"].endswith("= 999 дней")
