"""Modelos de datos utilizados por el motor de reposición."""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DELIVERY_DAYS = 14
DEFAULT_MIN_STOCK = 5


class UrgencyLevel(str, Enum):
    """Clasificación de qué tan pronto se proyecta un quiebre de stock."""

    CRITICAL = "critical"
    WARNING = "warning"
    NORMAL = "normal"


class ProductSnapshot(BaseModel):
    """Foto del inventario de un producto tal como la entrega el catálogo."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int | str = Field(..., description="Identificador único del producto")
    name: str | None = Field(None, description="Nombre comercial del producto")
    stock_quantity: int = Field(
        0, alias="stockQuantity", description="Unidades disponibles en bodega"
    )
    avg_daily_sales_30d: float = Field(
        0.0,
        alias="avgDailySales30d",
        description="Promedio de ventas diarias de los últimos 30 días",
    )
    in_transit: int = Field(
        0, alias="inTransit", description="Unidades pedidas que aún no llegan"
    )
    delivery_days: int | None = Field(
        None, alias="deliveryDays", description="Tiempo de entrega del proveedor en días"
    )
    min_stock: int | None = Field(
        None, alias="minStock", description="Stock de seguridad mínimo"
    )
    cost_price: float | None = Field(None, alias="costPrice", description="Costo unitario")
    price: float | None = Field(None, description="Precio de venta unitario")

    @field_validator("stock_quantity", "in_transit", "avg_daily_sales_30d", mode="before")
    @classmethod
    def _none_as_zero(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("name", mode="before")
    @classmethod
    def _strip_optional(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return str(value).strip() or None

    @property
    def effective_delivery_days(self) -> int:
        """Tiempo de entrega a usar en los cálculos (14 días si no está definido)."""

        if not self.delivery_days or self.delivery_days <= 0:
            return DEFAULT_DELIVERY_DAYS
        return self.delivery_days

    @property
    def effective_min_stock(self) -> int:
        """Stock de seguridad a usar en los cálculos (5 unidades si no está definido)."""

        if not self.min_stock or self.min_stock <= 0:
            return DEFAULT_MIN_STOCK
        return self.min_stock


class AnalyticsRecord(ProductSnapshot):
    """Resultado del análisis de reposición de un producto.

    Se genera en cada consulta a partir de la foto del producto y nunca se
    persiste ni se modifica.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    days_to_zero: int = Field(..., alias="daysToZero")
    recommended_qty: int = Field(..., ge=0, alias="recommendedQty")
    urgency_level: UrgencyLevel = Field(..., alias="urgencyLevel")
    needs_purchase: bool = Field(..., alias="needsPurchase")
    critical_stock: bool = Field(..., alias="criticalStock")


class PurchaseRecommendation(BaseModel):
    """Sugerencia de compra para un producto con faltante."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    product_id: int | str = Field(..., alias="productId")
    product_name: str | None = Field(None, alias="productName")
    current_stock: int = Field(..., alias="currentStock")
    in_transit: int = Field(..., alias="inTransit")
    recommended_qty: int = Field(..., alias="recommendedQty")
    estimated_cost: float = Field(..., alias="estimatedCost")
    urgency: UrgencyLevel
    days_to_zero: int = Field(..., alias="daysToZero")
    reason: str


__all__ = [
    "AnalyticsRecord",
    "DEFAULT_DELIVERY_DAYS",
    "DEFAULT_MIN_STOCK",
    "ProductSnapshot",
    "PurchaseRecommendation",
    "UrgencyLevel",
]
