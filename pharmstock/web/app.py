"""FastAPI application exposing replenishment analytics and purchase tracking."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from io import BytesIO
from typing import Any, Literal

from dotenv import load_dotenv
from fastapi import BackgroundTasks, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic_settings import BaseSettings, SettingsConfigDict

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..analytics import (
    AnalyticsFilter,
    PurchaseRecommendation,
    analyse_products,
    build_purchase_recommendations,
    compute_product_analytics,
    explain_calculations,
    generate_analytics_report,
    load_snapshots,
    low_stock_records,
    summarise_recommendations,
)
from ..ingestion.import_products import import_products
from ..logging_config import configure_logging
from ..persistence import InventoryRepository
from ..purchases import (
    InMemoryPurchaseStore,
    NotificationSink,
    NullNotificationSink,
    PurchaseActionRejected,
    PurchaseLifecycleManager,
    PurchaseStore,
    PurchaseValidationError,
    SQLitePurchaseStore,
)
from ..telegram_client import TelegramClient, TelegramNotificationSink

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_LOW_STOCK_DAYS = 14


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    inventory_db_path: str = "data/pharmstock.db"
    import_batch_size: int = 100
    purchase_store: Literal["memory", "sqlite"] = "memory"
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    telegram_api_base_url: str = TelegramClient.DEFAULT_BASE_URL
    telegram_timeout: float = 10.0
    notification_timezone: str = "Europe/Moscow"
    currency_symbol: str = "₺"
    log_level: str = "INFO"
    log_file: str | None = None

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)


app = FastAPI(
    title="Pharmstock",
    description="Аналитика пополнения склада и отслеживание закупок.",
    version="0.1.0",
)


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_repository() -> InventoryRepository:
    """Initialise (and cache) the repository according to the configured DB path."""

    settings = get_settings()
    return InventoryRepository(settings.inventory_db_path)


def build_notification_sink(settings: Settings) -> NotificationSink:
    """Telegram sink when credentials are configured, a logging no-op otherwise."""

    if not settings.telegram_enabled:
        logger.warning("Telegram no configurado: las notificaciones solo se registran")
        return NullNotificationSink()
    client = TelegramClient(
        bot_token=settings.telegram_bot_token or "",
        base_url=settings.telegram_api_base_url,
        timeout=settings.telegram_timeout,
    )
    return TelegramNotificationSink(client, settings.telegram_chat_id or "")


def build_purchase_store(settings: Settings) -> PurchaseStore:
    if settings.purchase_store == "sqlite":
        return SQLitePurchaseStore(get_repository())
    return InMemoryPurchaseStore()


@lru_cache(maxsize=1)
def get_manager() -> PurchaseLifecycleManager:
    """Process-wide lifecycle manager; owns the purchase store and the sink."""

    settings = get_settings()
    return PurchaseLifecycleManager(
        build_purchase_store(settings),
        build_notification_sink(settings),
        timezone=settings.notification_timezone,
        currency=settings.currency_symbol,
    )


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump(models: list[Any]) -> list[dict[str, Any]]:
    return [model.model_dump(mode="json", by_alias=True) for model in models]


@app.exception_handler(PurchaseValidationError)
async def purchase_validation_handler(
    request: Request, exc: PurchaseValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": exc.detail, "details": exc.errors},
    )


@app.exception_handler(PurchaseActionRejected)
async def purchase_rejected_handler(
    request: Request, exc: PurchaseActionRejected
) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"success": False, "error": exc.user_message, "reason": exc.reason},
    )


@app.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "status": "OK",
        "timestamp": _timestamp(),
        "telegramConfigured": settings.telegram_enabled,
    }


@app.post("/api/products/import", status_code=202)
def api_import_products(
    background: BackgroundTasks,
    rows: list[dict[str, Any]] = Body(...),
    repo: InventoryRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Persist a batch of product snapshots in the background."""

    def _run_import() -> None:
        try:
            import_products(repo, rows, batch_size=settings.import_batch_size)
        except Exception:  # pragma: no cover - runtime safeguard
            logger.exception("Falló la importación de productos")

    background.add_task(_run_import)
    return {
        "detail": "Importación en curso",
        "received": len(rows),
        "batch_size": settings.import_batch_size,
    }


# -- analytics ---------------------------------------------------------------


@app.get("/api/analytics/products")
def api_product_analytics(
    filter: AnalyticsFilter | None = Query(default=None),
    min_days: int | None = Query(default=None, alias="minDays"),
    max_days: int | None = Query(default=None, alias="maxDays"),
    repo: InventoryRepository = Depends(get_repository),
) -> dict[str, Any]:
    """Replenishment records for every product, optionally filtered."""

    report = generate_analytics_report(
        load_snapshots(repo.list_products()),
        filter=filter,
        min_days=min_days,
        max_days=max_days,
    )
    return {
        "success": True,
        "data": _dump(report["data"]),
        "summary": report["summary"],
        "timestamp": _timestamp(),
    }


@app.get("/api/analytics/products/low-stock")
def api_low_stock(
    days: int = Query(default=DEFAULT_LOW_STOCK_DAYS, ge=1, le=999),
    repo: InventoryRepository = Depends(get_repository),
) -> dict[str, Any]:
    records = low_stock_records(
        analyse_products(load_snapshots(repo.list_products())), threshold_days=days
    )
    return {
        "success": True,
        "data": _dump(records),
        "threshold": days,
        "count": len(records),
        "timestamp": _timestamp(),
    }


@app.get("/api/analytics/products/{product_id}")
def api_product_detail(
    product_id: str,
    repo: InventoryRepository = Depends(get_repository),
) -> dict[str, Any]:
    row = repo.get_product(product_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Товар не найден")

    snapshot = load_snapshots([row])[0]
    record = compute_product_analytics(snapshot)
    return {
        "success": True,
        "data": {
            **record.model_dump(mode="json", by_alias=True),
            "calculations": explain_calculations(snapshot, record),
        },
        "timestamp": _timestamp(),
    }


def _recommendations(repo: InventoryRepository) -> list[PurchaseRecommendation]:
    return build_purchase_recommendations(
        analyse_products(load_snapshots(repo.list_products()))
    )


@app.get("/api/analytics/purchase-recommendations")
def api_purchase_recommendations(
    repo: InventoryRepository = Depends(get_repository),
) -> dict[str, Any]:
    recommendations = _recommendations(repo)
    return {
        "success": True,
        "data": _dump(recommendations),
        "summary": summarise_recommendations(recommendations),
        "timestamp": _timestamp(),
    }


def _build_pdf_table(data: list[list[str]], *, header: bool = True) -> Table:
    table = Table(data, hAlign="LEFT")
    style = [
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#d7deea")),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
    ]
    if header and data:
        style.extend(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#0b7285")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ]
        )
    table.setStyle(TableStyle(style))
    return table


def _build_recommendations_pdf(
    recommendations: list[PurchaseRecommendation], summary: dict[str, Any]
) -> BytesIO:
    buffer = BytesIO()
    document = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=40,
        rightMargin=40,
        topMargin=60,
        bottomMargin=36,
    )
    styles = getSampleStyleSheet()
    story: list[Any] = [
        Paragraph("Purchase recommendations", styles["Title"]),
        Paragraph(f"Generated: {_timestamp()}", styles["BodyText"]),
        Spacer(1, 12),
        _build_pdf_table(
            [
                ["Metric", "Value"],
                ["Products to reorder", str(summary["totalItems"])],
                ["Total units", str(summary["totalQuantity"])],
                ["Estimated cost", f"{summary['totalEstimatedCost']:,.2f}"],
                ["Critical items", str(summary["criticalItems"])],
            ]
        ),
        Spacer(1, 18),
    ]

    rows = [["Product", "Stock", "In transit", "Qty", "Est. cost", "Days to zero", "Urgency"]]
    for item in recommendations:
        rows.append(
            [
                item.product_name or str(item.product_id),
                str(item.current_stock),
                str(item.in_transit),
                str(item.recommended_qty),
                f"{item.estimated_cost:,.2f}",
                str(item.days_to_zero),
                item.urgency.value,
            ]
        )
    if len(rows) > 1:
        story.append(Paragraph("Detail", styles["Heading2"]))
        story.append(_build_pdf_table(rows))

    document.build(story)
    buffer.seek(0)
    return buffer


@app.get("/api/analytics/purchase-recommendations.pdf")
def api_purchase_recommendations_pdf(
    repo: InventoryRepository = Depends(get_repository),
) -> StreamingResponse:
    recommendations = _recommendations(repo)
    pdf_buffer = _build_recommendations_pdf(
        recommendations, summarise_recommendations(recommendations)
    )
    filename = f"purchase-recommendations-{datetime.now(timezone.utc):%Y%m%d}.pdf"
    return StreamingResponse(
        pdf_buffer,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# -- purchases ---------------------------------------------------------------


@app.post("/api/purchases", status_code=201)
def api_create_purchase(
    payload: Any = Body(...),
    manager: PurchaseLifecycleManager = Depends(get_manager),
) -> dict[str, Any]:
    """Create a purchase; the chat notification is sent in the background."""

    if not isinstance(payload, dict):
        raise PurchaseValidationError("Тело запроса должно быть JSON-объектом")
    purchase = manager.create_purchase(payload.get("items"), payload.get("isUrgent"))
    return {"success": True, "data": purchase.model_dump(mode="json", by_alias=True)}


@app.get("/api/purchases")
def api_list_purchases(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    is_urgent: bool | None = Query(default=None, alias="isUrgent"),
    manager: PurchaseLifecycleManager = Depends(get_manager),
) -> dict[str, Any]:
    result = manager.list_purchases(is_urgent=is_urgent, page=page, limit=limit)
    return {"success": True, "data": result.to_dict()}


@app.get("/api/purchases/{purchase_id}")
def api_get_purchase(
    purchase_id: str,
    manager: PurchaseLifecycleManager = Depends(get_manager),
) -> dict[str, Any]:
    purchase = manager.get_purchase(purchase_id)
    return {"success": True, "data": purchase.model_dump(mode="json", by_alias=True)}


@app.post("/api/purchases/{purchase_id}/events")
def api_apply_purchase_event(
    purchase_id: str,
    payload: dict[str, Any] = Body(...),
    manager: PurchaseLifecycleManager = Depends(get_manager),
) -> dict[str, Any]:
    purchase = manager.apply_status_event(purchase_id, str(payload.get("event") or ""))
    return {"success": True, "data": purchase.model_dump(mode="json", by_alias=True)}


@app.patch("/api/purchases/{purchase_id}/status")
def api_update_purchase_status(
    purchase_id: str,
    payload: dict[str, Any] = Body(...),
    manager: PurchaseLifecycleManager = Depends(get_manager),
) -> dict[str, Any]:
    """Move a purchase to the next status, accepting either legacy vocabulary."""

    purchase = manager.advance_to(purchase_id, str(payload.get("status") or ""))
    return {"success": True, "data": purchase.model_dump(mode="json", by_alias=True)}


@app.post("/api/telegram/webhook")
def api_telegram_webhook(
    update: dict[str, Any] = Body(...),
    manager: PurchaseLifecycleManager = Depends(get_manager),
) -> dict[str, Any]:
    """Handle inline-button presses; other update types are acknowledged and ignored."""

    callback_query = update.get("callback_query")
    if not isinstance(callback_query, dict):
        return {"ok": True}

    message = callback_query.get("message") or {}
    chat = message.get("chat") or {}
    sender = callback_query.get("from") or {}
    purchase = manager.handle_callback(
        str(callback_query.get("id", "")),
        callback_query.get("data"),
        chat_ref=chat.get("id"),
        message_ref=message.get("message_id"),
    )
    if purchase is not None:
        logger.info(
            "Compra %s actualizada desde Telegram a %s (usuario: %s)",
            purchase.id,
            purchase.status.value,
            sender.get("first_name", "?"),
        )
    return {"ok": True}


@app.on_event("startup")
def configure_app_logging() -> None:
    """Initialise global logging from the environment."""

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)
    logger.debug("Logging configured for the web application")


@app.on_event("shutdown")
def stop_notifications() -> None:
    if get_manager.cache_info().currsize:
        get_manager().shutdown(wait=False)
