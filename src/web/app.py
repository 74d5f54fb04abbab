"""
FastAPI Web Application - Order Notifier API
=============================================

JSON API over the sheet pipeline:

    GET    /api/sheets/info             spreadsheet title and sheet list
    GET    /api/sheets/data?sheet=      raw rows of one sheet (or all sheets)
    POST   /api/sheets/process          run the pipeline for {"selectedSheet"}
    GET    /api/sheets/status           processed-sheet status (?sheetName=)
    POST   /api/sheets/status           status of several sheets
    GET    /api/test-whatsapp           gateway connectivity check
    POST   /api/test-whatsapp           send a test message or sample order
    GET    /api/webhooks/orders         receiver health check
    POST   /api/webhooks/orders         log an inbound order payload
    GET    /api/webhook-logs            recent receiver logs and stats
    DELETE /api/webhook-logs            clear receiver logs
    POST   /api/maintenance/cleanup     retention cleanup
    GET    /api/metrics                 Prometheus metrics

The webhook receiver only records what it gets. Messages are sent by the
pipeline alone, so forwarding our own payload back here never double-sends.
POST /api/webhooks/orders is rate limited per caller (WEBHOOK_RATE_LIMIT).
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from src.application import ServiceContainer, create_container
from src.domain import ClientNotification, Order, PipelineError
from src.domain.messages import build_message
from src.infrastructure.config import get_settings
from src.infrastructure.persistence import Database
from src.infrastructure.ratelimit import client_id
from src.infrastructure.webhook import parse_payload

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# ── Request bodies ─────────────────────────────────────────────────

class ProcessRequest(BaseModel):
    selectedSheet: Optional[str] = None


class SheetsStatusRequest(BaseModel):
    sheetNames: Optional[List[str]] = None


class TestOrder(BaseModel):
    fullName: str = "Тест Клиент"
    phoneNumber: Optional[str] = None
    pickupPoint: str = "Бишкек, ул. Чуй 123"
    trackingNumber: str = "TEST123456"
    weight: Optional[float] = 2.5
    price: Optional[float] = 1500
    status: str = "Готов"


class TestMessageRequest(BaseModel):
    phoneNumber: Optional[str] = None
    message: Optional[str] = None
    testOrder: Optional[TestOrder] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str, error: str = "") -> JSONResponse:
    content = {"success": False, "message": message}
    if error:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


async def _log_webhook(request: Request, db: Database):
    """Record one inbound payload; only reports what it received."""
    headers = dict(request.headers)

    try:
        body = await request.json()
    except ValueError as e:
        log_id = db.add_webhook_log(
            request.method, str(request.url), headers, status="error", error=str(e)
        )
        logger.warning(f"Webhook {log_id}: invalid JSON body")
        return _error(400, "Invalid JSON body", error=str(e))

    log_id = db.add_webhook_log(request.method, str(request.url), headers, body)
    order_sets = parse_payload(body)
    orders = sum(len(s) for s in order_sets.values())
    logger.info(f"Webhook {log_id}: {len(order_sets)} clients, {orders} orders received")

    return {
        "success": True,
        "message": "Webhook received",
        "logId": log_id,
        "clients": len(order_sets),
        "orders": orders,
        "timestamp": _now(),
    }


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the API. Without a container one is created from environment
    settings on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        current = container or create_container(get_settings())
        app.state.container = current
        for issue in current.settings.validate():
            logger.warning(issue)
        logger.info("Order notifier API ready")
        try:
            yield
        finally:
            if owned:
                await current.aclose()

    app = FastAPI(
        title="Order Notifier",
        description="Warehouse sheet to WhatsApp notification pipeline",
        lifespan=lifespan,
    )

    def services(request: Request) -> ServiceContainer:
        return request.app.state.container

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error(500, str(exc), error=type(exc).__name__)

    # ── Sheets ─────────────────────────────────────────────────────

    @app.get("/api/sheets/info")
    async def sheets_info(request: Request):
        c = services(request)
        spreadsheet_id = c.settings.sheets.spreadsheet_id
        if not spreadsheet_id:
            return _error(500, "SPREADSHEET_ID not configured")

        info = await c.source.get_spreadsheet_info(spreadsheet_id)
        return {"success": True, "data": info.to_dict()}

    @app.get("/api/sheets/data")
    async def sheets_data(request: Request, sheet: Optional[str] = None):
        c = services(request)
        spreadsheet_id = c.settings.sheets.spreadsheet_id
        if not spreadsheet_id:
            return _error(500, "SPREADSHEET_ID not configured")

        if sheet:
            rows = await c.source.fetch_rows(spreadsheet_id, sheet)
            return {"success": True, "data": {"sheetName": sheet, "values": rows}}

        names = await c.source.list_sheet_names(spreadsheet_id)
        data = []
        for name in names:
            data.append({"sheetName": name, "values": await c.source.fetch_rows(spreadsheet_id, name)})
        return {"success": True, "data": data}

    @app.post("/api/sheets/process")
    async def process_sheet(request: Request, body: ProcessRequest):
        if not (body.selectedSheet or "").strip():
            return _error(400, "Sheet name is required")

        result = await services(request).pipeline.process_sheet(body.selectedSheet)
        return result.to_dict()

    @app.get("/api/sheets/status")
    async def sheet_status(request: Request, sheetName: Optional[str] = None):
        if not sheetName:
            return _error(400, "Sheet name is required")
        return {"success": True, "data": services(request).status.sheet_status(sheetName)}

    @app.post("/api/sheets/status")
    async def sheets_status(request: Request, body: SheetsStatusRequest):
        if body.sheetNames is None:
            return _error(400, "Sheet names array is required")
        return {"success": True, "data": services(request).status.sheets_status(body.sheetNames)}

    # ── WhatsApp ───────────────────────────────────────────────────

    @app.get("/api/test-whatsapp")
    async def test_whatsapp_connection(request: Request):
        connected = await services(request).provider.test_connection()
        return {
            "success": True,
            "connected": connected,
            "message": "WhatsApp API is working!" if connected else "WhatsApp API connection failed",
            "timestamp": _now(),
        }

    @app.post("/api/test-whatsapp")
    async def test_whatsapp_message(request: Request, body: TestMessageRequest):
        c = services(request)

        if body.testOrder is not None:
            order = body.testOrder
            phone = order.phoneNumber or body.phoneNumber or "700100518"
            notification = ClientNotification(
                full_name=order.fullName,
                phone_number=phone,
                pickup_point=order.pickupPoint,
                orders=[Order(
                    tracking_number=order.trackingNumber,
                    status=order.status,
                    weight=order.weight,
                    price=order.price,
                )],
            )
            logger.info(f"Testing WhatsApp order notification to {phone}")
            success = await c.provider.send_message(
                c.batcher.chat_id(phone), build_message(notification)
            )
            return {
                "success": success,
                "message": "Test order notification sent!" if success else "Failed to send test notification",
                "order": order.model_dump(),
                "timestamp": _now(),
            }

        if body.phoneNumber and body.message:
            phone = body.phoneNumber
            chat_id = phone if "@" in phone else c.batcher.chat_id(phone)
            logger.info(f"Testing WhatsApp custom message to {chat_id}")
            success = await c.provider.send_message(chat_id, body.message)
            return {
                "success": success,
                "message": "Test message sent!" if success else "Failed to send test message",
                "phoneNumber": phone,
                "timestamp": _now(),
            }

        return _error(400, "Please provide either phoneNumber + message or testOrder data")

    # ── Webhook receiver ───────────────────────────────────────────

    @app.get("/api/webhooks/orders")
    async def webhook_health():
        return {"success": True, "message": "Webhook endpoint is active", "timestamp": _now()}

    @app.post("/api/webhooks/orders")
    async def receive_webhook(request: Request):
        c = services(request)
        headers = request.headers
        decision = c.webhook_limiter.check(client_id(
            headers.get("x-forwarded-for", ""),
            headers.get("x-real-ip", ""),
            request.client.host if request.client else "",
            headers.get("user-agent", ""),
        ))
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": "Too many requests. Please try again later.",
                    "retryAfter": decision.retry_after,
                },
                headers=decision.headers(),
            )

        with c.metrics.timer("webhook-processing"):
            return await _log_webhook(request, c.database)

    @app.get("/api/webhook-logs")
    async def webhook_logs(request: Request, limit: int = 50,
                           log_id: Optional[int] = Query(None, alias="id")):
        db = services(request).database
        if log_id is not None:
            log = db.get_webhook_log(log_id)
            if log is None:
                raise HTTPException(status_code=404, detail="Log not found")
            return {"success": True, "log": log.to_dict()}

        logs = db.get_webhook_logs(limit)
        return {
            "success": True,
            "logs": [log.to_dict() for log in logs],
            "stats": db.get_webhook_stats(),
            "total": len(logs),
        }

    @app.delete("/api/webhook-logs")
    async def clear_webhook_logs(request: Request):
        deleted = services(request).database.clear_webhook_logs()
        return {"success": True, "message": "All webhook logs cleared", "deleted": deleted}

    # ── Maintenance ────────────────────────────────────────────────

    @app.post("/api/maintenance/cleanup")
    async def cleanup(request: Request, days: Optional[int] = None):
        c = services(request)
        days = days if days is not None else c.settings.retention_days
        if days < 1:
            return _error(400, "days must be at least 1")
        deleted = c.database.cleanup_old_data(days)
        return {"success": True, "days": days, "deleted": deleted, "stats": c.database.get_stats()}

    @app.get("/api/metrics")
    async def metrics(request: Request):
        m = services(request).metrics
        return Response(content=m.render(), media_type=m.content_type)

    return app


app = create_app()
