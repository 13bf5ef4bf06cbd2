"""FastAPI application for the smart-reply webhook relay."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from smartrelay.config import RelaySettings, load_settings
from smartrelay.models import StatusReport
from smartrelay.server.dashboard import load_dashboard, render_env_report
from smartrelay.txlog.buffer import TransactionLog
from smartrelay.webhook.downstream import ReplyScriptClient
from smartrelay.webhook.models import IntegrationMode
from smartrelay.webhook.payload import resolve_mode
from smartrelay.webhook.relay import SmartReplyRelay
from smartrelay.webhook.whatsapp import WhatsAppRelay

logger = logging.getLogger(__name__)

ROOT_MESSAGE = "Le serveur de webhook est actif."
WEBHOOK_ACK = "Le point de terminaison du webhook est actif."


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    return create_app(load_settings())


def create_app(
    settings: RelaySettings,
    transaction_log: TransactionLog | None = None,
    script_client: ReplyScriptClient | None = None,
) -> FastAPI:
    """Create the relay app. Collaborators default to ones built from settings."""
    app = FastAPI(docs_url=None, redoc_url=None)

    if transaction_log is None and settings.log_buffer_enabled:
        transaction_log = TransactionLog(settings.log_buffer_size)
    if script_client is None:
        script_client = ReplyScriptClient(
            settings.app_script_url, timeout=settings.script_timeout_seconds,
        )
    if not settings.app_script_url:
        logger.warning("APP_SCRIPT_URL is not set; every reply will be a fallback")

    whatsapp = WhatsAppRelay(
        verify_token=settings.verify_token,
        phone_number_id=settings.phone_number_id,
        access_token=settings.access_token,
        api_version=settings.graph_api_version,
    )
    relay = SmartReplyRelay(
        script_client,
        policy=settings.fallback_policy(),
        transaction_log=transaction_log,
        whatsapp=whatsapp,
    )
    dashboard_html = load_dashboard(settings.dashboard_path)

    app.state.relay = relay
    app.state.transaction_log = transaction_log

    @app.get("/")
    async def root() -> PlainTextResponse:
        return PlainTextResponse(ROOT_MESSAGE)

    @app.get("/api/webhook")
    async def verify_webhook(request: Request) -> Response:
        if not whatsapp.verification_enabled:
            return PlainTextResponse(WEBHOOK_ACK)
        result = whatsapp.handle_verification(dict(request.query_params))
        if result["status_code"] == 200:
            return PlainTextResponse(result["content"])
        return PlainTextResponse("Forbidden", status_code=403)

    @app.post("/api/webhook")
    async def receive_webhook(
        request: Request, background_tasks: BackgroundTasks,
    ) -> Response:
        try:
            payload = await _read_payload(request)
            if resolve_mode(payload) is IntegrationMode.NATIVE_INTERACTIVE:
                # Acknowledge first; the reply is sent through the Graph API
                background_tasks.add_task(relay.relay_notification, payload)
                return Response(status_code=200)

            result = await relay.relay(payload)
            return JSONResponse({"reply": result.text})
        except Exception:
            # POST /api/webhook always answers 200
            logger.exception("Unhandled error in webhook handler")
            return JSONResponse({"reply": settings.error_reply})

    @app.get("/api/status")
    async def status() -> JSONResponse:
        recent = transaction_log.recent() if transaction_log is not None else []
        report = StatusReport(recent_transactions=recent)
        return JSONResponse(report.model_dump(mode="json", by_alias=True))

    @app.get("/api/dashboard")
    async def dashboard() -> HTMLResponse:
        return HTMLResponse(dashboard_html)

    @app.get("/api/test-env")
    async def test_env() -> HTMLResponse:
        page, status_code = render_env_report(settings.app_script_url)
        return HTMLResponse(page, status_code=status_code)

    return app


async def _read_payload(request: Request) -> Any:
    body = await request.body()
    if not body:
        return {}
    try:
        return json.loads(body)
    except (ValueError, RecursionError):
        # ValueError covers JSONDecodeError and UnicodeDecodeError
        logger.warning("Webhook body is not valid JSON")
        return {}
