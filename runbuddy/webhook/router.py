from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from runbuddy.dependencies import get_event_handler, get_settings
from runbuddy.webhook.parser import extract_events
from runbuddy.webhook.security import validate_signature

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/webhook")
async def webhook_probe() -> JSONResponse:
    return JSONResponse({"ok": True, "endpoint": "LINE webhook (GET)"})


@router.head("/webhook")
async def webhook_head() -> Response:
    return Response(status_code=200)


@router.post("/webhook")
async def incoming_webhook(request: Request) -> Response:
    settings = get_settings(request)
    body = await request.body()

    signature = request.headers.get("X-Line-Signature", "")
    if not validate_signature(body, signature, settings.line_channel_secret):
        logger.warning("Invalid webhook signature")
        return JSONResponse({"error": "bad signature"}, status_code=401)

    try:
        payload = json.loads(body)
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return JSONResponse({"error": "bad request"}, status_code=400)

    events = extract_events(payload if isinstance(payload, dict) else {})
    if events:
        handler = get_event_handler(request)
        await handler.handle_batch(events, base_url=str(request.base_url))

    return JSONResponse({"ok": True})
