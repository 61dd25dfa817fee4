"""Route definitions for the Zoom webhook endpoint."""

import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from connectors.zoom import (
    ZoomWebhookVerifier,
    answer_url_validation,
    extract_url_validation_token,
    extract_zoom_webhook_metadata,
)
from src.bridge.event_dispatcher import EventDispatcher
from src.bridge.models import UrlValidationResponse, ZoomWebhookEnvelope
from src.utils.config import get_zoom_webhook_secret
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

router = APIRouter()


def _parse_body(body: bytes) -> dict | None:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


async def handle_zoom_webhook(request: Request) -> Response:
    """Handle a Zoom webhook delivery.

    The URL validation handshake is answered before signature verification because Zoom does not
    sign it. Every other request must verify before any FileMaker call is made.
    """
    body = await request.body()
    headers = dict(request.headers)
    payload = _parse_body(body)

    logger.info(
        "Received Zoom webhook",
        **extract_zoom_webhook_metadata(body.decode("utf-8", errors="replace")),
    )

    plain_token = extract_url_validation_token(payload)
    if plain_token is not None:
        secret = get_zoom_webhook_secret()
        if not secret:
            logger.error("Cannot answer Zoom URL validation: ZOOM_WEBHOOK_SECRET_TOKEN is not set")
            return PlainTextResponse("Internal Server Error", status_code=500)
        logger.info("Answering Zoom endpoint URL validation")
        answer = UrlValidationResponse(**answer_url_validation(plain_token, secret))
        return JSONResponse(answer.model_dump())

    verification = ZoomWebhookVerifier().verify(headers, body)
    if not verification.success:
        logger.error("Webhook verification failed", error=verification.error)
        return PlainTextResponse("Unauthorized", status_code=401)

    dispatcher: EventDispatcher = request.app.state.event_dispatcher

    try:
        if payload is None:
            raise ValueError("Webhook body is not a JSON object")

        envelope = ZoomWebhookEnvelope.model_validate(payload)
        with LogContext(event_name=envelope.event):
            logger.info(f"Processing event: {envelope.event}")
            result = await dispatcher.dispatch(envelope.event, envelope.payload or {})
            logger.info(
                "Zoom webhook processed",
                outcome=result.outcome,
                action=result.action,
            )
    except Exception as e:
        logger.error("Error processing webhook", error=str(e), exc_info=True)
        return PlainTextResponse("Internal Server Error", status_code=500)

    return PlainTextResponse("OK")


@router.post("/webhook")
async def zoom_webhook(request: Request) -> Response:
    """Process a Zoom Phone webhook."""
    return await handle_zoom_webhook(request)


@router.post("/zoom-webhook", include_in_schema=False)
async def zoom_webhook_legacy(request: Request) -> Response:
    """Path registered in existing Zoom Marketplace apps."""
    return await handle_zoom_webhook(request)
