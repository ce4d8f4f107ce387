"""Razorpay webhook endpoint — receives and processes gateway events."""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from synka.billing.events import parse_event
from synka.billing.signature import SIGNATURE_HEADER, verify_webhook_signature
from synka.billing.webhooks import dispatch_event
from synka.database import get_session_factory
from synka.exceptions import DuplicatePaymentError, WebhookPayloadError
from synka.schemas.webhook import WebhookEvent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, " + SIGNATURE_HEADER
    ),
}


def _json(body: dict, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=CORS_HEADERS)


@router.options("/razorpay")
async def razorpay_webhook_preflight() -> Response:
    """CORS preflight. The signature, not CORS, is the security boundary."""
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post("/razorpay")
async def razorpay_webhook(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> JSONResponse:
    """Receive and process Razorpay webhook events."""
    # 1. Read raw body (MUST be raw bytes for signature verification)
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    # 2. Verify signature before touching the database
    if not signature:
        logger.warning("Webhook rejected: no signature header")
        return _json({"error": "No signature"}, status.HTTP_400_BAD_REQUEST)

    secret = request.app.state.settings.razorpay_webhook_secret
    if not verify_webhook_signature(payload, signature, secret):
        logger.warning("Webhook rejected: signature verification failed")
        return _json({"error": "Invalid signature"}, status.HTTP_400_BAD_REQUEST)

    # 3. Parse into a typed event
    try:
        event = parse_event(payload)
    except WebhookPayloadError as e:
        logger.error("Malformed webhook payload (event=%s): %s", e.event_type, e)
        return _json({"error": "Webhook processing failed"}, status.HTTP_500_INTERNAL_SERVER_ERROR)

    if event is None:
        return _json({"received": True})

    logger.info("Processing webhook event: %s", event.event_type)

    # 4. One session and one transaction per delivery
    async with session_factory() as db:
        try:
            await dispatch_event(db, event)
            await db.commit()
        except DuplicatePaymentError as e:
            await db.rollback()
            logger.info(
                "Duplicate delivery of %s for payment %s, acknowledged",
                event.event_type,
                e.razorpay_payment_id,
            )
        except Exception:
            await db.rollback()
            logger.exception(
                "Error processing webhook event %s (gateway id=%s)",
                event.event_type,
                _gateway_id(event),
            )
            return _json(
                {"error": "Webhook processing failed"},
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

    return _json({"received": True})


def _gateway_id(event: WebhookEvent) -> str | None:
    """Best identifier for replaying an event by hand."""
    for attr in ("payment", "subscription", "order"):
        entity = getattr(event, attr, None)
        if entity is not None:
            return entity.id
    return None
