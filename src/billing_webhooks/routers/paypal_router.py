"""
PayPal Webhook Router

Handles PayPal subscription webhook events:
- signature verification through PayPal's verify-webhook-signature API
  (skipped when no webhook id is configured)
- profile activation / renewal with first-activation emails
- referral commissions on completed sales
- cancellation, expiry and suspension
- payment failure notices

Every event that passes verification and parses is acknowledged with 200,
including types this service does not act on, so PayPal stops redelivering.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from billing_webhooks.core.factory import PayPalWebhookServices, ServiceFactory
from billing_webhooks.core.responses import BusinessException, success_response
from billing_webhooks.services.paypal_events import EventCategory, UnrecognizedEvent, WebhookEvent, parse_event
from billing_webhooks.services.subscription_reconciler import SubscriptionReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["webhooks", "paypal"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


HandlerFunc = Callable[[SubscriptionReconciler, Any], Awaitable[Dict[str, Any]]]

HANDLER_MAP: Dict[EventCategory, HandlerFunc] = {
    EventCategory.ACTIVATION: SubscriptionReconciler.handle_activation,
    EventCategory.PAYMENT_COMPLETED: SubscriptionReconciler.handle_payment_completed,
    EventCategory.TERMINATION: SubscriptionReconciler.handle_termination,
    EventCategory.PAYMENT_FAILED: SubscriptionReconciler.handle_payment_failed,
}


def _resolve_handler(event: WebhookEvent) -> Optional[HandlerFunc]:
    return HANDLER_MAP.get(event.category)


def get_services_builder() -> Callable[[], PayPalWebhookServices]:
    """Services are constructed inside the request so config errors map to the webhook's error body"""
    return ServiceFactory.create_webhook_services


def _json(content: Dict[str, Any], status_code: int) -> JSONResponse:
    return JSONResponse(content=content, status_code=status_code, headers=CORS_HEADERS)


async def process_paypal_event(payload: Dict[str, Any], reconciler: SubscriptionReconciler) -> Dict[str, Any]:
    """Route one parsed webhook envelope to its handler and return the outcome"""

    event = parse_event(payload)
    logger.info(
        "[PAYPAL] event=%s id=%s category=%s",
        event.event_type,
        event.event_id,
        event.category.value,
    )

    handler = _resolve_handler(event)
    if handler is None:
        reason = event.reason if isinstance(event, UnrecognizedEvent) else "no handler"
        logger.info("[PAYPAL] event ignored: type=%s reason=%s", event.event_type, reason)
        return {
            "event_id": event.event_id,
            "event_type": event.event_type,
            "event_category": None,
            "status": "skipped",
            "skip": True,
            "reason": reason,
            "processed": {},
        }

    results = await handler(reconciler, event)
    logger.info("[PAYPAL] event processed: id=%s results=%s", event.event_id, results)
    return {
        "event_id": event.event_id,
        "event_type": event.event_type,
        "event_category": event.category.value,
        "status": "processed",
        "skip": False,
        "processed": results,
    }


@router.get("/paypal")
async def paypal_webhook_get():
    return success_response(data={"ok": True}, message="paypal webhook alive")


@router.options("/paypal")
async def paypal_webhook_preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/paypal")
async def paypal_webhook(
    request: Request,
    build_services: Callable[[], PayPalWebhookServices] = Depends(get_services_builder),
):
    raw = await request.body()
    logger.info(
        "[PAYPAL] webhook received: len=%s transmission_id=%s",
        len(raw),
        request.headers.get("paypal-transmission-id"),
    )

    try:
        services = build_services()
    except BusinessException as e:
        logger.error("[PAYPAL] %s", e.message)
        return _json({"error": e.message}, e.status_code)

    if not await services.verifier.verify(raw, request.headers):
        return _json({"error": "Invalid signature"}, 401)

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return _json({"error": "Invalid JSON payload"}, 400)

    try:
        await process_paypal_event(payload, services.reconciler)
    except Exception as e:
        logger.error("[PAYPAL] webhook processing failed: %s", e, exc_info=True)
        return _json({"error": str(e)}, 500)

    return _json({"received": True}, 200)
