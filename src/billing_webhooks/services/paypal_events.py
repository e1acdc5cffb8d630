"""
PayPal webhook event parsing and routing.

Envelopes are validated once here and turned into one of a small set of
typed events. Anything the handlers cannot act on becomes an
UnrecognizedEvent, which the webhook acknowledges without side effects.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class EventCategory(str, Enum):
    ACTIVATION = "activation"
    PAYMENT_COMPLETED = "payment_completed"
    TERMINATION = "termination"
    PAYMENT_FAILED = "payment_failed"
    UNHANDLED = "unhandled"


SUBSCRIPTION_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
SUBSCRIPTION_RENEWED = "BILLING.SUBSCRIPTION.RENEWED"
SUBSCRIPTION_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
SUBSCRIPTION_EXPIRED = "BILLING.SUBSCRIPTION.EXPIRED"
SUBSCRIPTION_SUSPENDED = "BILLING.SUBSCRIPTION.SUSPENDED"
SUBSCRIPTION_PAYMENT_FAILED = "BILLING.SUBSCRIPTION.PAYMENT.FAILED"
SALE_COMPLETED = "PAYMENT.SALE.COMPLETED"
SALE_DENIED = "PAYMENT.SALE.DENIED"

EVENT_ROUTES: Dict[str, EventCategory] = {
    SUBSCRIPTION_ACTIVATED: EventCategory.ACTIVATION,
    SUBSCRIPTION_RENEWED: EventCategory.ACTIVATION,
    SALE_COMPLETED: EventCategory.PAYMENT_COMPLETED,
    SUBSCRIPTION_CANCELLED: EventCategory.TERMINATION,
    SUBSCRIPTION_EXPIRED: EventCategory.TERMINATION,
    SUBSCRIPTION_SUSPENDED: EventCategory.TERMINATION,
    SALE_DENIED: EventCategory.PAYMENT_FAILED,
    SUBSCRIPTION_PAYMENT_FAILED: EventCategory.PAYMENT_FAILED,
}

TERMINAL_STATUSES: Dict[str, str] = {
    SUBSCRIPTION_CANCELLED: "canceled",
    SUBSCRIPTION_EXPIRED: "expired",
    SUBSCRIPTION_SUSPENDED: "suspended",
}


@dataclass(slots=True)
class SubscriptionLifecycleEvent:
    event_id: Optional[str]
    event_type: str
    subscription_id: str
    user_id: Optional[str]
    is_renewal: bool
    subscriber_email: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    last_payment_at: Optional[datetime] = None
    next_billing_at: Optional[datetime] = None
    category = EventCategory.ACTIVATION


@dataclass(slots=True)
class SaleCompletedEvent:
    event_id: Optional[str]
    event_type: str
    sale_id: str
    subscription_id: Optional[str]
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    category = EventCategory.PAYMENT_COMPLETED


@dataclass(slots=True)
class SubscriptionTerminatedEvent:
    event_id: Optional[str]
    event_type: str
    subscription_id: str
    user_id: Optional[str]
    terminal_status: str
    subscriber_email: Optional[str] = None
    next_billing_at: Optional[datetime] = None
    category = EventCategory.TERMINATION


@dataclass(slots=True)
class PaymentFailedEvent:
    event_id: Optional[str]
    event_type: str
    subscription_id: str
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    next_attempt_at: Optional[datetime] = None
    category = EventCategory.PAYMENT_FAILED


@dataclass(slots=True)
class UnrecognizedEvent:
    event_id: Optional[str]
    event_type: str
    reason: str
    category = EventCategory.UNHANDLED


WebhookEvent = Union[
    SubscriptionLifecycleEvent,
    SaleCompletedEvent,
    SubscriptionTerminatedEvent,
    PaymentFailedEvent,
    UnrecognizedEvent,
]


def get_path(d: Dict, *keys: str, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict) or k not in cur:
            return default
        cur = cur[k]
    return cur


def _to_decimal(value: Any) -> Optional[Decimal]:
    try:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            if raw.endswith('Z'):
                raw = raw[:-1] + '+00:00'
            dt = datetime.fromisoformat(raw)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        except ValueError:
            return None
    return None


def parse_money(amount_obj: Any) -> Tuple[Optional[Decimal], Optional[str]]:
    """Read `{value, currency_code}` (subscriptions) or `{total, currency}` (sales)"""

    if not isinstance(amount_obj, dict):
        return None, None
    amount = _to_decimal(amount_obj.get("value") or amount_obj.get("total"))
    currency = amount_obj.get("currency_code") or amount_obj.get("currency")
    return amount, currency.upper() if isinstance(currency, str) else None


def subscription_owner(resource: Dict[str, Any]) -> Optional[str]:
    """The app stores the user id as the subscription's custom_id"""

    custom_id = resource.get("custom_id") if isinstance(resource, dict) else None
    if isinstance(custom_id, str):
        custom_id = custom_id.strip()
    return custom_id or None


def subscriber_email(resource: Dict[str, Any]) -> Optional[str]:
    email = get_path(resource, "subscriber", "email_address")
    return email.strip() if isinstance(email, str) and email.strip() else None


def route_event_type(event_type: Any) -> EventCategory:
    """Map a provider event type to a handling category"""

    if not isinstance(event_type, str) or not event_type:
        return EventCategory.UNHANDLED
    return EVENT_ROUTES.get(event_type.strip().upper(), EventCategory.UNHANDLED)


def parse_event(payload: Dict[str, Any]) -> WebhookEvent:
    """Validate a webhook envelope and build the typed event for its category"""

    if not isinstance(payload, dict):
        return UnrecognizedEvent(None, "", reason="envelope is not an object")

    event_type = payload.get("event_type")
    event_type = event_type.strip().upper() if isinstance(event_type, str) else ""
    event_id = payload.get("id")
    category = route_event_type(event_type)

    if category is EventCategory.UNHANDLED:
        return UnrecognizedEvent(event_id, event_type, reason="unhandled event type")

    resource = payload.get("resource")
    if not isinstance(resource, dict):
        return UnrecognizedEvent(event_id, event_type, reason="missing resource")

    if category is EventCategory.ACTIVATION:
        subscription_id = resource.get("id")
        if not subscription_id:
            return UnrecognizedEvent(event_id, event_type, reason="subscription resource without id")
        amount, currency = parse_money(get_path(resource, "billing_info", "last_payment", "amount"))
        return SubscriptionLifecycleEvent(
            event_id=event_id,
            event_type=event_type,
            subscription_id=subscription_id,
            user_id=subscription_owner(resource),
            is_renewal=event_type == SUBSCRIPTION_RENEWED,
            subscriber_email=subscriber_email(resource),
            amount=amount,
            currency=currency,
            last_payment_at=parse_datetime(get_path(resource, "billing_info", "last_payment", "time")),
            next_billing_at=parse_datetime(get_path(resource, "billing_info", "next_billing_time")),
        )

    if category is EventCategory.PAYMENT_COMPLETED:
        sale_id = resource.get("id")
        if not sale_id:
            return UnrecognizedEvent(event_id, event_type, reason="sale resource without id")
        amount, currency = parse_money(resource.get("amount"))
        return SaleCompletedEvent(
            event_id=event_id,
            event_type=event_type,
            sale_id=sale_id,
            subscription_id=resource.get("billing_agreement_id") or None,
            amount=amount,
            currency=currency,
        )

    if category is EventCategory.TERMINATION:
        subscription_id = resource.get("id")
        if not subscription_id:
            return UnrecognizedEvent(event_id, event_type, reason="subscription resource without id")
        return SubscriptionTerminatedEvent(
            event_id=event_id,
            event_type=event_type,
            subscription_id=subscription_id,
            user_id=subscription_owner(resource),
            terminal_status=TERMINAL_STATUSES[event_type],
            subscriber_email=subscriber_email(resource),
            next_billing_at=parse_datetime(get_path(resource, "billing_info", "next_billing_time")),
        )

    # payment failed: a denied sale references the agreement, a failed
    # subscription payment carries the subscription itself
    if event_type == SALE_DENIED:
        subscription_id = resource.get("billing_agreement_id")
        amount, currency = parse_money(resource.get("amount"))
        next_attempt = None
    else:
        subscription_id = resource.get("id")
        amount, currency = parse_money(get_path(resource, "billing_info", "last_failed_payment", "amount"))
        next_attempt = parse_datetime(get_path(resource, "billing_info", "next_billing_time"))

    if not subscription_id:
        return UnrecognizedEvent(event_id, event_type, reason="payment failure without subscription reference")

    return PaymentFailedEvent(
        event_id=event_id,
        event_type=event_type,
        subscription_id=subscription_id,
        amount=amount,
        currency=currency,
        next_attempt_at=next_attempt,
    )
