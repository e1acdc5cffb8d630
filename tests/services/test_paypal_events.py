"""Event routing and envelope validation"""
from decimal import Decimal

import pytest

from billing_webhooks.services.paypal_events import (
    EventCategory,
    PaymentFailedEvent,
    SaleCompletedEvent,
    SubscriptionLifecycleEvent,
    SubscriptionTerminatedEvent,
    UnrecognizedEvent,
    parse_event,
    route_event_type,
)
from tests.mocks import activation_event, sale_event, termination_event


@pytest.mark.parametrize(
    "event_type, category",
    [
        ("BILLING.SUBSCRIPTION.ACTIVATED", EventCategory.ACTIVATION),
        ("BILLING.SUBSCRIPTION.RENEWED", EventCategory.ACTIVATION),
        ("PAYMENT.SALE.COMPLETED", EventCategory.PAYMENT_COMPLETED),
        ("BILLING.SUBSCRIPTION.CANCELLED", EventCategory.TERMINATION),
        ("BILLING.SUBSCRIPTION.EXPIRED", EventCategory.TERMINATION),
        ("BILLING.SUBSCRIPTION.SUSPENDED", EventCategory.TERMINATION),
        ("PAYMENT.SALE.DENIED", EventCategory.PAYMENT_FAILED),
        ("BILLING.SUBSCRIPTION.PAYMENT.FAILED", EventCategory.PAYMENT_FAILED),
        ("BILLING.SUBSCRIPTION.CREATED", EventCategory.UNHANDLED),
        ("", EventCategory.UNHANDLED),
        (None, EventCategory.UNHANDLED),
        (42, EventCategory.UNHANDLED),
    ],
)
def test_route_event_type(event_type, category):
    assert route_event_type(event_type) is category


def test_activation_event_fields():
    event = parse_event(activation_event())

    assert isinstance(event, SubscriptionLifecycleEvent)
    assert event.subscription_id == "SUB-1"
    assert event.user_id == "user-42"
    assert event.subscriber_email == "a@b.com"
    assert event.is_renewal is False


def test_renewal_flag():
    event = parse_event(activation_event(event_type="BILLING.SUBSCRIPTION.RENEWED"))
    assert isinstance(event, SubscriptionLifecycleEvent)
    assert event.is_renewal is True


def test_sale_event_fields():
    event = parse_event(sale_event())

    assert isinstance(event, SaleCompletedEvent)
    assert event.sale_id == "SALE-1"
    assert event.subscription_id == "SUB-1"
    assert event.amount == Decimal("9.99")
    assert event.currency == "USD"


def test_termination_event_status():
    event = parse_event(termination_event(event_type="BILLING.SUBSCRIPTION.SUSPENDED"))
    assert isinstance(event, SubscriptionTerminatedEvent)
    assert event.terminal_status == "suspended"


def test_failed_subscription_payment_uses_resource_id():
    payload = {
        "id": "WH-1",
        "event_type": "BILLING.SUBSCRIPTION.PAYMENT.FAILED",
        "resource": {
            "id": "SUB-3",
            "billing_info": {"last_failed_payment": {"amount": {"value": "4.00", "currency_code": "USD"}}},
        },
    }
    event = parse_event(payload)

    assert isinstance(event, PaymentFailedEvent)
    assert event.subscription_id == "SUB-3"
    assert event.amount == Decimal("4.00")


@pytest.mark.parametrize(
    "payload, reason",
    [
        ({"id": "WH", "event_type": "CUSTOMER.DISPUTE.CREATED", "resource": {}}, "unhandled event type"),
        ({"id": "WH", "event_type": "BILLING.SUBSCRIPTION.ACTIVATED"}, "missing resource"),
        ({"id": "WH", "event_type": "BILLING.SUBSCRIPTION.ACTIVATED", "resource": {}}, "subscription resource without id"),
        ({"id": "WH", "event_type": "PAYMENT.SALE.DENIED", "resource": {"id": "S"}},
         "payment failure without subscription reference"),
        (["not", "an", "object"], "envelope is not an object"),
        ({"id": "WH", "event_type": 42, "resource": {}}, "unhandled event type"),
        ({"id": "WH", "event_type": None, "resource": {}}, "unhandled event type"),
    ],
)
def test_unusable_envelopes_are_unrecognized(payload, reason):
    event = parse_event(payload)
    assert isinstance(event, UnrecognizedEvent)
    assert event.reason == reason
    assert event.category is EventCategory.UNHANDLED
