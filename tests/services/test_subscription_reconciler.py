"""SubscriptionReconciler tests: duplicate, reordered and partial deliveries"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from billing_webhooks.services.commission_ledger import CommissionLedgerWriter
from billing_webhooks.services.notification_dispatcher import (
    CANCELLATION_FUNCTION,
    CONFIRMATION_FUNCTION,
    PAYMENT_FAILED_FUNCTION,
    RENEWAL_FUNCTION,
)
from billing_webhooks.services.paypal_events import parse_event
from billing_webhooks.services.subscription_reconciler import SubscriptionReconciler, add_one_month
from tests.mocks import (
    MockBillingStore,
    RecordingNotifier,
    StubPayPalClient,
    activation_event,
    sale_event,
    termination_event,
)


def _reconciler(store, paypal=None, notifier=None):
    paypal = paypal or StubPayPalClient()
    notifier = notifier or RecordingNotifier()
    ledger = CommissionLedgerWriter(store, amount=Decimal("5.00"), currency="USD")
    return SubscriptionReconciler(store, paypal, notifier, ledger)


@pytest.mark.asyncio
async def test_duplicate_activation_is_applied_once():
    store = MockBillingStore()
    store.add_user("user-42", email="member@example.com")
    notifier = RecordingNotifier()
    reconciler = _reconciler(store, notifier=notifier)

    results = []
    for _ in range(3):
        results.append(await reconciler.handle_activation(parse_event(activation_event())))

    assert store.profiles["user-42"]["subscription_status"] == "active"
    assert list(store.subscriptions) == ["SUB-1"]
    assert store.subscriptions["SUB-1"]["status"] == "active"
    assert notifier.names() == [CONFIRMATION_FUNCTION]
    assert notifier.sent[0]["email"] == "member@example.com"
    assert results[0]["activation"]["first_activation"] is True
    assert all(r["activation"]["first_activation"] is False for r in results[1:])
    assert results[-1]["notification"] == {"sent": False, "reason": "already_active"}


@pytest.mark.asyncio
async def test_first_activation_configures_payout_email():
    store = MockBillingStore()
    store.add_user("user-42")
    reconciler = _reconciler(store)

    await reconciler.handle_activation(parse_event(activation_event(email="a@b.com")))
    await reconciler.handle_activation(parse_event(activation_event(email="other@b.com")))

    private = store.private_profiles["user-42"]
    assert private["paypal_payout_email"] == "a@b.com"
    assert private["payout_setup_completed"] is True


@pytest.mark.asyncio
async def test_existing_payout_email_is_kept_and_setup_repaired():
    store = MockBillingStore()
    store.add_user("user-42", payout_email="kept@example.com", payout_completed=False)
    reconciler = _reconciler(store)

    result = await reconciler.handle_activation(parse_event(activation_event(email="a@b.com")))

    private = store.private_profiles["user-42"]
    assert private["paypal_payout_email"] == "kept@example.com"
    assert private["payout_setup_completed"] is True
    assert result["payout"]["data"] == "setup_marked_complete"


@pytest.mark.asyncio
async def test_activation_then_renewal_sends_one_of_each():
    store = MockBillingStore()
    store.add_user("user-42", email="member@example.com")
    notifier = RecordingNotifier()
    reconciler = _reconciler(store, notifier=notifier)

    await reconciler.handle_activation(parse_event(activation_event()))
    await reconciler.handle_activation(
        parse_event(activation_event(event_type="BILLING.SUBSCRIPTION.RENEWED", event_id="WH-9"))
    )

    assert notifier.names() == [CONFIRMATION_FUNCTION, RENEWAL_FUNCTION]
    assert store.profiles["user-42"]["subscription_status"] == "active"
    assert len(store.subscriptions) == 1


@pytest.mark.asyncio
async def test_renewal_before_activation_creates_row():
    store = MockBillingStore()
    store.add_user("user-42")
    reconciler = _reconciler(store)

    await reconciler.handle_activation(
        parse_event(activation_event(event_type="BILLING.SUBSCRIPTION.RENEWED"))
    )

    assert store.profiles["user-42"]["subscription_status"] == "active"
    assert store.subscriptions["SUB-1"]["status"] == "active"


@pytest.mark.asyncio
async def test_activation_period_uses_last_payment_time():
    store = MockBillingStore()
    store.add_user("user-42")
    reconciler = _reconciler(store)
    payload = activation_event()
    payload["resource"]["billing_info"] = {
        "last_payment": {"amount": {"value": "12.50", "currency_code": "eur"}, "time": "2025-01-31T10:00:00Z"},
    }

    await reconciler.handle_activation(parse_event(payload))

    row = store.subscriptions["SUB-1"]
    assert row["current_period_start"] == datetime(2025, 1, 31, 10, tzinfo=timezone.utc)
    assert row["current_period_end"] == datetime(2025, 2, 28, 10, tzinfo=timezone.utc)
    assert row["amount"] == pytest.approx(12.5)
    assert row["currency"] == "EUR"


@pytest.mark.asyncio
async def test_activation_recovers_owner_from_provider():
    store = MockBillingStore()
    store.add_user("user-7")
    paypal = StubPayPalClient({"SUB-7": {"id": "SUB-7", "custom_id": "user-7"}})
    reconciler = _reconciler(store, paypal=paypal)

    result = await reconciler.handle_activation(parse_event(activation_event("SUB-7", user_id=None)))

    assert paypal.lookups == ["SUB-7"]
    assert result["user_id"] == "user-7"
    assert store.profiles["user-7"]["subscription_status"] == "active"


@pytest.mark.asyncio
async def test_failed_upsert_keeps_activation_and_email():
    store = MockBillingStore()
    store.add_user("user-42")
    store.fail_on.add("upsert_subscription")
    notifier = RecordingNotifier()
    reconciler = _reconciler(store, notifier=notifier)

    result = await reconciler.handle_activation(parse_event(activation_event()))

    assert store.profiles["user-42"]["subscription_status"] == "active"
    assert result["subscription_row"]["success"] is False
    assert notifier.names() == [CONFIRMATION_FUNCTION]


@pytest.mark.asyncio
async def test_activation_store_failure_propagates():
    store = MockBillingStore()
    store.add_user("user-42")
    store.fail_on.add("activate_profile")
    notifier = RecordingNotifier()
    reconciler = _reconciler(store, notifier=notifier)

    with pytest.raises(RuntimeError):
        await reconciler.handle_activation(parse_event(activation_event()))
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_repeated_cancellation_is_idempotent():
    store = MockBillingStore()
    store.add_user("user-42", status="active", email="member@example.com")
    notifier = RecordingNotifier()
    reconciler = _reconciler(store, notifier=notifier)
    await reconciler.handle_activation(parse_event(activation_event()))

    for _ in range(3):
        await reconciler.handle_termination(parse_event(termination_event()))

    assert store.profiles["user-42"]["subscription_status"] == "inactive"
    assert store.subscriptions["SUB-1"]["status"] == "canceled"
    assert store.subscriptions["SUB-1"]["canceled_at"] is not None
    assert notifier.names().count(CANCELLATION_FUNCTION) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "event_type, expected",
    [
        ("BILLING.SUBSCRIPTION.EXPIRED", "expired"),
        ("BILLING.SUBSCRIPTION.SUSPENDED", "suspended"),
    ],
)
async def test_termination_sets_specific_status(event_type, expected):
    store = MockBillingStore()
    store.add_user("user-42")
    reconciler = _reconciler(store)
    await reconciler.handle_activation(parse_event(activation_event()))

    result = await reconciler.handle_termination(parse_event(termination_event(event_type=event_type)))

    assert store.subscriptions["SUB-1"]["status"] == expected
    assert result["terminal_status"] == expected


@pytest.mark.asyncio
async def test_cancellation_end_date_uses_next_billing_time():
    store = MockBillingStore()
    store.add_user("user-42", email="member@example.com")
    notifier = RecordingNotifier()
    reconciler = _reconciler(store, notifier=notifier)

    await reconciler.handle_termination(
        parse_event(termination_event(next_billing_time="2025-06-01T00:00:00Z"))
    )

    assert notifier.sent[0]["end_date"] == datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert notifier.sent[0]["status"] == "canceled"


@pytest.mark.asyncio
async def test_notification_failure_does_not_raise():
    store = MockBillingStore()
    store.add_user("user-42")
    reconciler = _reconciler(store, notifier=RecordingNotifier(ok=False))

    result = await reconciler.handle_activation(parse_event(activation_event()))

    assert result["notification"]["sent"] is False
    assert store.profiles["user-42"]["subscription_status"] == "active"


@pytest.mark.asyncio
async def test_payment_failed_notifies_owner():
    store = MockBillingStore()
    store.add_user("user-42", email="member@example.com")
    paypal = StubPayPalClient({
        "SUB-1": {
            "id": "SUB-1",
            "custom_id": "user-42",
            "billing_info": {
                "last_failed_payment": {"amount": {"value": "9.99", "currency_code": "USD"}},
                "next_billing_time": "2025-03-05T00:00:00Z",
            },
        }
    })
    notifier = RecordingNotifier()
    reconciler = _reconciler(store, paypal=paypal, notifier=notifier)

    await reconciler.handle_payment_failed(parse_event(sale_event(event_type="PAYMENT.SALE.DENIED")))

    assert notifier.names() == [PAYMENT_FAILED_FUNCTION]
    sent = notifier.sent[0]
    assert sent["email"] == "member@example.com"
    assert sent["amount"] == Decimal("9.99")
    assert store.writes == []


@pytest.mark.asyncio
async def test_payment_failed_without_provider_record_is_skipped():
    store = MockBillingStore()
    notifier = RecordingNotifier()
    reconciler = _reconciler(store, notifier=notifier)

    payload = {
        "id": "WH-5",
        "event_type": "BILLING.SUBSCRIPTION.PAYMENT.FAILED",
        "resource": {"id": "SUB-404"},
    }
    result = await reconciler.handle_payment_failed(parse_event(payload))

    assert result["notification"] == {"sent": False, "reason": "missing_user"}
    assert notifier.sent == []


def test_add_one_month_rolls_year():
    start = datetime(2024, 12, 15, tzinfo=timezone.utc)
    assert add_one_month(start) == datetime(2025, 1, 15, tzinfo=timezone.utc)
