"""
Applies PayPal subscription events to profiles and subscription rows.

Each delivery is handled independently and may be a duplicate, a retry or
arrive out of order. The status flip on the profile is the first write of
every path; later steps (payout setup, subscription row details, contact
lookup, email) are best-effort and never undo it. Emails on the activation
path are gated on the number of rows the conditional activation changed,
so only the delivery that actually flipped the profile sends one.
"""
import calendar
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from billing_webhooks.core.base_service import BaseService
from billing_webhooks.core.interfaces import IBillingStore
from billing_webhooks.core.responses import mask_email
from billing_webhooks.services.commission_ledger import CommissionLedgerWriter, PAYMENT_PROVIDER
from billing_webhooks.services.notification_dispatcher import NotificationDispatcher
from billing_webhooks.services.paypal_client import PayPalClient
from billing_webhooks.services.paypal_events import (
    PaymentFailedEvent,
    SaleCompletedEvent,
    SubscriptionLifecycleEvent,
    SubscriptionTerminatedEvent,
    get_path,
    parse_money,
    parse_datetime,
    subscriber_email,
    subscription_owner,
)

DEFAULT_MEMBER_NAME = "Member"


def add_one_month(start: datetime) -> datetime:
    """Same day next month, clamped to the last day of a shorter month"""
    year = start.year + (1 if start.month == 12 else 0)
    month = 1 if start.month == 12 else start.month + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


class SubscriptionReconciler(BaseService):

    def __init__(
        self,
        store: IBillingStore,
        paypal_client: PayPalClient,
        notifier: NotificationDispatcher,
        commission_ledger: CommissionLedgerWriter,
        *,
        default_amount: Decimal = Decimal("9.99"),
        default_currency: str = "USD",
    ):
        super().__init__(store)
        self.paypal_client = paypal_client
        self.notifier = notifier
        self.commission_ledger = commission_ledger
        self.default_amount = Decimal(str(default_amount))
        self.default_currency = default_currency

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    async def fetch_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        """Provider lookup; None when PayPal cannot be reached or rejects the id"""
        try:
            return await self.paypal_client.get_subscription(subscription_id)
        except Exception as e:
            self.logger.error("[PAYPAL] subscription lookup failed: id=%s error=%s", subscription_id, e)
            return None

    async def _resolve_owner(self, subscription_id: str, user_id: Optional[str]) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
        if user_id:
            return user_id, None
        resource = await self.fetch_subscription(subscription_id)
        if not resource:
            return None, None
        return subscription_owner(resource), resource

    async def resolve_contact(self, user_id: str, fallback_email: Optional[str] = None) -> Tuple[Optional[str], str]:
        """Notification email and display name for a user"""
        private = await self.store.get_private_profile(user_id)
        profile = await self.store.get_profile(user_id)

        email = (private or {}).get("email") or fallback_email
        name = None
        if profile:
            full_name = f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip()
            name = profile.get("display_name") or full_name
        return email, name or DEFAULT_MEMBER_NAME

    async def _provision_payout_email(self, user_id: str, email: str) -> str:
        private = await self.store.get_private_profile(user_id)
        if private and private.get("paypal_payout_email"):
            if not private.get("payout_setup_completed"):
                await self.store.mark_payout_setup_completed(user_id)
                return "setup_marked_complete"
            return "already_configured"

        if await self.store.set_payout_email_if_missing(user_id, email):
            self.logger.info("[PAYPAL] payout email auto-configured: user=%s email=%s", user_id, mask_email(email))
            return "configured"

        # lost a race to another writer; that value stands
        await self.store.mark_payout_setup_completed(user_id)
        return "already_configured"

    def build_subscription_record(
        self,
        user_id: str,
        subscription_id: str,
        *,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
        period_start: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        # TODO: derive the period from the plan's billing cycle once plan details are fetched
        start = period_start or self._now()
        return {
            "user_id": user_id,
            "provider_subscription_id": subscription_id,
            "status": "active",
            "payment_provider": PAYMENT_PROVIDER,
            "amount": float(amount if amount is not None else self.default_amount),
            "currency": currency or self.default_currency,
            "current_period_start": start,
            "current_period_end": add_one_month(start),
            "canceled_at": None,
        }

    async def handle_activation(self, event: SubscriptionLifecycleEvent) -> Dict[str, Any]:
        results: Dict[str, Any] = {"subscription_id": event.subscription_id}

        user_id, _ = await self._resolve_owner(event.subscription_id, event.user_id)
        if not user_id:
            self.logger.warning("[PAYPAL] activation without resolvable user: %s", event.subscription_id)
            results["activation"] = {"success": False, "reason": "missing_user"}
            return results
        results["user_id"] = user_id

        changed = await self.store.activate_profile(user_id)
        first_activation = changed > 0
        results["activation"] = {"success": True, "first_activation": first_activation}
        self.logger.info(
            "[PAYPAL] profile activation: user=%s first=%s renewal=%s",
            user_id,
            first_activation,
            event.is_renewal,
        )

        if first_activation and event.subscriber_email:
            results["payout"] = await self.best_effort(
                "payout auto-setup", self._provision_payout_email, user_id, event.subscriber_email
            )

        record = self.build_subscription_record(
            user_id,
            event.subscription_id,
            amount=event.amount,
            currency=event.currency,
            period_start=event.last_payment_at,
        )
        results["subscription_row"] = await self.best_effort(
            "subscription upsert", self.store.upsert_subscription, record
        )

        if not first_activation and not event.is_renewal:
            results["notification"] = {"sent": False, "reason": "already_active"}
            return results

        contact = await self.best_effort("contact lookup", self.resolve_contact, user_id, event.subscriber_email)
        email, name = contact["data"] if contact["success"] else (event.subscriber_email, DEFAULT_MEMBER_NAME)

        if first_activation:
            dispatch = await self.notifier.send_confirmation(email, name)
        else:
            dispatch = await self.notifier.send_renewal(
                email,
                name,
                amount=record["amount"],
                currency=record["currency"],
                next_billing_date=event.next_billing_at or record["current_period_end"],
            )
        results["notification"] = {"sent": dispatch.ok, "function": dispatch.function_name}
        return results

    async def handle_payment_completed(self, event: SaleCompletedEvent) -> Dict[str, Any]:
        results: Dict[str, Any] = {"sale_id": event.sale_id}

        if not event.subscription_id:
            results["commission"] = {"success": True, "action": "no_subscription_reference"}
            return results
        results["subscription_id"] = event.subscription_id

        resource = await self.fetch_subscription(event.subscription_id)
        user_id = subscription_owner(resource) if resource else None
        if not user_id:
            self.logger.warning("[PAYPAL] sale %s has no resolvable user; skipping commission", event.sale_id)
            results["commission"] = {"success": False, "reason": "missing_user"}
            return results
        results["user_id"] = user_id

        results["commission"] = await self.commission_ledger.record_sale(user_id, event.sale_id)
        return results

    async def handle_termination(self, event: SubscriptionTerminatedEvent) -> Dict[str, Any]:
        results: Dict[str, Any] = {
            "subscription_id": event.subscription_id,
            "terminal_status": event.terminal_status,
        }
        now = self._now()

        user_id, _ = await self._resolve_owner(event.subscription_id, event.user_id)
        if user_id:
            await self.store.deactivate_profile(user_id)
            results["user_id"] = user_id

        rows = await self.store.update_subscription_status(
            event.subscription_id, event.terminal_status, canceled_at=now
        )
        results["termination"] = {"success": True, "profile_updated": bool(user_id), "rows_updated": rows}

        if not user_id:
            self.logger.warning("[PAYPAL] termination without resolvable user: %s", event.subscription_id)
            results["notification"] = {"sent": False, "reason": "missing_user"}
            return results

        end_date = event.next_billing_at or now
        contact = await self.best_effort("contact lookup", self.resolve_contact, user_id, event.subscriber_email)
        email, name = contact["data"] if contact["success"] else (event.subscriber_email, DEFAULT_MEMBER_NAME)

        dispatch = await self.notifier.send_cancellation(email, name, end_date, event.terminal_status)
        results["notification"] = {"sent": dispatch.ok, "function": dispatch.function_name}
        return results

    async def handle_payment_failed(self, event: PaymentFailedEvent) -> Dict[str, Any]:
        results: Dict[str, Any] = {"subscription_id": event.subscription_id}

        resource = await self.fetch_subscription(event.subscription_id)
        user_id = subscription_owner(resource) if resource else None
        if not user_id:
            results["notification"] = {"sent": False, "reason": "missing_user"}
            return results
        results["user_id"] = user_id

        amount, currency = event.amount, event.currency
        if amount is None:
            amount, currency = parse_money(get_path(resource, "billing_info", "last_failed_payment", "amount"))
        next_attempt = event.next_attempt_at or parse_datetime(get_path(resource, "billing_info", "next_billing_time"))

        contact = await self.best_effort("contact lookup", self.resolve_contact, user_id, subscriber_email(resource))
        email, name = contact["data"] if contact["success"] else (subscriber_email(resource), DEFAULT_MEMBER_NAME)

        dispatch = await self.notifier.send_payment_failed(
            email,
            name,
            amount=amount,
            currency=currency,
            next_attempt_date=next_attempt,
        )
        results["notification"] = {"sent": dispatch.ok, "function": dispatch.function_name}
        return results
