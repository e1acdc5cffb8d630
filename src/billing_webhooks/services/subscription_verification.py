"""
User-initiated subscription check after returning from the PayPal approval page.

This path may activate the profile and create the subscription row, but it
never sends the confirmation email: that belongs to the webhook delivery that
flips the profile first. Both paths use the same conditional activation, so
whichever arrives second sees the profile already active.
"""
from typing import Any, Dict

from billing_webhooks.core.base_service import BaseService
from billing_webhooks.services.paypal_events import get_path, parse_datetime, parse_money
from billing_webhooks.services.subscription_reconciler import SubscriptionReconciler

ACTIVE_PROVIDER_STATUSES = {"ACTIVE", "APPROVED"}


class SubscriptionVerificationService(BaseService):

    def __init__(self, reconciler: SubscriptionReconciler):
        super().__init__(reconciler.store)
        self.reconciler = reconciler

    async def verify_user_subscription(self, user_id: str) -> Dict[str, Any]:
        private = await self.store.get_private_profile(user_id)
        subscription_id = (private or {}).get("paypal_customer_id")
        if not subscription_id:
            self.logger.info("[PAYPAL] no stored subscription for user %s", user_id)
            return {"verified": False, "reason": "no_subscription"}

        # Unlike the webhook, a failed lookup here is reported to the caller
        subscription = await self.reconciler.paypal_client.get_subscription(subscription_id)
        status = (subscription.get("status") or "").upper()
        self.logger.info("[PAYPAL] provider status for %s: %s", subscription_id, status)

        if status not in ACTIVE_PROVIDER_STATUSES:
            return {"verified": False, "status": status, "reason": "not_active"}

        changed = await self.store.activate_profile(user_id)

        amount, currency = parse_money(get_path(subscription, "billing_info", "last_payment", "amount"))
        record = self.reconciler.build_subscription_record(
            user_id,
            subscription_id,
            amount=amount,
            currency=currency,
            period_start=parse_datetime(get_path(subscription, "billing_info", "last_payment", "time")),
        )
        row = await self.best_effort("subscription upsert", self.store.upsert_subscription, record)

        return {
            "verified": True,
            "status": status,
            "emailSent": False,
            "profile_activated": changed > 0,
            "subscription_row": row.get("data") if row["success"] else None,
        }
