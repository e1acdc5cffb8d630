"""Referral commission ledger for completed PayPal payments"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from billing_webhooks.core.base_service import BaseService
from billing_webhooks.core.interfaces import IBillingStore

PAYMENT_PROVIDER = "paypal"
COMMISSION_NOTIFICATION_TYPE = "commission_earned"


class CommissionLedgerWriter(BaseService):
    """Writes one pending commission per provider sale id.

    The sale id is the idempotency key: an existing row short-circuits, and a
    concurrent insert losing the unique-constraint race reports a duplicate.
    Referrers are notified through the digest queue, never immediately.
    """

    def __init__(
        self,
        store: IBillingStore,
        amount: Decimal = Decimal("5.00"),
        currency: str = "USD",
    ):
        super().__init__(store)
        self.amount = Decimal(str(amount))
        self.currency = currency

    @staticmethod
    def _display_name(profile: Optional[Dict[str, Any]]) -> Optional[str]:
        if not profile:
            return None
        full_name = f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip()
        return profile.get('display_name') or full_name or None

    async def record_sale(self, user_id: str, sale_id: str) -> Dict[str, Any]:
        referrer_id = await self.store.get_referrer_id(user_id)
        if not referrer_id:
            self.logger.info("[PAYPAL] no referrer for user %s; no commission owed", user_id)
            return {"success": True, "action": "no_referrer"}

        if await self.store.commission_exists(sale_id):
            self.logger.info("[PAYPAL] commission already recorded for sale %s", sale_id)
            return {"success": True, "action": "duplicate", "referrer_id": referrer_id}

        inserted = await self.store.insert_commission({
            "referrer_id": referrer_id,
            "referred_user_id": user_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "status": "pending",
            "payment_provider": PAYMENT_PROVIDER,
            "provider_transfer_id": sale_id,
        })
        if not inserted:
            return {"success": True, "action": "duplicate", "referrer_id": referrer_id}

        self.logger.info("[PAYPAL] commission created: sale=%s referrer=%s", sale_id, referrer_id)

        profile = await self.store.get_profile(user_id)
        queued = False
        try:
            queued = await self.store.enqueue_commission_notification({
                "referrer_id": referrer_id,
                "notification_type": COMMISSION_NOTIFICATION_TYPE,
                "amount": float(self.amount),
                "currency": self.currency,
                "referred_user_name": self._display_name(profile),
                "payment_provider": PAYMENT_PROVIDER,
            })
        except Exception as e:
            self.logger.error("[PAYPAL] commission digest enqueue failed: sale=%s error=%s", sale_id, e)

        return {
            "success": True,
            "action": "created",
            "referrer_id": referrer_id,
            "notification_queued": bool(queued),
        }
