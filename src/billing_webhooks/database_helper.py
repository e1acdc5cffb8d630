"""
Supabase-backed billing store used by the PayPal webhook handlers
"""

from typing import Dict, Optional, Any
from datetime import datetime, timezone
from postgrest.exceptions import APIError
from supabase import Client
import logging

from billing_webhooks.core.interfaces import IBillingStore

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = '23505'


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _serialize(record: Dict[str, Any]) -> Dict[str, Any]:
    return {key: _iso(value) for key, value in record.items()}


class DatabaseHelper(IBillingStore):
    """Billing queries over a service-role Supabase client.

    Reads that only enrich a side effect return None on failure. Writes raise,
    so the webhook answers non-2xx and the provider redelivers; every write is
    conditional or unique-key guarded, which makes the redelivery safe.
    """

    def __init__(self, admin_client: Client):
        self.admin_client = admin_client

    @staticmethod
    def _is_unique_violation(error: APIError) -> bool:
        return str(getattr(error, 'code', '') or '') == UNIQUE_VIOLATION

    # Profiles
    async def activate_profile(self, user_id: str) -> int:
        result = (
            self.admin_client.table('profiles')
            .update({'subscription_status': 'active'})
            .eq('user_id', user_id)
            .or_('subscription_status.is.null,subscription_status.neq.active')
            .execute()
        )
        return len(result.data or [])

    async def deactivate_profile(self, user_id: str) -> int:
        result = (
            self.admin_client.table('profiles')
            .update({'subscription_status': 'inactive'})
            .eq('user_id', user_id)
            .execute()
        )
        return len(result.data or [])

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = (
                self.admin_client.table('profiles')
                .select('user_id, display_name, first_name, last_name, referrer_id, subscription_status')
                .eq('user_id', user_id)
                .limit(1)
                .execute()
            )
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Profile lookup failed: user_id={user_id} error={e}")
            return None

    async def get_referrer_id(self, user_id: str) -> Optional[str]:
        # errors propagate; None only when the user has no referrer
        result = (
            self.admin_client.table('profiles')
            .select('referrer_id')
            .eq('user_id', user_id)
            .limit(1)
            .execute()
        )
        return result.data[0].get('referrer_id') if result.data else None

    async def get_private_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = (
                self.admin_client.table('profiles_private')
                .select('user_id, email, paypal_customer_id, paypal_payout_email, payout_setup_completed')
                .eq('user_id', user_id)
                .limit(1)
                .execute()
            )
            return result.data[0] if result.data else None
        except Exception as e:
            logger.error(f"Private profile lookup failed: user_id={user_id} error={e}")
            return None

    async def set_payout_email_if_missing(self, user_id: str, email: str) -> bool:
        existing = await self.get_private_profile(user_id)
        if existing is None:
            try:
                result = self.admin_client.table('profiles_private').insert({
                    'user_id': user_id,
                    'paypal_payout_email': email,
                    'payout_setup_completed': True,
                }).execute()
                return bool(result.data)
            except APIError as e:
                if not self._is_unique_violation(e):
                    raise
                # Row appeared concurrently; fall through to the guarded update

        result = (
            self.admin_client.table('profiles_private')
            .update({
                'paypal_payout_email': email,
                'payout_setup_completed': True,
                'updated_at': datetime.now(timezone.utc).isoformat(),
            })
            .eq('user_id', user_id)
            .is_('paypal_payout_email', 'null')
            .execute()
        )
        return bool(result.data)

    async def mark_payout_setup_completed(self, user_id: str) -> bool:
        result = (
            self.admin_client.table('profiles_private')
            .update({
                'payout_setup_completed': True,
                'updated_at': datetime.now(timezone.utc).isoformat(),
            })
            .eq('user_id', user_id)
            .not_.is_('paypal_payout_email', 'null')
            .or_('payout_setup_completed.is.null,payout_setup_completed.eq.false')
            .execute()
        )
        return bool(result.data)

    # Subscriptions
    async def _update_subscription_row(self, record: Dict[str, Any]) -> int:
        changes = {
            key: value for key, value in record.items()
            if key not in ('provider_subscription_id', 'user_id', 'payment_provider')
        }
        changes['updated_at'] = datetime.now(timezone.utc)
        result = (
            self.admin_client.table('subscriptions')
            .update(_serialize(changes))
            .eq('provider_subscription_id', record['provider_subscription_id'])
            .execute()
        )
        return len(result.data or [])

    async def upsert_subscription(self, record: Dict[str, Any]) -> str:
        if await self._update_subscription_row(record):
            return 'updated'

        try:
            self.admin_client.table('subscriptions').insert(_serialize(record)).execute()
            return 'created'
        except APIError as e:
            if not self._is_unique_violation(e):
                raise
            logger.info(
                "Subscription row created concurrently, updating: %s",
                record['provider_subscription_id'],
            )

        await self._update_subscription_row(record)
        return 'updated'

    async def update_subscription_status(
        self,
        provider_subscription_id: str,
        status: str,
        canceled_at: Optional[datetime] = None,
    ) -> int:
        changes: Dict[str, Any] = {
            'status': status,
            'updated_at': datetime.now(timezone.utc),
        }
        if canceled_at is not None:
            changes['canceled_at'] = canceled_at

        result = (
            self.admin_client.table('subscriptions')
            .update(_serialize(changes))
            .eq('provider_subscription_id', provider_subscription_id)
            .execute()
        )
        return len(result.data or [])

    # Commissions
    async def commission_exists(self, provider_transfer_id: str) -> bool:
        result = (
            self.admin_client.table('commissions')
            .select('id')
            .eq('provider_transfer_id', provider_transfer_id)
            .limit(1)
            .execute()
        )
        return bool(result.data)

    async def insert_commission(self, record: Dict[str, Any]) -> bool:
        try:
            result = self.admin_client.table('commissions').insert(_serialize(record)).execute()
            return bool(result.data)
        except APIError as e:
            if self._is_unique_violation(e):
                logger.info(f"Commission already recorded: {record.get('provider_transfer_id')}")
                return False
            raise

    async def enqueue_commission_notification(self, record: Dict[str, Any]) -> bool:
        result = (
            self.admin_client.table('pending_commission_notifications')
            .insert(_serialize(record))
            .execute()
        )
        return bool(result.data)
