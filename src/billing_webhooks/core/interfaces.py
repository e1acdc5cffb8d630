"""
Service interfaces
"""
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from datetime import datetime


class IAuthService(ABC):

    @abstractmethod
    async def verify_auth(self, credentials) -> Any:
        """Resolve the authenticated user from a bearer token"""
        pass


class IBillingStore(ABC):
    """Billing tables as seen by the webhook handlers.

    Conditional operations evaluate their precondition in the database and
    report how many rows they actually changed, so concurrent deliveries of
    the same event cannot both observe a first transition.
    """

    @abstractmethod
    async def activate_profile(self, user_id: str) -> int:
        """Set subscription_status to active unless it already is; returns rows changed"""
        pass

    @abstractmethod
    async def deactivate_profile(self, user_id: str) -> int:
        """Set subscription_status to inactive unconditionally"""
        pass

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Profile slice: display_name, first_name, last_name, referrer_id, subscription_status"""
        pass

    @abstractmethod
    async def get_referrer_id(self, user_id: str) -> Optional[str]:
        """Referrer of a user; store errors propagate"""
        pass

    @abstractmethod
    async def get_private_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Private slice: email, paypal_customer_id, paypal_payout_email, payout_setup_completed"""
        pass

    @abstractmethod
    async def set_payout_email_if_missing(self, user_id: str, email: str) -> bool:
        """Write the payout email only where none is stored yet"""
        pass

    @abstractmethod
    async def mark_payout_setup_completed(self, user_id: str) -> bool:
        pass

    @abstractmethod
    async def upsert_subscription(self, record: Dict[str, Any]) -> str:
        """Insert or update by provider_subscription_id; returns 'created' or 'updated'"""
        pass

    @abstractmethod
    async def update_subscription_status(
        self,
        provider_subscription_id: str,
        status: str,
        canceled_at: Optional[datetime] = None,
    ) -> int:
        pass

    @abstractmethod
    async def commission_exists(self, provider_transfer_id: str) -> bool:
        pass

    @abstractmethod
    async def insert_commission(self, record: Dict[str, Any]) -> bool:
        """Insert a commission; False when the transfer id is already recorded"""
        pass

    @abstractmethod
    async def enqueue_commission_notification(self, record: Dict[str, Any]) -> bool:
        pass
