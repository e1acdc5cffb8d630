"""
Subscription verification endpoint called by the client after PayPal approval
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from billing_webhooks.core.factory import ServiceFactory
from billing_webhooks.core.interfaces import IAuthService
from billing_webhooks.core.responses import success_response
from billing_webhooks.services.subscription_verification import SubscriptionVerificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/paypal", tags=["paypal", "subscriptions"])

security = HTTPBearer(auto_error=False)


def get_auth_service() -> IAuthService:
    return ServiceFactory.get_auth_service()


def get_verification_service() -> SubscriptionVerificationService:
    return ServiceFactory.create_verification_service()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    auth_service: IAuthService = Depends(get_auth_service),
):
    return await auth_service.verify_auth(credentials)


@router.post("/verify-subscription")
async def verify_subscription(
    current_user=Depends(get_current_user),
    verification_service: SubscriptionVerificationService = Depends(get_verification_service),
):
    # PayPalAPIError is mapped to 502 by the global handlers
    result = await verification_service.verify_user_subscription(current_user.id)

    message = "subscription verified" if result.get("verified") else "subscription not active"
    return success_response(data=result, message=message)
