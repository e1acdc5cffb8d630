"""
Service factory

Webhook services are built per request: each delivery gets its own store and
provider client, nothing mutable is shared between deliveries.
"""
from dataclasses import dataclass
from decimal import Decimal
import logging

from supabase import create_client

from billing_webhooks.core.config import settings, Settings
from billing_webhooks.core.interfaces import IAuthService
from billing_webhooks.core.responses import ConfigurationException
from billing_webhooks.database_helper import DatabaseHelper
from billing_webhooks.services.auth_service import AuthService
from billing_webhooks.services.commission_ledger import CommissionLedgerWriter
from billing_webhooks.services.notification_dispatcher import NotificationDispatcher
from billing_webhooks.services.paypal_client import PayPalClient
from billing_webhooks.services.signature_verifier import WebhookSignatureVerifier
from billing_webhooks.services.subscription_reconciler import SubscriptionReconciler
from billing_webhooks.services.subscription_verification import SubscriptionVerificationService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PayPalWebhookServices:
    verifier: WebhookSignatureVerifier
    reconciler: SubscriptionReconciler


class ServiceFactory:

    @staticmethod
    def create_paypal_client(config: Settings = settings) -> PayPalClient:
        if not config.PAYPAL_CLIENT_ID or not config.PAYPAL_SECRET_KEY:
            raise ConfigurationException("PayPal credentials not configured")
        return PayPalClient(
            client_id=config.PAYPAL_CLIENT_ID,
            secret_key=config.PAYPAL_SECRET_KEY,
            base_url=config.PAYPAL_API_BASE_URL,
            timeout=config.PAYPAL_API_TIMEOUT,
            max_retries=config.PAYPAL_API_MAX_RETRIES,
            backoff_factor=config.PAYPAL_API_BACKOFF_FACTOR,
        )

    @staticmethod
    def create_store(config: Settings = settings) -> DatabaseHelper:
        """Service-role store; bypasses row-level policies to act for any user"""
        if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE_KEY:
            raise ConfigurationException("Supabase service credentials not configured")
        admin_client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE_KEY)
        return DatabaseHelper(admin_client)

    @staticmethod
    def create_notifier(config: Settings = settings) -> NotificationDispatcher:
        return NotificationDispatcher(
            base_url=config.notification_base_url,
            service_key=config.SUPABASE_SERVICE_ROLE_KEY,
            timeout=config.NOTIFICATION_TIMEOUT,
        )

    @staticmethod
    def create_reconciler(config: Settings = settings) -> SubscriptionReconciler:
        paypal_client = ServiceFactory.create_paypal_client(config)
        store = ServiceFactory.create_store(config)
        ledger = CommissionLedgerWriter(
            store,
            amount=Decimal(str(config.COMMISSION_AMOUNT)),
            currency=config.COMMISSION_CURRENCY,
        )
        return SubscriptionReconciler(
            store,
            paypal_client,
            ServiceFactory.create_notifier(config),
            ledger,
            default_amount=Decimal(str(config.SUBSCRIPTION_DEFAULT_AMOUNT)),
            default_currency=config.SUBSCRIPTION_DEFAULT_CURRENCY,
        )

    @staticmethod
    def create_webhook_services(config: Settings = settings) -> PayPalWebhookServices:
        reconciler = ServiceFactory.create_reconciler(config)
        verifier = WebhookSignatureVerifier(reconciler.paypal_client, config.PAYPAL_WEBHOOK_ID)
        return PayPalWebhookServices(verifier=verifier, reconciler=reconciler)

    @staticmethod
    def create_verification_service(config: Settings = settings) -> SubscriptionVerificationService:
        return SubscriptionVerificationService(ServiceFactory.create_reconciler(config))

    @staticmethod
    def get_auth_service(config: Settings = settings) -> IAuthService:
        if not config.SUPABASE_URL or not config.SUPABASE_ANON_KEY:
            raise ConfigurationException("Supabase auth is not configured")
        return AuthService(create_client(config.SUPABASE_URL, config.SUPABASE_ANON_KEY))
