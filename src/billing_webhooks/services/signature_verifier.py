"""
PayPal webhook signature verification.

PayPal signs each transmission with a certificate-backed signature. Rather
than validating the certificate chain locally, the transmission headers and
the event body are posted back to PayPal's verify-webhook-signature endpoint
together with the configured webhook id.
"""
import json
import logging
from typing import Any, Dict, Mapping, Optional

from billing_webhooks.services.paypal_client import PayPalClient

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class WebhookSignatureVerifier:

    def __init__(self, paypal_client: PayPalClient, webhook_id: Optional[str]):
        self.paypal_client = paypal_client
        self.webhook_id = webhook_id

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_id)

    @staticmethod
    def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
        value = headers.get(name)
        if value is None:
            # plain dicts are case sensitive, starlette Headers are not
            value = headers.get(name.title())
        return value

    def build_verification_payload(self, raw_body: bytes, headers: Mapping[str, str]) -> Optional[Dict[str, Any]]:
        fields: Dict[str, Any] = {}
        for key, header_name in SIGNATURE_HEADERS.items():
            value = self._header(headers, header_name)
            if not value:
                logger.warning("[PAYPAL] missing signature header: %s", header_name)
                return None
            fields[key] = value

        try:
            event = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("[PAYPAL] webhook body is not valid JSON; cannot verify")
            return None

        fields["webhook_id"] = self.webhook_id
        fields["webhook_event"] = event
        return fields

    async def verify(self, raw_body: bytes, headers: Mapping[str, str]) -> bool:
        """Return True when PayPal confirms the transmission, or when verification is disabled"""

        if not self.enabled:
            logger.warning("[PAYPAL] PAYPAL_WEBHOOK_ID not configured; skipping signature verification")
            return True

        payload = self.build_verification_payload(raw_body, headers)
        if payload is None:
            return False

        try:
            access_token = await self.paypal_client.get_access_token()
            result = await self.paypal_client.verify_webhook_signature(payload, access_token=access_token)
        except Exception as e:
            logger.error("[PAYPAL] signature verification request failed: %s", e)
            return False

        status = result.get("verification_status") if isinstance(result, dict) else None
        if status != "SUCCESS":
            logger.error(
                "[PAYPAL] signature rejected: status=%s transmission_id=%s",
                status,
                payload.get("transmission_id"),
            )
            return False

        logger.info("[PAYPAL] signature verified: transmission_id=%s", payload.get("transmission_id"))
        return True
