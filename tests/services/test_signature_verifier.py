"""WebhookSignatureVerifier tests"""
import json

import pytest

from billing_webhooks.services.paypal_client import PayPalAPIError
from billing_webhooks.services.signature_verifier import WebhookSignatureVerifier
from tests.mocks import StubPayPalClient, activation_event

SIGNED_HEADERS = {
    "paypal-auth-algo": "SHA256withRSA",
    "paypal-cert-url": "https://api.paypal.com/cert.pem",
    "paypal-transmission-id": "tx-1",
    "paypal-transmission-sig": "sig",
    "paypal-transmission-time": "2025-01-01T00:00:00Z",
}


def _body() -> bytes:
    return json.dumps(activation_event()).encode("utf-8")


@pytest.mark.asyncio
async def test_valid_signature_is_accepted():
    paypal = StubPayPalClient(verification_status="SUCCESS")
    verifier = WebhookSignatureVerifier(paypal, "WH-ID")

    assert await verifier.verify(_body(), SIGNED_HEADERS) is True

    request = paypal.verification_requests[0]
    assert request["webhook_id"] == "WH-ID"
    assert request["transmission_id"] == "tx-1"
    assert request["webhook_event"]["resource"]["id"] == "SUB-1"


@pytest.mark.asyncio
async def test_failed_status_is_rejected():
    verifier = WebhookSignatureVerifier(StubPayPalClient(verification_status="FAILURE"), "WH-ID")
    assert await verifier.verify(_body(), SIGNED_HEADERS) is False


@pytest.mark.asyncio
async def test_missing_header_is_rejected_without_calling_paypal():
    paypal = StubPayPalClient()
    verifier = WebhookSignatureVerifier(paypal, "WH-ID")
    headers = {k: v for k, v in SIGNED_HEADERS.items() if k != "paypal-transmission-sig"}

    assert await verifier.verify(_body(), headers) is False
    assert paypal.verification_requests == []


@pytest.mark.asyncio
async def test_invalid_json_is_rejected():
    verifier = WebhookSignatureVerifier(StubPayPalClient(), "WH-ID")
    assert await verifier.verify(b"{not json", SIGNED_HEADERS) is False


@pytest.mark.asyncio
async def test_verification_error_is_rejected():
    class _FailingPayPal(StubPayPalClient):
        async def verify_webhook_signature(self, verification_payload, access_token=None):
            raise PayPalAPIError("PayPal server error.", 500)

    verifier = WebhookSignatureVerifier(_FailingPayPal(), "WH-ID")
    assert await verifier.verify(_body(), SIGNED_HEADERS) is False


@pytest.mark.asyncio
async def test_unconfigured_webhook_id_skips_verification():
    paypal = StubPayPalClient(verification_status="FAILURE")
    verifier = WebhookSignatureVerifier(paypal, None)

    assert verifier.enabled is False
    assert await verifier.verify(b"anything", {}) is True
    assert paypal.verification_requests == []
