"""Outbound billing notifications (edge-function email senders)"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from billing_webhooks.core.responses import mask_email

logger = logging.getLogger(__name__)


CONFIRMATION_FUNCTION = "send-signup-confirmation"
RENEWAL_FUNCTION = "send-renewal-notification"
CANCELLATION_FUNCTION = "send-cancellation-notification"
PAYMENT_FAILED_FUNCTION = "send-payment-failed-notification"


@dataclass(slots=True)
class DispatchResult:
    """Outcome of one notification call; failures are reported, never raised"""

    function_name: str
    ok: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class NotificationDispatcher:

    def __init__(self, base_url: str, service_key: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout

    async def _post(self, function_name: str, body: Dict[str, Any]) -> DispatchResult:
        if not body.get("email"):
            return DispatchResult(function_name, ok=False, error="missing recipient email")

        headers = {"Content-Type": "application/json"}
        if self.service_key:
            headers["Authorization"] = f"Bearer {self.service_key}"

        payload = {key: _jsonable(value) for key, value in body.items()}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/{function_name}", headers=headers, json=payload)
        except httpx.HTTPError as exc:
            return DispatchResult(function_name, ok=False, error=str(exc))

        if response.status_code >= 400:
            return DispatchResult(
                function_name,
                ok=False,
                status_code=response.status_code,
                error=response.text[:200],
            )
        return DispatchResult(function_name, ok=True, status_code=response.status_code)

    async def dispatch(self, function_name: str, body: Dict[str, Any]) -> DispatchResult:
        """Send one notification and log the outcome"""

        result = await self._post(function_name, body)
        if result.ok:
            logger.info("[PAYPAL] notification sent: %s to=%s", function_name, mask_email(body.get("email")))
        else:
            logger.warning(
                "[PAYPAL] notification failed: %s to=%s status=%s error=%s",
                function_name,
                mask_email(body.get("email")),
                result.status_code,
                result.error,
            )
        return result

    async def send_confirmation(self, email: str, name: str) -> DispatchResult:
        return await self.dispatch(CONFIRMATION_FUNCTION, {"email": email, "name": name})

    async def send_renewal(
        self,
        email: str,
        name: str,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
        next_billing_date: Optional[datetime] = None,
    ) -> DispatchResult:
        return await self.dispatch(RENEWAL_FUNCTION, {
            "email": email,
            "name": name,
            "amount": amount,
            "currency": currency,
            "nextBillingDate": next_billing_date,
        })

    async def send_cancellation(self, email: str, name: str, end_date: datetime, status: str) -> DispatchResult:
        return await self.dispatch(CANCELLATION_FUNCTION, {
            "email": email,
            "name": name,
            "endDate": end_date,
            "status": status,
        })

    async def send_payment_failed(
        self,
        email: str,
        name: str,
        amount: Optional[Decimal] = None,
        currency: Optional[str] = None,
        next_attempt_date: Optional[datetime] = None,
    ) -> DispatchResult:
        return await self.dispatch(PAYMENT_FAILED_FUNCTION, {
            "email": email,
            "name": name,
            "amount": amount,
            "currency": currency,
            "nextAttemptDate": next_attempt_date,
        })
