"""PayPal REST API client"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx


logger = logging.getLogger(__name__)


class PayPalAPIError(RuntimeError):
    """PayPal REST API error"""

    def __init__(
        self,
        message: str,
        status_code: int,
        payload: Optional[Dict[str, Any]] = None,
        *,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}
        self.code = code or self._extract_error_code()

    def _extract_error_code(self) -> Optional[str]:
        """PayPal puts the error name at the top level (`name`), OAuth errors use `error`"""

        if not isinstance(self.payload, dict):
            return None
        name = self.payload.get("name")
        if isinstance(name, str) and name:
            return name
        error = self.payload.get("error")
        if isinstance(error, str) and error:
            return error
        return None

    @property
    def debug_id(self) -> Optional[str]:
        if isinstance(self.payload, dict):
            return self.payload.get("debug_id")
        return None


class PayPalClient:
    """Async client for the PayPal endpoints the webhook relies on"""

    ERROR_CODE_MESSAGES: Dict[str, str] = {
        "RESOURCE_NOT_FOUND": "PayPal subscription not found.",
        "INVALID_RESOURCE_ID": "PayPal resource id is invalid.",
        "invalid_client": "PayPal client credentials were rejected.",
        "AUTHENTICATION_FAILURE": "PayPal authentication failed.",
        "NOT_AUTHORIZED": "PayPal denied access to the resource.",
        "VALIDATION_ERROR": "PayPal rejected the request parameters.",
        "RATE_LIMIT_REACHED": "PayPal rate limit reached.",
    }

    STATUS_MESSAGES: Dict[int, str] = {
        400: "PayPal rejected the request.",
        401: "PayPal authentication failed.",
        403: "PayPal denied access to the resource.",
        404: "PayPal resource not found.",
        422: "PayPal could not process the request.",
        429: "PayPal rate limit reached.",
        500: "PayPal server error.",
        503: "PayPal service unavailable.",
    }

    RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}

    def __init__(
        self,
        client_id: str,
        secret_key: str,
        base_url: str = "https://api-m.sandbox.paypal.com",
        timeout: float = 15.0,
        *,
        max_retries: int = 0,
        backoff_factor: float = 0.5,
    ) -> None:
        if not client_id or not client_id.strip() or not secret_key or not secret_key.strip():
            raise ValueError("PayPal client id and secret are not configured.")

        self.client_id = client_id
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(0, int(max_retries))
        self.backoff_factor = max(0.0, float(backoff_factor))

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: Dict[str, str],
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, str]] = None,
        auth: Optional[httpx.BasicAuth] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"

        for attempt in range(self.max_retries + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, url, headers=headers, json=json, data=data, auth=auth
                    )
            except httpx.RequestError as exc:
                logger.warning(
                    "[PAYPAL] API request network error: %s %s attempt=%s error=%s",
                    method,
                    path,
                    attempt + 1,
                    exc,
                )

                if attempt == self.max_retries:
                    raise PayPalAPIError(
                        "PayPal network error.",
                        status_code=0,
                        payload={"message": str(exc)},
                        code="network_error",
                    ) from exc

                await self._sleep_backoff(attempt)
                continue

            if response.status_code >= 400:
                payload = self._safe_json(response)
                message, code = self._resolve_error_message(payload, response.status_code)

                error = PayPalAPIError(message, response.status_code, payload, code=code)

                if self._is_retryable_status(response.status_code) and attempt < self.max_retries:
                    logger.warning(
                        "[PAYPAL] API request retry: %s %s status=%s code=%s attempt=%s",
                        method,
                        path,
                        response.status_code,
                        error.code,
                        attempt + 1,
                    )
                    await self._sleep_backoff(attempt)
                    continue

                logger.error(
                    "[PAYPAL] API request failed: %s %s status=%s code=%s debug_id=%s",
                    method,
                    path,
                    response.status_code,
                    error.code,
                    error.debug_id,
                )
                raise error

            try:
                return response.json()
            except Exception as exc:  # pragma: no cover
                raise PayPalAPIError(
                    "PayPal response could not be parsed.",
                    response.status_code,
                    payload={"message": str(exc)},
                    code="parse_error",
                ) from exc

        raise PayPalAPIError("PayPal request failed repeatedly.", status_code=0)

    async def get_access_token(self) -> str:
        """Exchange client credentials for a short-lived bearer token"""

        payload = await self._send(
            "POST",
            "/v1/oauth2/token",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={"grant_type": "client_credentials"},
            auth=httpx.BasicAuth(self.client_id, self.secret_key),
        )
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise PayPalAPIError(
                "PayPal token response did not contain an access token.",
                status_code=200,
                payload=payload if isinstance(payload, dict) else {},
                code="missing_access_token",
            )
        return token

    async def get_subscription(self, subscription_id: str, access_token: Optional[str] = None) -> Dict[str, Any]:
        """Fetch a subscription resource (status, billing_info, subscriber, custom_id)"""

        token = access_token or await self.get_access_token()
        return await self._send(
            "GET",
            f"/v1/billing/subscriptions/{subscription_id}",
            headers=self._bearer_headers(token),
        )

    async def verify_webhook_signature(
        self,
        verification_payload: Dict[str, Any],
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Ask PayPal to validate a webhook transmission"""

        token = access_token or await self.get_access_token()
        return await self._send(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            headers=self._bearer_headers(token),
            json=verification_payload,
        )

    @staticmethod
    def _bearer_headers(token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _sleep_backoff(self, attempt: int) -> None:
        delay = self.backoff_factor * (2**attempt)
        if delay > 0:
            await asyncio.sleep(delay)

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.RETRYABLE_STATUS

    def _resolve_error_message(self, payload: Dict[str, Any], status_code: int) -> tuple[str, Optional[str]]:
        code = None
        if isinstance(payload, dict):
            code = payload.get("name") or payload.get("error")
            if isinstance(code, str) and code in self.ERROR_CODE_MESSAGES:
                return self.ERROR_CODE_MESSAGES[code], code

            message = payload.get("message") or payload.get("error_description")
            if isinstance(message, str) and message.strip():
                return message, code if isinstance(code, str) else None

        status_message = self.STATUS_MESSAGES.get(status_code)
        if status_message:
            return status_message, None

        return "PayPal request failed.", None

    @staticmethod
    def _safe_json(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
            return payload if isinstance(payload, dict) else {"data": payload}
        except Exception:
            return {"message": response.text}
