"""Monime client: async HTTP client for the Monime payment API.

One instance per process, built in the application lifespan and closed on
shutdown. Every transport failure, timeout or non-2xx answer becomes a
ProviderError so callers can treat them uniformly as retryable.
"""

import hashlib
import hmac
import logging
import time
from typing import Any

import httpx

from src.ft_common.errors import PaymentNotConfiguredError, ProviderError
from src.ft_common.leones import CURRENCY
from src.ft_payment.domain.models import ProviderPayment

logger = logging.getLogger("ft.monime")


class MonimeClient:
    """HTTP client for Monime mobile-money payments."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        secret_key: str,
        space_id: str,
        environment: str = "sandbox",
        public_base_url: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._secret_key = secret_key
        self._space_id = space_id
        self._environment = environment
        self._public_base_url = public_base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

        if self.missing_config():
            logger.warning(
                "Monime credentials not fully configured: missing %s",
                ", ".join(self.missing_config()),
            )
        else:
            logger.info("Monime client initialized: %s (%s)", self._base_url, environment)

    def missing_config(self) -> list[str]:
        missing = []
        if not self._api_key:
            missing.append("MONIME_API_KEY")
        if not self._secret_key:
            missing.append("MONIME_SECRET_KEY")
        if not self._space_id:
            missing.append("MONIME_SPACE_ID")
        return missing

    def is_configured(self) -> bool:
        return not self.missing_config()

    def ensure_configured(self) -> None:
        missing = self.missing_config()
        if missing:
            raise PaymentNotConfiguredError(missing)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "X-API-Key": self._api_key,
            "X-Space-ID": self._space_id,
        }

    async def create_mobile_money_payment(
        self,
        amount: int,
        phone: str,
        method: str,
        reference: str,
        description: str,
        customer_name: str,
    ) -> ProviderPayment:
        """Request a mobile-money charge. `amount` is whole Leone, sent as is."""
        self.ensure_configured()
        payload = {
            "amount": amount,
            "currency": CURRENCY,
            "reference": reference,
            "description": description,
            "customer": {"name": customer_name, "phone": phone},
            "channel": "mobile_money",
            "provider": method,
            "phone": phone,
            "space_id": self._space_id,
            "callback_url": f"{self._public_base_url}/api/v1/payments/monime/webhook",
            "return_url": f"{self._public_base_url}/orders/success",
            "metadata": {
                "order_type": "farmtrust_order",
                "source": "farmtrust",
                "environment": self._environment,
            },
        }
        data = await self._request("POST", "/v1/payments", json=payload)
        payment = ProviderPayment.from_provider(data)
        logger.info(
            "Monime payment created: reference=%s payment_id=%s status=%s",
            reference, payment.payment_id, payment.status,
        )
        return payment

    async def verify_payment(self, reference: str) -> ProviderPayment:
        self.ensure_configured()
        data = await self._request("GET", f"/v1/payments/{reference}")
        return ProviderPayment.from_provider(data)

    def validate_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """Check `sha256=<hex HMAC-SHA256(secret, body)>` in constant time."""
        if not self._secret_key or not signature:
            return False
        expected = hmac.new(
            self._secret_key.encode(), payload, hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(f"sha256={expected}", signature)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        start_time = time.time()
        try:
            response = await self._client.request(
                method, f"{self._base_url}{path}", headers=self._headers(), **kwargs
            )
        except httpx.TimeoutException as e:
            logger.error("Monime %s %s timed out", method, path)
            raise ProviderError("request timed out") from e
        except httpx.HTTPError as e:
            logger.error("Monime %s %s failed: %s", method, path, e)
            raise ProviderError(str(e) or type(e).__name__) from e

        latency_ms = int((time.time() - start_time) * 1000)
        logger.debug("Monime %s %s -> %d (%dms)", method, path, response.status_code, latency_ms)

        if response.is_error:
            raise ProviderError(_error_detail(response))
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("invalid JSON in provider response") from e
        # Some endpoints wrap the payment in a "data" envelope
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        if not isinstance(data, dict):
            raise ProviderError("unexpected provider response shape")
        return data

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if message:
            return f"HTTP {response.status_code}: {message}"
    return f"HTTP {response.status_code}: {response.reason_phrase}"
