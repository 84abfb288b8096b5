"""MonimeClient against httpx.MockTransport."""

import hashlib
import hmac
import json

import httpx
import pytest

from src.ft_common.errors import PaymentNotConfiguredError, ProviderError
from src.ft_payment.infrastructure.monime_client import MonimeClient


def make_client(handler, **overrides) -> MonimeClient:
    kwargs = {
        "base_url": "https://api.monime.test/",
        "api_key": "key-123",
        "secret_key": "whsec",
        "space_id": "spc-1",
        "public_base_url": "https://farmtrust.test",
        "transport": httpx.MockTransport(handler),
    }
    kwargs.update(overrides)
    return MonimeClient(**kwargs)


async def create(client: MonimeClient):
    return await client.create_mobile_money_payment(
        amount=450000,
        phone="23276123456",
        method="orange_money",
        reference="FT_REF_1_ABC",
        description="FarmTrust Order - 1 item",
        customer_name="Aminata Kamara",
    )


class TestCreatePayment:
    async def test_request_shape(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                201, json={"data": {"id": "pay_1", "reference": "FT_REF_1_ABC",
                                    "status": "pending", "checkout_url": "https://c/1"}}
            )

        payment = await create(make_client(handler))
        assert seen["url"] == "https://api.monime.test/v1/payments"
        assert seen["headers"]["authorization"] == "Bearer key-123"
        assert seen["headers"]["x-space-id"] == "spc-1"
        assert seen["body"]["amount"] == 450000
        assert seen["body"]["currency"] == "SLE"
        assert seen["body"]["callback_url"] == "https://farmtrust.test/api/v1/payments/monime/webhook"
        assert payment.payment_id == "pay_1"
        assert payment.checkout_url == "https://c/1"

    async def test_server_error_is_provider_error(self) -> None:
        client = make_client(lambda r: httpx.Response(502, json={"message": "upstream down"}))
        with pytest.raises(ProviderError, match="upstream down"):
            await create(client)

    async def test_timeout_is_provider_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ProviderError, match="timed out"):
            await create(make_client(handler))

    async def test_unconfigured_client_never_calls_out(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler, api_key="", space_id="")
        assert client.missing_config() == ["MONIME_API_KEY", "MONIME_SPACE_ID"]
        with pytest.raises(PaymentNotConfiguredError):
            await create(client)
        assert calls == []


class TestVerifyPayment:
    async def test_unwrapped_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/payments/FT_REF_1_ABC"
            return httpx.Response(
                200, json={"id": "pay_1", "reference": "FT_REF_1_ABC",
                           "status": "completed", "transaction_id": "txn_9"}
            )

        payment = await make_client(handler).verify_payment("FT_REF_1_ABC")
        assert payment.status == "completed"
        assert payment.transaction_id == "txn_9"

    async def test_non_json_body(self) -> None:
        client = make_client(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError):
            await client.verify_payment("FT_REF_1_ABC")


class TestWebhookSignature:
    def test_valid_and_invalid(self) -> None:
        client = make_client(lambda r: httpx.Response(200))
        body = b'{"event":"payment.completed"}'
        digest = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()
        assert client.validate_webhook_signature(body, f"sha256={digest}")
        assert not client.validate_webhook_signature(body, digest)
        assert not client.validate_webhook_signature(body + b" ", f"sha256={digest}")
        assert not client.validate_webhook_signature(body, "")
