import pytest
import json
import base64
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch
import httpx
from httpx import Request, Response
from eth_account import Account
from x402link.clients.httpx import HttpxHooks, x402_payment_hooks, x402HttpxClient
from x402link.clients.base import (
    PaymentError,
    PaymentAmountExceededError,
    PaymentRejectedError,
    InvalidPaymentRequiredError,
)
from x402link.encoding import decode_payment
from x402link.types import PaymentRequirements, x402PaymentRequiredResponse


@pytest.fixture
def account():
    return Account.create()


@pytest.fixture
def payment_requirements():
    return PaymentRequirements(
        scheme="exact",
        network="base-sepolia",
        asset="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        pay_to="0x0000000000000000000000000000000000000000",
        max_amount_required="10000",
        resource="https://example.com",
        description="test",
        max_timeout_seconds=1000,
        mime_type="text/plain",
        output_schema=None,
        extra={
            "name": "USD Coin",
            "version": "2",
        },
    )


@pytest.fixture
def hooks(account):
    hooks_dict = x402_payment_hooks(account)
    return hooks_dict["response"][0].__self__


def challenge_body(payment_requirements) -> bytes:
    payment_response = x402PaymentRequiredResponse(
        x402_version=1,
        accepts=[payment_requirements],
        error="No X-PAYMENT header provided",
    )
    return json.dumps(payment_response.model_dump(by_alias=True)).encode()


class PaywalledServer:
    """MockTransport handler that charges once per request without X-PAYMENT."""

    def __init__(self, payment_requirements, accept_payment=True):
        self.payment_requirements = payment_requirements
        self.accept_payment = accept_payment
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        # the retry reuses the Request object, so keep what was on the wire
        self.requests.append((dict(request.headers), request.content))
        if "X-PAYMENT" not in request.headers or not self.accept_payment:
            return httpx.Response(
                402,
                content=challenge_body(self.payment_requirements),
                headers={"Content-Type": "application/json"},
            )
        payment_result = {"success": True, "network": "base-sepolia"}
        return httpx.Response(
            200,
            json={"shortCode": "abc123"},
            headers={
                "X-PAYMENT-RESPONSE": base64.b64encode(
                    json.dumps(payment_result).encode()
                ).decode()
            },
        )


async def test_on_request_leaves_request_untouched(hooks):
    request = Request("GET", "https://example.com")

    assert await hooks.on_request(request) is None
    assert "X-PAYMENT" not in request.headers
    assert not request.extensions.get("x402_is_retry")


async def test_on_response_success(hooks):
    response = Response(200)
    result = await hooks.on_response(response)
    assert result == response


async def test_on_response_non_402(hooks):
    response = Response(404)
    result = await hooks.on_response(response)
    assert result == response


async def test_on_response_retry(hooks):
    # A 402 answering the paid retry is handed back untouched
    response = Response(402)
    response.request = Request("GET", "https://example.com")
    response.request.extensions["x402_is_retry"] = True
    result = await hooks.on_response(response)
    assert result == response


async def test_on_response_missing_request(hooks):
    response = Response(402)
    with pytest.raises(
        PaymentError,
        match="Failed to handle payment: The request instance has not been set on this response.",
    ):
        await hooks.on_response(response)


async def test_on_response_payment_flow(hooks, payment_requirements):
    response = Response(402)
    response.request = Request("GET", "https://example.com")
    response._content = challenge_body(payment_requirements)

    payment_result = {
        "success": True,
        "transaction": "0x1234",
        "network": "base-sepolia",
        "payer": "0x5678",
    }
    retry_response = Response(200)
    retry_response.headers = {
        "X-Payment-Response": base64.b64encode(
            json.dumps(payment_result).encode()
        ).decode()
    }

    mock_client = AsyncMock()
    mock_client.send.return_value = retry_response
    mock_client.__aenter__.return_value = mock_client

    hooks.client.select_payment_requirements = MagicMock(
        return_value=payment_requirements
    )
    mock_header = "mock_payment_header"
    hooks.client.create_payment_header_async = AsyncMock(return_value=mock_header)

    with patch("x402link.clients.httpx.AsyncClient", return_value=mock_client):
        result = await hooks.on_response(response)

    assert result.status_code == 200
    assert "X-Payment-Response" in result.headers

    assert mock_client.send.called
    retry_request = mock_client.send.call_args[0][0]
    assert retry_request.headers["X-Payment"] == mock_header
    assert (
        retry_request.headers["Access-Control-Expose-Headers"]
        == "X-PAYMENT-RESPONSE"
    )

    hooks.client.select_payment_requirements.assert_called_once_with(
        [payment_requirements]
    )
    hooks.client.create_payment_header_async.assert_called_once_with(
        payment_requirements, 1
    )


async def test_on_response_unsupported_scheme(hooks, payment_requirements):
    payment_requirements.scheme = "unsupported"
    response = Response(402)
    response.request = Request("GET", "https://example.com")
    response._content = challenge_body(payment_requirements)

    with pytest.raises(PaymentError):
        await hooks.on_response(response)


async def test_on_response_invalid_json(hooks):
    response = Response(402)
    response.request = Request("GET", "https://example.com")
    response._content = b"invalid json"

    with pytest.raises(InvalidPaymentRequiredError):
        await hooks.on_response(response)


async def test_concurrent_payment_requests(hooks, payment_requirements):
    """Concurrent 402s each get their own flow and their own retry."""
    responses = []
    for i in range(5):
        response = Response(402)
        response.request = Request("GET", f"https://example.com/request-{i}")
        response._content = challenge_body(payment_requirements)
        responses.append(response)

    retry_response = Response(200)

    mock_client = AsyncMock()
    mock_client.send.return_value = retry_response
    mock_client.__aenter__.return_value = mock_client

    headers = iter(f"payment-{i}" for i in range(5))
    hooks.client.create_payment_header_async = AsyncMock(
        side_effect=lambda *args: next(headers)
    )

    with patch("x402link.clients.httpx.AsyncClient", return_value=mock_client):
        results = await asyncio.gather(
            *[hooks.on_response(response) for response in responses]
        )

    for i, result in enumerate(results):
        assert result.status_code == 200, f"Request {i} failed with status {result.status_code}"

    for i, response in enumerate(responses):
        assert response.request.extensions.get("x402_is_retry") is True, f"Request {i} was not marked as retry"

    assert mock_client.send.call_count == 5
    sent_headers = {
        call_args[0][0].headers["X-Payment"] for call_args in mock_client.send.call_args_list
    }
    assert sent_headers == {f"payment-{i}" for i in range(5)}


async def test_client_pays_and_retries(account, payment_requirements):
    server = PaywalledServer(payment_requirements)

    async with x402HttpxClient(
        account=account, transport=httpx.MockTransport(server)
    ) as client:
        response = await client.post(
            "https://short.example/api/create-short-url",
            json={"originalUrl": "https://example.com"},
        )

    assert response.status_code == 200
    assert response.json() == {"shortCode": "abc123"}
    assert "X-PAYMENT-RESPONSE" in response.headers

    assert len(server.requests) == 2
    (first_headers, _), (retry_headers, retry_content) = server.requests
    assert "x-payment" not in first_headers
    assert json.loads(retry_content) == {"originalUrl": "https://example.com"}

    payment = decode_payment(retry_headers["x-payment"])
    assert payment["payload"]["authorization"]["from"] == account.address
    assert payment["payload"]["authorization"]["value"] == "10000"


async def test_client_second_402_raises(account, payment_requirements):
    server = PaywalledServer(payment_requirements, accept_payment=False)

    async with x402HttpxClient(
        account=account, transport=httpx.MockTransport(server)
    ) as client:
        with pytest.raises(PaymentRejectedError) as exc_info:
            await client.get("https://short.example/paid")

    # exactly one payment attempt
    assert len(server.requests) == 2
    assert exc_info.value.response.status_code == 402


async def test_client_ceiling_sends_once(payment_requirements):
    class Signer:
        address = "0x1234567890123456789012345678901234567890"
        sign_typed_data = MagicMock(return_value=b"\x01" * 65)

    signer = Signer()
    server = PaywalledServer(payment_requirements)

    async with x402HttpxClient(
        account=signer, max_value=500, transport=httpx.MockTransport(server)
    ) as client:
        with pytest.raises(PaymentAmountExceededError):
            await client.get("https://short.example/paid")

    assert len(server.requests) == 1
    signer.sign_typed_data.assert_not_called()


async def test_client_free_resource_not_charged(account):
    def handler(request):
        return httpx.Response(200, json={"status": "ok"})

    async with x402HttpxClient(
        account=account, transport=httpx.MockTransport(handler)
    ) as client:
        response = await client.get("https://short.example/health")

    assert response.status_code == 200
    assert "X-PAYMENT" not in response.request.headers


def test_x402_payment_hooks(account):
    hooks_dict = x402_payment_hooks(account)
    assert "request" in hooks_dict
    assert "response" in hooks_dict
    assert len(hooks_dict["request"]) == 1
    assert len(hooks_dict["response"]) == 1

    hooks_instance = hooks_dict["response"][0].__self__
    assert isinstance(hooks_instance, HttpxHooks)
    assert hooks_instance.client.account == account
    assert hooks_instance.client.max_value is None

    hooks_dict = x402_payment_hooks(account, max_value=1000)
    hooks_instance = hooks_dict["response"][0].__self__
    assert hooks_instance.client.max_value == 1000


def test_x402_httpx_client(account):
    client = x402HttpxClient(account=account)
    assert "request" in client.event_hooks
    assert "response" in client.event_hooks

    hooks_instance = client.event_hooks["response"][0].__self__
    assert hooks_instance.client.account == account
    assert hooks_instance.client.max_value is None

    client = x402HttpxClient(account=account, max_value=1000)
    hooks_instance = client.event_hooks["response"][0].__self__
    assert hooks_instance.client.max_value == 1000

    def custom_selector(accepts, network_filter=None, scheme_filter=None, max_value=None):
        return accepts[0]

    client = x402HttpxClient(
        account=account, payment_requirements_selector=custom_selector
    )
    hooks_instance = client.event_hooks["response"][0].__self__
    assert hooks_instance.client._payment_requirements_selector is custom_selector
