import pytest
from pydantic import ValidationError

from x402link.types import (
    PaymentRequirements,
    x402PaymentRequiredResponse,
    ExactPaymentPayload,
    EIP3009Authorization,
    VerifyResponse,
    SettleResponse,
    PaymentPayload,
)


def make_requirements(**overrides):
    fields = dict(
        scheme="exact",
        network="base-sepolia",
        max_amount_required="1000",
        resource="https://short.example/api/create-short-url",
        pay_to="0x123",
        max_timeout_seconds=60,
        asset="0x0000000000000000000000000000000000000000",
        extra={"name": "USD Coin", "version": "2"},
    )
    fields.update(overrides)
    return PaymentRequirements(**fields)


def test_payment_requirements_serde():
    original = make_requirements()
    expected = {
        "scheme": "exact",
        "network": "base-sepolia",
        "maxAmountRequired": "1000",
        "resource": "https://short.example/api/create-short-url",
        "description": "",
        "mimeType": "",
        "outputSchema": None,
        "payTo": "0x123",
        "maxTimeoutSeconds": 60,
        "asset": "0x0000000000000000000000000000000000000000",
        "extra": {"name": "USD Coin", "version": "2"},
    }
    assert original.model_dump(by_alias=True) == expected
    assert PaymentRequirements(**expected) == original


@pytest.mark.parametrize("amount", ["-1", "1.5", "abc", ""])
def test_payment_requirements_rejects_bad_amount(amount):
    with pytest.raises(ValidationError):
        make_requirements(max_amount_required=amount)


@pytest.mark.parametrize("timeout", [0, -60])
def test_payment_requirements_rejects_non_positive_timeout(timeout):
    with pytest.raises(ValidationError):
        make_requirements(max_timeout_seconds=timeout)


def test_payment_requirements_ignores_unknown_fields():
    data = make_requirements().model_dump(by_alias=True)
    data["somethingNew"] = True
    assert PaymentRequirements.model_validate(data) == make_requirements()


def test_x402_payment_required_response_serde():
    payment_req = make_requirements()
    original = x402PaymentRequiredResponse(
        x402_version=1, accepts=[payment_req], error="No X-PAYMENT header provided"
    )
    expected = {
        "x402Version": 1,
        "accepts": [payment_req.model_dump(by_alias=True)],
        "error": "No X-PAYMENT header provided",
    }
    assert original.model_dump(by_alias=True) == expected
    assert x402PaymentRequiredResponse(**expected) == original


def test_eip3009_authorization_serde():
    original = EIP3009Authorization(
        from_="0x123",
        to="0x456",
        value="1000",
        valid_after="0",
        valid_before="1000",
        nonce="0x789",
    )
    expected = {
        "from": "0x123",
        "to": "0x456",
        "value": "1000",
        "validAfter": "0",
        "validBefore": "1000",
        "nonce": "0x789",
    }
    assert original.model_dump(by_alias=True) == expected
    assert EIP3009Authorization(**expected) == original


def test_eip3009_authorization_rejects_non_integer_value():
    with pytest.raises(ValidationError):
        EIP3009Authorization(
            from_="0x123",
            to="0x456",
            value="0.001",
            valid_after="0",
            valid_before="1000",
            nonce="0x789",
        )


def test_payment_payload_serde():
    original = PaymentPayload(
        x402_version=1,
        scheme="exact",
        network="base-sepolia",
        payload=ExactPaymentPayload(
            signature="0xabc",
            authorization=EIP3009Authorization(
                from_="0x123",
                to="0x456",
                value="1000",
                valid_after="0",
                valid_before="1000",
                nonce="0x789",
            ),
        ),
    )
    dumped = original.model_dump(by_alias=True)

    assert dumped["x402Version"] == 1
    assert dumped["payload"]["signature"] == "0xabc"
    assert dumped["payload"]["authorization"]["from"] == "0x123"
    assert PaymentPayload(**dumped) == original


def test_verify_response_serde():
    original = VerifyResponse(is_valid=False, invalid_reason="insufficient_funds", payer="0x1")
    expected = {"isValid": False, "invalidReason": "insufficient_funds", "payer": "0x1"}

    assert original.model_dump(by_alias=True) == expected
    assert VerifyResponse(**expected) == original


def test_settle_response_serde():
    original = SettleResponse(
        success=True, transaction="0xabc", network="base-sepolia", payer="0x1"
    )
    expected = {
        "success": True,
        "errorReason": None,
        "transaction": "0xabc",
        "network": "base-sepolia",
        "payer": "0x1",
    }

    assert original.model_dump(by_alias=True) == expected
    assert SettleResponse(**expected) == original
