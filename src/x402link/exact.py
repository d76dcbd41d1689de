"""EIP-3009 "exact" scheme: build, sign and encode transfer authorizations."""

import inspect
import logging
import secrets
import time
from typing import Any, Optional

from typing_extensions import (
    TypedDict,
)  # use `typing_extensions.TypedDict` instead of `typing.TypedDict` on Python < 3.12

from x402link.chains import get_chain_id
from x402link.common import DEFAULT_TOKEN_NAME, DEFAULT_TOKEN_VERSION
from x402link.encoding import encode_payment
from x402link.exceptions import (
    ChainMismatchError,
    MissingSignerError,
    SigningRejectedError,
    UnsupportedNetworkError,
    UnsupportedSchemeError,
)
from x402link.signers import SignatureResult, TypedDataSigner
from x402link.types import PaymentRequirements

logger = logging.getLogger(__name__)

EXACT_SCHEME = "exact"

# validAfter is backdated to tolerate clock skew with the settlement verifier
CLOCK_SKEW_SECONDS = 5

TRANSFER_WITH_AUTHORIZATION_TYPES = {
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ]
}


class PaymentHeader(TypedDict):
    x402Version: int
    scheme: str
    network: str
    payload: dict[str, Any]


def create_nonce() -> str:
    """Create a random 32-byte hex-encoded nonce for authorization signatures."""
    return f"0x{secrets.token_hex(32)}"


def _require_exact(payment_requirements: PaymentRequirements) -> None:
    if payment_requirements.scheme != EXACT_SCHEME:
        raise UnsupportedSchemeError(
            f"Unsupported payment scheme: {payment_requirements.scheme}"
        )


def prepare_payment_header(
    sender_address: str,
    x402_version: int,
    payment_requirements: PaymentRequirements,
    now: Optional[int] = None,
) -> PaymentHeader:
    """Prepare an unsigned payment header with the authorization ready for signing.

    The authorization pays exactly ``max_amount_required`` to ``pay_to`` and is
    valid from ``now - 5`` until ``now + max_timeout_seconds``.
    """
    _require_exact(payment_requirements)
    if not sender_address:
        raise MissingSignerError("A payer address is required to create a payment")

    now = int(time.time()) if now is None else now

    return {
        "x402Version": x402_version,
        "scheme": payment_requirements.scheme,
        "network": payment_requirements.network,
        "payload": {
            "signature": None,
            "authorization": {
                "from": sender_address,
                "to": payment_requirements.pay_to,
                "value": payment_requirements.max_amount_required,
                "validAfter": str(now - CLOCK_SKEW_SECONDS),
                "validBefore": str(now + payment_requirements.max_timeout_seconds),
                "nonce": create_nonce(),
            },
        },
    }


def resolve_chain_id(
    payment_requirements: PaymentRequirements, signer: Optional[TypedDataSigner] = None
) -> int:
    """Chain id for the EIP-712 domain.

    The network registry is authoritative; a signer that reports its own
    chain must agree with it. Networks unknown to the registry fall back to
    the signer's chain.
    """
    wallet_chain_id = getattr(signer, "chain_id", None)
    try:
        chain_id = int(get_chain_id(payment_requirements.network))
    except ValueError:
        if wallet_chain_id is None:
            raise UnsupportedNetworkError(
                f"Unsupported network: {payment_requirements.network}"
            )
        return int(wallet_chain_id)

    if wallet_chain_id is not None and int(wallet_chain_id) != chain_id:
        raise ChainMismatchError(int(wallet_chain_id), chain_id)
    return chain_id


def build_typed_data(
    payment_requirements: PaymentRequirements,
    header: PaymentHeader,
    chain_id: int,
) -> dict[str, Any]:
    """Build the EIP-712 TransferWithAuthorization structure for a header.

    The message is derived from the header's own authorization, so the signed
    value is the transmitted value.
    """
    auth = header["payload"]["authorization"]
    extra = payment_requirements.extra or {}

    return {
        "types": TRANSFER_WITH_AUTHORIZATION_TYPES,
        "primaryType": "TransferWithAuthorization",
        "domain": {
            "name": extra.get("name") or DEFAULT_TOKEN_NAME,
            "version": extra.get("version") or DEFAULT_TOKEN_VERSION,
            "chainId": chain_id,
            "verifyingContract": payment_requirements.asset,
        },
        "message": {
            "from": auth["from"],
            "to": auth["to"],
            "value": int(auth["value"]),
            "validAfter": int(auth["validAfter"]),
            "validBefore": int(auth["validBefore"]),
            "nonce": bytes.fromhex(auth["nonce"].removeprefix("0x")),
        },
    }


def _normalize_signature(signature: SignatureResult) -> str:
    if isinstance(signature, (bytes, bytearray)):
        signature = bytes(signature).hex()
    if not isinstance(signature, str) or not signature:
        raise SigningRejectedError("Signer returned an empty signature")
    if not signature.startswith("0x"):
        signature = f"0x{signature}"
    return signature


def _finish(header: PaymentHeader, signature: SignatureResult) -> str:
    header["payload"]["signature"] = _normalize_signature(signature)
    logger.debug(
        "Signed %s payment on %s for %s to %s",
        header["scheme"],
        header["network"],
        header["payload"]["authorization"]["value"],
        header["payload"]["authorization"]["to"],
    )
    return encode_payment(header)


def _request_signature(signer: TypedDataSigner, typed_data: dict[str, Any]):
    try:
        return signer.sign_typed_data(
            typed_data["domain"],
            typed_data["types"],
            typed_data["primaryType"],
            typed_data["message"],
        )
    except Exception as e:
        raise SigningRejectedError(f"Signer refused to sign payment: {e}") from e


def sign_payment_header(
    signer: TypedDataSigner, payment_requirements: PaymentRequirements, header: PaymentHeader
) -> str:
    """Sign a prepared payment header and encode it.

    Args:
        signer: Synchronous typed-data signer
        payment_requirements: The requirements the header was prepared from
        header: Pre-built unsigned header from prepare_payment_header

    Returns:
        Base64 encoded payment header string
    """
    if signer is None:
        raise MissingSignerError("A signer is required to sign a payment")
    _require_exact(payment_requirements)

    typed_data = build_typed_data(
        payment_requirements, header, resolve_chain_id(payment_requirements, signer)
    )
    signature = _request_signature(signer, typed_data)
    if inspect.isawaitable(signature):
        if inspect.iscoroutine(signature):
            signature.close()
        raise SigningRejectedError(
            "Signer is asynchronous; use sign_payment_header_async"
        )
    return _finish(header, signature)


async def sign_payment_header_async(
    signer: TypedDataSigner, payment_requirements: PaymentRequirements, header: PaymentHeader
) -> str:
    """Async variant of sign_payment_header; awaits signers that suspend."""
    if signer is None:
        raise MissingSignerError("A signer is required to sign a payment")
    _require_exact(payment_requirements)

    typed_data = build_typed_data(
        payment_requirements, header, resolve_chain_id(payment_requirements, signer)
    )
    signature = _request_signature(signer, typed_data)
    if inspect.isawaitable(signature):
        try:
            signature = await signature
        except Exception as e:
            raise SigningRejectedError(f"Signer refused to sign payment: {e}") from e
    return _finish(header, signature)


def create_payment_header(
    signer: TypedDataSigner,
    x402_version: int,
    payment_requirements: PaymentRequirements,
) -> str:
    """Prepare, sign and encode a payment header in one step."""
    if signer is None:
        raise MissingSignerError("A signer is required to create a payment")
    header = prepare_payment_header(signer.address, x402_version, payment_requirements)
    return sign_payment_header(signer, payment_requirements, header)


async def create_payment_header_async(
    signer: TypedDataSigner,
    x402_version: int,
    payment_requirements: PaymentRequirements,
) -> str:
    """Async variant of create_payment_header."""
    if signer is None:
        raise MissingSignerError("A signer is required to create a payment")
    header = prepare_payment_header(signer.address, x402_version, payment_requirements)
    return await sign_payment_header_async(signer, payment_requirements, header)
