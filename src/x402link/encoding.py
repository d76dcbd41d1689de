import base64
import binascii
import json
from typing import Any, Dict, Union

from hexbytes import HexBytes
from pydantic import ValidationError

from x402link.exceptions import PaymentHeaderDecodeError
from x402link.types import PaymentPayload, SettleResponse

PAYMENT_HEADER_FIELDS = ("x402Version", "scheme", "network", "payload")


def safe_base64_encode(data: Union[str, bytes]) -> str:
    """Safely encode string or bytes to base64 string.

    Args:
        data: String or bytes to encode

    Returns:
        Base64 encoded string
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def safe_base64_decode(data: str) -> str:
    """Safely decode base64 string to bytes and then to utf-8 string.

    Args:
        data: Base64 encoded string

    Returns:
        Decoded utf-8 string
    """
    return base64.b64decode(data, validate=True).decode("utf-8")


def _json_default(obj):
    if isinstance(obj, (HexBytes, bytes, bytearray)):
        return f"0x{bytes(obj).hex()}"
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def encode_payment(payment_payload: Union[Dict[str, Any], PaymentPayload]) -> str:
    """Encode a payment header into the base64 X-PAYMENT token.

    HexBytes/bytes values (signatures, nonces) are rendered as 0x-prefixed hex.
    """
    if isinstance(payment_payload, PaymentPayload):
        payment_payload = payment_payload.model_dump(by_alias=True)
    return safe_base64_encode(json.dumps(payment_payload, default=_json_default))


def decode_payment(encoded_payment: str) -> Dict[str, Any]:
    """Decode a base64 X-PAYMENT token into the header dict.

    Raises:
        PaymentHeaderDecodeError: If the token is not base64, not JSON, or
            lacks one of x402Version, scheme, network, payload
    """
    if not encoded_payment:
        raise PaymentHeaderDecodeError("Empty payment header")

    try:
        decoded = json.loads(safe_base64_decode(encoded_payment.strip()))
    except (binascii.Error, ValueError) as e:
        # UnicodeDecodeError and JSONDecodeError are both ValueErrors
        raise PaymentHeaderDecodeError(f"Payment header is not base64 JSON: {e}") from e

    if not isinstance(decoded, dict):
        raise PaymentHeaderDecodeError("Payment header must be a JSON object")

    missing = [name for name in PAYMENT_HEADER_FIELDS if decoded.get(name) in (None, "")]
    if missing:
        raise PaymentHeaderDecodeError(
            f"Payment header missing required fields: {', '.join(missing)}"
        )

    return decoded


def decode_payment_payload(encoded_payment: str) -> PaymentPayload:
    """Decode an X-PAYMENT token and validate it as a PaymentPayload."""
    decoded = decode_payment(encoded_payment)
    try:
        return PaymentPayload.model_validate(decoded)
    except ValidationError as e:
        raise PaymentHeaderDecodeError(f"Invalid payment header structure: {e}") from e


def encode_x_payment_response(settle_response: SettleResponse) -> str:
    """Encode a settlement result for the X-PAYMENT-RESPONSE header."""
    return safe_base64_encode(
        settle_response.model_dump_json(by_alias=True, exclude_none=True)
    )


def decode_x_payment_response(header: str) -> Dict[str, Any]:
    """Decode the X-PAYMENT-RESPONSE header.

    Accepts base64 encoded JSON as well as raw JSON, which some servers send.

    Args:
        header: The X-PAYMENT-RESPONSE header to decode

    Returns:
        The decoded payment response containing:
        - success: bool
        - transaction: str (hex)
        - network: str
        - payer: str (address)
    """
    stripped = header.strip()
    if stripped.startswith("{"):
        return json.loads(stripped)
    return json.loads(safe_base64_decode(stripped))
