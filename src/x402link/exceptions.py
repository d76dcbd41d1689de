"""
x402link exception hierarchy

Every payment failure derives from PaymentError. The intermediate classes
group failures by what the caller can do about them:

- PaymentFormatError: the other side sent something unparseable. Never retried.
- PaymentPolicyError: the terms are unacceptable (scheme, ceiling). The caller
  may raise its ceiling or abort.
- PaymentCapabilityError: the wallet is missing or refused to sign.
- PaymentVerificationError: the facilitator rejected the payment, or could
  not be reached.

Transport failures are not wrapped; httpx/requests exceptions propagate as-is.
"""

from typing import Any, Optional


class PaymentError(Exception):
    """Base class for payment-related errors."""

    pass


class PaymentFormatError(PaymentError):
    """Malformed challenge body, header or descriptor"""

    pass


class PaymentHeaderDecodeError(PaymentFormatError):
    """Raised when an X-PAYMENT token cannot be decoded into a payment header."""

    pass


class InvalidPaymentRequiredError(PaymentFormatError):
    """Raised when a 402 response body does not carry a usable accepts list."""

    pass


class PaymentPolicyError(PaymentError):
    """The offered terms cannot be accepted"""

    pass


class UnsupportedSchemeError(PaymentPolicyError):
    """Raised when no offered payment scheme can be signed."""

    pass


class PaymentAmountExceededError(PaymentPolicyError):
    """Raised when payment amount exceeds maximum allowed value."""

    def __init__(self, required: int, max_value: int):
        self.required = required
        self.max_value = max_value
        super().__init__(
            f"Payment amount {required} exceeds maximum allowed value {max_value}"
        )


class PaymentCapabilityError(PaymentError):
    """The signing capability is unavailable or refused"""

    pass


class MissingSignerError(PaymentCapabilityError):
    """Raised when a payment is needed but no signer/account is configured."""

    pass


class SigningRejectedError(PaymentCapabilityError):
    """Raised when the key holder fails or refuses to sign."""

    pass


class PaymentVerificationError(PaymentError):
    """Payment rejected by verification"""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Payment verification failed: {reason}")


class PaymentRejectedError(PaymentError):
    """Raised when the server answers the paid retry with another 402.

    The retry response is kept on ``response`` so callers can inspect the
    server's error message.
    """

    def __init__(self, message: str, response: Any = None):
        self.response = response
        super().__init__(message)


class UnsupportedNetworkError(PaymentPolicyError):
    """Raised when the requested network has no known chain id."""

    pass


class ChainMismatchError(PaymentCapabilityError):
    """Raised when the wallet is connected to a different chain than required."""

    def __init__(self, wallet_chain_id: int, required_chain_id: int):
        self.wallet_chain_id = wallet_chain_id
        self.required_chain_id = required_chain_id
        super().__init__(
            f"Wallet is connected to chain {wallet_chain_id}, "
            f"payment requires chain {required_chain_id}"
        )
