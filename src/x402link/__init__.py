"""x402link: payment-gated short links over the x402 protocol."""

from x402link.exact import (
    create_payment_header,
    create_payment_header_async,
    prepare_payment_header,
    sign_payment_header,
    sign_payment_header_async,
)

from x402link.encoding import (
    decode_payment,
    decode_payment_payload,
    encode_payment,
)

# Clients
from x402link.clients.base import (
    PaymentFlow,
    PaymentState,
    x402Client,
    decode_x_payment_response,
)

from x402link.exceptions import (
    PaymentError,
    PaymentFormatError,
    PaymentHeaderDecodeError,
    InvalidPaymentRequiredError,
    PaymentPolicyError,
    UnsupportedSchemeError,
    UnsupportedNetworkError,
    PaymentAmountExceededError,
    PaymentCapabilityError,
    MissingSignerError,
    SigningRejectedError,
    ChainMismatchError,
    PaymentVerificationError,
    PaymentRejectedError,
)

# Server side
from x402link.facilitator import FacilitatorClient
from x402link.verifier import InMemoryNonceStore, NonceStore, PaymentVerifier

from x402link.signers import EthAccountSigner, TypedDataSigner

# Types
from x402link.types import (
    PaymentRequirements,
    PaymentPayload,
    ExactPaymentPayload,
    EIP3009Authorization,
    x402PaymentRequiredResponse,
    VerifyResponse,
    SettleResponse,
)

from x402link.networks import SupportedNetworks, SUPPORTED_EVM_NETWORKS

from x402link.common import process_price_to_atomic_amount, x402_VERSION


__all__ = [
    # Signing
    "prepare_payment_header",
    "sign_payment_header",
    "sign_payment_header_async",
    "create_payment_header",
    "create_payment_header_async",
    "EthAccountSigner",
    "TypedDataSigner",
    # Codec
    "encode_payment",
    "decode_payment",
    "decode_payment_payload",
    # Clients
    "x402Client",
    "PaymentFlow",
    "PaymentState",
    "decode_x_payment_response",
    # Errors
    "PaymentError",
    "PaymentFormatError",
    "PaymentHeaderDecodeError",
    "InvalidPaymentRequiredError",
    "PaymentPolicyError",
    "UnsupportedSchemeError",
    "UnsupportedNetworkError",
    "PaymentAmountExceededError",
    "PaymentCapabilityError",
    "MissingSignerError",
    "SigningRejectedError",
    "ChainMismatchError",
    "PaymentVerificationError",
    "PaymentRejectedError",
    # Server side
    "FacilitatorClient",
    "PaymentVerifier",
    "NonceStore",
    "InMemoryNonceStore",
    # Types
    "PaymentRequirements",
    "PaymentPayload",
    "ExactPaymentPayload",
    "EIP3009Authorization",
    "x402PaymentRequiredResponse",
    "VerifyResponse",
    "SettleResponse",
    # Networks
    "SupportedNetworks",
    "SUPPORTED_EVM_NETWORKS",
    # Common
    "process_price_to_atomic_amount",
    "x402_VERSION",
]
