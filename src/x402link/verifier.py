"""Server-side payment verification.

``PaymentVerifier`` sits in front of the facilitator. It checks the decoded
header against the server's own requirements, refuses nonces it has already
accepted, and only then asks the facilitator for a verdict.
"""

import logging
import threading
import time
from typing import Optional, Protocol

from x402link.exceptions import PaymentVerificationError
from x402link.facilitator import FACILITATOR_UNAVAILABLE, FacilitatorClient
from x402link.types import (
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

INVALID_SCHEME = "invalid_scheme"
INVALID_NETWORK = "invalid_network"
INVALID_RECIPIENT = "invalid_exact_evm_payload_recipient_mismatch"
INVALID_AMOUNT = "invalid_exact_evm_payload_authorization_value"
AUTHORIZATION_EXPIRED = "invalid_exact_evm_payload_authorization_valid_before"
AUTHORIZATION_NOT_YET_VALID = "invalid_exact_evm_payload_authorization_valid_after"
NONCE_ALREADY_USED = "nonce_already_used"


class NonceStore(Protocol):
    """Record of authorization nonces that have already been accepted."""

    def reserve(self, nonce: str) -> bool:
        """Mark nonce as in flight. Returns False if it is already reserved or used."""
        ...

    def release(self, nonce: str) -> None:
        """Undo a reservation whose payment was not accepted."""
        ...


class InMemoryNonceStore:
    """Process-local nonce set.

    A reservation is permanent unless released, so a header that verified
    once can never verify again in this process.
    """

    def __init__(self):
        self._nonces: set[str] = set()
        self._lock = threading.Lock()

    def reserve(self, nonce: str) -> bool:
        key = nonce.lower()
        with self._lock:
            if key in self._nonces:
                return False
            self._nonces.add(key)
            return True

    def release(self, nonce: str) -> None:
        with self._lock:
            self._nonces.discard(nonce.lower())

    def __contains__(self, nonce: str) -> bool:
        with self._lock:
            return nonce.lower() in self._nonces

    def __len__(self) -> int:
        with self._lock:
            return len(self._nonces)


def check_payment_against_requirements(
    payment: PaymentPayload,
    payment_requirements: PaymentRequirements,
    now: Optional[int] = None,
) -> Optional[str]:
    """Local sanity checks; returns an invalid reason or None.

    Only structural agreement is checked here. Signature validity, balances
    and on-chain nonce state are the facilitator's job.
    """
    if payment.scheme != payment_requirements.scheme:
        return INVALID_SCHEME
    if payment.network != payment_requirements.network:
        return INVALID_NETWORK

    authorization = payment.payload.authorization
    if authorization.to.lower() != payment_requirements.pay_to.lower():
        return INVALID_RECIPIENT
    # exact scheme: the authorization moves precisely the quoted amount
    if int(authorization.value) != int(payment_requirements.max_amount_required):
        return INVALID_AMOUNT

    now = int(time.time()) if now is None else now
    if int(authorization.valid_before) <= now:
        return AUTHORIZATION_EXPIRED
    if int(authorization.valid_after) > now:
        return AUTHORIZATION_NOT_YET_VALID
    return None


class PaymentVerifier:
    """Verify decoded payment headers against server-side requirements."""

    def __init__(
        self,
        facilitator: FacilitatorClient,
        nonce_store: Optional[NonceStore] = None,
    ):
        self.facilitator = facilitator
        self.nonce_store = nonce_store if nonce_store is not None else InMemoryNonceStore()

    async def verify(
        self,
        payment: PaymentPayload,
        payment_requirements: PaymentRequirements,
    ) -> VerifyResponse:
        payer = payment.payload.authorization.from_

        reason = check_payment_against_requirements(payment, payment_requirements)
        if reason:
            logger.info(f"Payment from {payer} rejected locally: {reason}")
            return VerifyResponse(is_valid=False, invalid_reason=reason, payer=payer)

        nonce = payment.payload.authorization.nonce
        if not self.nonce_store.reserve(nonce):
            logger.warning(f"Replayed payment nonce {nonce[:18]}... from {payer}")
            return VerifyResponse(
                is_valid=False, invalid_reason=NONCE_ALREADY_USED, payer=payer
            )

        try:
            verify_response = await self.facilitator.verify(payment, payment_requirements)
        except Exception as e:
            self.nonce_store.release(nonce)
            logger.warning(f"Facilitator verify raised, rejecting payment: {e}")
            return VerifyResponse(
                is_valid=False, invalid_reason=FACILITATOR_UNAVAILABLE, payer=payer
            )
        except BaseException:
            self.nonce_store.release(nonce)
            raise

        if not verify_response.is_valid:
            self.nonce_store.release(nonce)
            logger.info(
                f"Facilitator rejected payment from {payer}: {verify_response.invalid_reason}"
            )
        return verify_response

    async def require_valid(
        self,
        payment: PaymentPayload,
        payment_requirements: PaymentRequirements,
    ) -> VerifyResponse:
        """Like verify, but raises PaymentVerificationError on any rejection."""
        verify_response = await self.verify(payment, payment_requirements)
        if not verify_response.is_valid:
            raise PaymentVerificationError(
                verify_response.invalid_reason or "unknown_error"
            )
        return verify_response

    async def settle(
        self,
        payment: PaymentPayload,
        payment_requirements: PaymentRequirements,
    ) -> SettleResponse:
        return await self.facilitator.settle(payment, payment_requirements)
