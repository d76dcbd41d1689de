import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from x402link.common import x402_VERSION
from x402link.encoding import decode_x_payment_response as _decode_x_payment_response
from x402link.exact import (
    EXACT_SCHEME,
    create_nonce,
    create_payment_header,
    create_payment_header_async,
)
from x402link.exceptions import (
    InvalidPaymentRequiredError,
    MissingSignerError,
    PaymentAmountExceededError,
    PaymentError,
    PaymentRejectedError,
    UnsupportedSchemeError,
)
from x402link.signers import TypedDataSigner, as_signer
from x402link.types import PaymentRequirements

logger = logging.getLogger(__name__)

# Define type for the payment requirements selector
PaymentSelectorCallable = Callable[
    [List[PaymentRequirements], Optional[str], Optional[str], Optional[int]],
    PaymentRequirements,
]

__all__ = [
    "x402Client",
    "PaymentFlow",
    "PaymentState",
    "decode_x_payment_response",
    "PaymentError",
    "PaymentAmountExceededError",
    "PaymentRejectedError",
    "InvalidPaymentRequiredError",
    "MissingSignerError",
    "UnsupportedSchemeError",
]


def decode_x_payment_response(header: str) -> Dict[str, Any]:
    """Decode the X-PAYMENT-RESPONSE header.

    Args:
        header: The X-PAYMENT-RESPONSE header to decode

    Returns:
        The decoded payment response containing:
        - success: bool
        - transaction: str (hex)
        - network: str
        - payer: str (address)
    """
    return _decode_x_payment_response(header)


def parse_payment_required(body: Any) -> tuple[int, List[PaymentRequirements]]:
    """Extract (x402Version, accepts) from a 402 response body.

    Raises:
        InvalidPaymentRequiredError: If accepts is missing, not a list, or
            holds an entry that is not a valid payment requirement
    """
    if not isinstance(body, dict):
        raise InvalidPaymentRequiredError("Invalid 402 response: body is not a JSON object")

    accepts = body.get("accepts")
    if not isinstance(accepts, list):
        raise InvalidPaymentRequiredError("Invalid 402 response: missing accepts field")

    try:
        requirements = [PaymentRequirements.model_validate(item) for item in accepts]
    except ValidationError as e:
        raise InvalidPaymentRequiredError(
            f"Invalid 402 response: malformed payment requirements: {e}"
        ) from e

    version = body.get("x402Version", x402_VERSION)
    if not isinstance(version, int) or isinstance(version, bool):
        raise InvalidPaymentRequiredError("Invalid 402 response: x402Version must be an integer")

    return version, requirements


class x402Client:
    """Base client for handling x402 payments."""

    def __init__(
        self,
        account: Any = None,
        max_value: Optional[int] = None,
        payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    ):
        """Initialize the x402 client.

        Args:
            account: eth_account account or any TypedDataSigner used to sign payments
            max_value: Optional maximum allowed payment amount in base units
            payment_requirements_selector: Optional custom selector for payment requirements
        """
        self.account = account
        self.signer: Optional[TypedDataSigner] = (
            as_signer(account) if account is not None else None
        )
        self.max_value = int(max_value) if max_value is not None else None
        self._payment_requirements_selector = (
            payment_requirements_selector or self.default_payment_requirements_selector
        )

    @staticmethod
    def default_payment_requirements_selector(
        accepts: List[PaymentRequirements],
        network_filter: Optional[str] = None,
        scheme_filter: Optional[str] = None,
        max_value: Optional[int] = None,
    ) -> PaymentRequirements:
        """Select payment requirements from the list of accepted requirements.

        Picks the first supported candidate that fits under max_value, in
        the order the server offered them.

        Args:
            accepts: List of accepted payment requirements
            network_filter: Optional network to filter by
            scheme_filter: Optional scheme to filter by
            max_value: Optional maximum allowed payment amount

        Returns:
            Selected payment requirements

        Raises:
            UnsupportedSchemeError: If no supported scheme is found
            PaymentAmountExceededError: If every supported candidate exceeds max_value
        """
        cheapest_rejected: Optional[int] = None

        for payment_requirements in accepts:
            scheme = payment_requirements.scheme
            network = payment_requirements.network

            if scheme_filter and scheme != scheme_filter:
                continue

            if network_filter and network != network_filter:
                continue

            if scheme != EXACT_SCHEME:
                continue

            amount = int(payment_requirements.max_amount_required)
            if max_value is not None and amount > max_value:
                if cheapest_rejected is None or amount < cheapest_rejected:
                    cheapest_rejected = amount
                continue

            return payment_requirements

        if cheapest_rejected is not None:
            raise PaymentAmountExceededError(cheapest_rejected, max_value)

        raise UnsupportedSchemeError("No supported payment scheme found")

    def select_payment_requirements(
        self,
        accepts: List[PaymentRequirements],
        network_filter: Optional[str] = None,
        scheme_filter: Optional[str] = None,
    ) -> PaymentRequirements:
        """Select payment requirements using the configured selector.

        Raises:
            UnsupportedSchemeError: If no supported scheme is found
            PaymentAmountExceededError: If payment amount exceeds max_value
        """
        if not accepts:
            raise InvalidPaymentRequiredError("No payment requirements available")

        selected = self._payment_requirements_selector(
            accepts, network_filter, scheme_filter, self.max_value
        )

        # A custom selector must still respect the ceiling
        if self.max_value is not None:
            amount = int(selected.max_amount_required)
            if amount > self.max_value:
                raise PaymentAmountExceededError(amount, self.max_value)

        return selected

    def _require_signer(self) -> TypedDataSigner:
        if self.signer is None:
            raise MissingSignerError("An account is required to pay for this request")
        return self.signer

    def create_payment_header(
        self,
        payment_requirements: PaymentRequirements,
        x402_version: int = x402_VERSION,
    ) -> str:
        """Create a payment header for the given requirements (synchronous version).

        Args:
            payment_requirements: Selected payment requirements
            x402_version: x402 protocol version

        Returns:
            Signed payment header
        """
        return create_payment_header(
            self._require_signer(), x402_version, payment_requirements
        )

    async def create_payment_header_async(
        self,
        payment_requirements: PaymentRequirements,
        x402_version: int = x402_VERSION,
    ) -> str:
        """Create a payment header for the given requirements (async version).

        Awaits signers whose sign_typed_data is a coroutine function.
        """
        return await create_payment_header_async(
            self._require_signer(), x402_version, payment_requirements
        )

    def generate_nonce(self) -> str:
        # 32 random bytes, 0x-prefixed hex
        return create_nonce()


class PaymentState(str, Enum):
    INITIAL = "initial"
    CHALLENGED = "challenged"
    AUTHORIZING = "authorizing"
    RETRYING = "retrying"
    DONE = "done"
    FAILED = "failed"


class PaymentFlow:
    """One paid call: Initial -> Challenged -> Authorizing -> Retrying -> Done | Failed.

    Transport independent; the httpx and requests wrappers feed it status
    codes and bodies and do the actual sending. A flow pays at most once and
    is never shared between calls.
    """

    def __init__(self, client: x402Client):
        self.client = client
        self.state = PaymentState.INITIAL
        self.x402_version = x402_VERSION
        self.payment_requirements: Optional[PaymentRequirements] = None
        self.payment_header: Optional[str] = None

    def _transition(self, state: PaymentState) -> None:
        logger.debug(f"x402 payment flow: {self.state.value} -> {state.value}")
        self.state = state

    def _expect(self, *states: PaymentState) -> None:
        if self.state not in states:
            raise RuntimeError(f"Invalid payment flow transition from {self.state.value}")

    def on_response(self, status_code: int) -> bool:
        """Feed the initial response status; True if payment is required."""
        self._expect(PaymentState.INITIAL)
        if status_code != 402:
            self._transition(PaymentState.DONE)
            return False
        self._transition(PaymentState.CHALLENGED)
        return True

    def select(self, body: Any) -> PaymentRequirements:
        """Parse the 402 body and pick the requirements to pay."""
        self._expect(PaymentState.CHALLENGED)
        try:
            self.x402_version, accepts = parse_payment_required(body)
            self.payment_requirements = self.client.select_payment_requirements(accepts)
        except BaseException:
            self._transition(PaymentState.FAILED)
            raise
        self._transition(PaymentState.AUTHORIZING)
        return self.payment_requirements

    def authorize(self) -> str:
        """Sign the selected requirements; returns the X-PAYMENT value."""
        self._expect(PaymentState.AUTHORIZING)
        try:
            self.payment_header = self.client.create_payment_header(
                self.payment_requirements, self.x402_version
            )
        except BaseException:
            self._transition(PaymentState.FAILED)
            raise
        self._transition(PaymentState.RETRYING)
        return self.payment_header

    async def authorize_async(self) -> str:
        """Async variant of authorize. Cancellation leaves no header behind."""
        self._expect(PaymentState.AUTHORIZING)
        try:
            self.payment_header = await self.client.create_payment_header_async(
                self.payment_requirements, self.x402_version
            )
        except BaseException:
            self._transition(PaymentState.FAILED)
            raise
        self._transition(PaymentState.RETRYING)
        return self.payment_header

    def on_retry_response(self, status_code: int, response: Any = None) -> None:
        """Feed the paid retry's status. A second 402 ends the flow with an error."""
        self._expect(PaymentState.RETRYING)
        if status_code == 402:
            self._transition(PaymentState.FAILED)
            raise PaymentRejectedError(
                "Payment was rejected: server answered the paid request with 402",
                response=response,
            )
        self._transition(PaymentState.DONE)

    def fail(self) -> None:
        if self.state not in (PaymentState.DONE, PaymentState.FAILED):
            self._transition(PaymentState.FAILED)
