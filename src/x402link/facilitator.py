import logging
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from x402link.common import x402_VERSION
from x402link.types import (
    FacilitatorConfig,
    PaymentPayload,
    PaymentRequirements,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_FACILITATOR_URL = "https://x402.org/facilitator"

FACILITATOR_UNAVAILABLE = "facilitator_unavailable"
FACILITATOR_INVALID_RESPONSE = "facilitator_invalid_response"


class FacilitatorClient:
    """HTTP client for an x402 facilitator's /verify and /settle endpoints.

    Failures never surface as success: an unreachable facilitator, a non-200
    status or an unparseable body all produce ``is_valid=False`` /
    ``success=False`` with a reason code.
    """

    def __init__(
        self,
        config: Optional[FacilitatorConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        config = config or {}
        url = config.get("url") or DEFAULT_FACILITATOR_URL
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL {url}, must start with http:// or https://")

        self.url = url.rstrip("/")
        self.timeout = config.get("timeout", 30.0)
        self._create_headers: Optional[Callable[[], dict[str, dict[str, str]]]] = (
            config.get("create_headers")
        )
        self._transport = transport

    def _headers(self, endpoint: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._create_headers:
            custom_headers = self._create_headers()
            headers.update(custom_headers.get(endpoint, {}))
        return headers

    async def _post(
        self,
        endpoint: str,
        payment: PaymentPayload,
        payment_requirements: PaymentRequirements,
    ) -> httpx.Response:
        body = {
            "x402Version": payment.x402_version or x402_VERSION,
            "paymentPayload": payment.model_dump(by_alias=True),
            "paymentRequirements": payment_requirements.model_dump(
                by_alias=True, exclude_none=True
            ),
        }
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            return await client.post(
                f"{self.url}/{endpoint}",
                json=body,
                headers=self._headers(endpoint),
                follow_redirects=True,
            )

    async def verify(
        self,
        payment: PaymentPayload,
        payment_requirements: PaymentRequirements,
    ) -> VerifyResponse:
        """Verify a payment header is valid and a request should be processed

        ``payment_requirements`` must be the server's own requirements, never
        values read back from the client's header.
        """
        try:
            response = await self._post("verify", payment, payment_requirements)
        except httpx.HTTPError as e:
            logger.warning(f"Facilitator verify request failed: {e}")
            return VerifyResponse(is_valid=False, invalid_reason=FACILITATOR_UNAVAILABLE)

        if response.status_code != 200:
            logger.warning(
                f"Facilitator verify returned {response.status_code}: {response.text[:200]}"
            )
            return VerifyResponse(is_valid=False, invalid_reason=FACILITATOR_UNAVAILABLE)

        try:
            return VerifyResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Facilitator verify response was malformed: {e}")
            return VerifyResponse(
                is_valid=False, invalid_reason=FACILITATOR_INVALID_RESPONSE
            )

    async def settle(
        self,
        payment: PaymentPayload,
        payment_requirements: PaymentRequirements,
    ) -> SettleResponse:
        """Settle a verified payment on-chain through the facilitator."""
        try:
            response = await self._post("settle", payment, payment_requirements)
        except httpx.HTTPError as e:
            logger.warning(f"Facilitator settle request failed: {e}")
            return SettleResponse(success=False, error_reason=FACILITATOR_UNAVAILABLE)

        if response.status_code != 200:
            logger.warning(
                f"Facilitator settle returned {response.status_code}: {response.text[:200]}"
            )
            return SettleResponse(success=False, error_reason=FACILITATOR_UNAVAILABLE)

        try:
            return SettleResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Facilitator settle response was malformed: {e}")
            return SettleResponse(
                success=False, error_reason=FACILITATOR_INVALID_RESPONSE
            )
