import logging
from typing import Any, Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ConfigDict, validate_call

from x402link.common import (
    find_matching_payment_requirements,
    process_price_to_atomic_amount,
    x402_VERSION,
)
from x402link.encoding import decode_payment_payload, encode_x_payment_response
from x402link.exceptions import PaymentHeaderDecodeError, PaymentVerificationError
from x402link.facilitator import FacilitatorClient
from x402link.networks import SUPPORTED_EVM_NETWORKS
from x402link.path import path_is_match
from x402link.types import (
    FacilitatorConfig,
    PaymentRequirements,
    Price,
    SettleResponse,
    x402PaymentRequiredResponse,
)
from x402link.verifier import PaymentVerifier

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


def resource_url_for(request: Request) -> str:
    """Canonical URL of the requested resource, as seen by the client.

    Honors X-Forwarded-Proto/X-Forwarded-Host so the URL is right behind a
    proxy; falls back to the Host header and the request's own scheme.
    """
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = (
        request.headers.get("x-forwarded-host")
        or request.headers.get("host")
        or request.url.netloc
    )
    proto = proto.split(",")[0].strip()
    host = host.split(",")[0].strip()
    return f"{proto}://{host}{request.url.path}"


@validate_call(config=ConfigDict(arbitrary_types_allowed=True))
def require_payment(
    price: Price,
    pay_to_address: str,
    path: str | list[str] = "*",
    description: str = "",
    mime_type: str = "",
    max_deadline_seconds: int = 60,
    output_schema: Optional[Any] = None,
    facilitator_config: Optional[FacilitatorConfig] = None,
    network: str = "base-sepolia",
    resource: Optional[str] = None,
    settle: bool = True,
    facilitator: Optional[Any] = None,
    nonce_store: Optional[Any] = None,
    request_check: Optional[Callable] = None,
):
    """Generate a FastAPI middleware that gates payments for an endpoint.

    Args:
        price (Price): Payment price. Can be:
            - Money: USD amount as string/int (e.g., "$3.10", 0.10, "0.001") - defaults to USDC
            - TokenAmount: Custom token amount with asset information
        pay_to_address (str): Ethereum address to receive the payment
        path (str | list[str], optional): Path to gate with payments. Defaults to "*" for all paths.
        description (str, optional): Description of what is being purchased. Defaults to "".
        mime_type (str, optional): MIME type of the resource. Defaults to "".
        max_deadline_seconds (int, optional): Maximum time allowed for payment. Defaults to 60.
        output_schema (Optional[Any], optional): JSON schema for the response. Defaults to None.
        facilitator_config (Optional[FacilitatorConfig], optional): Configuration for the payment facilitator.
            If not provided, defaults to the public x402.org facilitator.
        network (str, optional): Network name. Defaults to "base-sepolia".
        resource (Optional[str], optional): Resource URL. Defaults to None (derived from each request).
        settle (bool, optional): Settle verified payments after a successful response. Defaults to True.
        facilitator (optional): Pre-built facilitator client; overrides facilitator_config.
        nonce_store (optional): NonceStore used to refuse replayed authorizations.
            Defaults to a process-local store.
        request_check (optional): Async callable run on a gated request before any
            payment handling. A returned Response is sent as is and no payment is asked for.

    Returns:
        Callable: FastAPI middleware function that checks for valid payment before processing requests
    """

    if network not in SUPPORTED_EVM_NETWORKS:
        raise ValueError(
            f"Unsupported network: {network}. Must be one of: {SUPPORTED_EVM_NETWORKS}"
        )

    if network == "base" and not (facilitator_config or facilitator):
        raise ValueError("Facilitator configuration is required for Base Mainnet.")

    if max_deadline_seconds <= 0:
        raise ValueError(
            f"Invalid max_deadline_seconds: {max_deadline_seconds}. Must be positive."
        )

    try:
        max_amount_required, asset_address, eip712_domain = (
            process_price_to_atomic_amount(price, network)
        )
    except Exception as e:
        raise ValueError(f"Invalid price: {price}. Error: {e}")

    verifier = PaymentVerifier(
        facilitator or FacilitatorClient(facilitator_config), nonce_store
    )

    async def middleware(request: Request, call_next: Callable):
        # Skip if the path is not the same as the path in the middleware
        if not path_is_match(path, request.url.path):
            return await call_next(request)

        if request_check is not None:
            rejection = await request_check(request)
            if rejection is not None:
                return rejection

        # Descriptors are request-scoped: the resource URL comes from this request
        payment_requirements = [
            PaymentRequirements(
                scheme="exact",
                network=network,
                asset=asset_address,
                max_amount_required=max_amount_required,
                resource=resource or resource_url_for(request),
                description=description,
                mime_type=mime_type,
                pay_to=pay_to_address,
                max_timeout_seconds=max_deadline_seconds,
                output_schema=output_schema,
                extra=eip712_domain,
            )
        ]
        logger.debug(
            f"Payment required for {request.url.path}: "
            f"{max_amount_required} of {asset_address} to {pay_to_address}"
        )

        def x402_response(error: str):
            """Create a 402 response with payment requirements."""
            response_data = x402PaymentRequiredResponse(
                x402_version=x402_VERSION,
                accepts=payment_requirements,
                error=error,
            ).model_dump(by_alias=True)

            return JSONResponse(
                content=response_data,
                status_code=402,
                headers={"Content-Type": "application/json"},
            )

        payment_header = request.headers.get(PAYMENT_HEADER, "")

        if payment_header == "":
            return x402_response("No X-PAYMENT header provided")

        client_host = request.client.host if request.client else "unknown"

        try:
            payment = decode_payment_payload(payment_header)
        except PaymentHeaderDecodeError as e:
            logger.warning(f"Invalid payment header format from {client_host}: {str(e)}")
            return JSONResponse(
                content={
                    "error": f"Invalid payment header format: {e}",
                    "code": "invalid_payment_header",
                },
                status_code=400,
            )

        selected_payment_requirements = find_matching_payment_requirements(
            payment_requirements, payment
        )

        if not selected_payment_requirements:
            return x402_response("No matching payment requirements found")

        try:
            verify_response = await verifier.require_valid(
                payment, selected_payment_requirements
            )
        except PaymentVerificationError as e:
            logger.warning(f"Payment from {client_host} failed verification: {e.reason}")
            return JSONResponse(
                content={
                    "error": "Invalid or expired payment proof",
                    "reason": e.reason,
                },
                status_code=403,
            )

        logger.info(
            f"Payment verified for {request.url.path}: "
            f"{payment.payload.authorization.value} from {payment.payload.authorization.from_}"
        )

        request.state.payment_header = payment_header
        request.state.payment = payment
        request.state.payment_details = selected_payment_requirements
        request.state.verify_response = verify_response

        response = await call_next(request)

        # Early return without settling if the response is not a 2xx
        if response.status_code < 200 or response.status_code >= 300:
            return response

        if settle:
            try:
                settle_response = await verifier.settle(
                    payment, selected_payment_requirements
                )
            except Exception as e:
                logger.error(f"Settlement raised for {request.url.path}: {e}")
                return x402_response("Settle failed")

            if not settle_response.success:
                logger.warning(
                    f"Settlement failed for {request.url.path}: {settle_response.error_reason}"
                )
                return x402_response(
                    "Settle failed: " + (settle_response.error_reason or "Unknown error")
                )
        else:
            settle_response = SettleResponse(
                success=True,
                network=network,
                payer=verify_response.payer or payment.payload.authorization.from_,
            )

        response.headers[PAYMENT_RESPONSE_HEADER] = encode_x_payment_response(
            settle_response
        )
        response.headers["Access-Control-Expose-Headers"] = PAYMENT_RESPONSE_HEADER
        return response

    return middleware
