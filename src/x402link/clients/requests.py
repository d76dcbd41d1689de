import json
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter

from x402link.clients.base import (
    PaymentFlow,
    PaymentSelectorCallable,
    x402Client,
)
from x402link.exceptions import InvalidPaymentRequiredError, PaymentError

PAYMENT_HEADER = "X-PAYMENT"


class x402HTTPAdapter(HTTPAdapter):
    """HTTP adapter for handling x402 payment required responses.

    Each send() owns its own PaymentFlow, so one adapter can be shared by
    threads issuing paid requests concurrently.
    """

    def __init__(
        self,
        client: x402Client,
        **kwargs,
    ):
        """Initialize the adapter with an x402Client.

        Args:
            client: x402Client instance for handling payments
            **kwargs: Additional arguments to pass to HTTPAdapter
        """
        super().__init__(**kwargs)
        self.client = client

    def send(self, request: requests.PreparedRequest, **kwargs: Any) -> requests.Response:
        """Send a request, paying once if the server answers 402."""
        response = super().send(request, **kwargs)

        flow = PaymentFlow(self.client)
        if not flow.on_response(response.status_code):
            return response

        try:
            try:
                body = json.loads(response.content.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                flow.fail()
                raise InvalidPaymentRequiredError(
                    f"Invalid 402 response: body is not JSON: {e}"
                ) from e

            flow.select(body)
            payment_header = flow.authorize()

            retry_request = request.copy()
            retry_request.headers[PAYMENT_HEADER] = payment_header
            retry_request.headers["Access-Control-Expose-Headers"] = "X-PAYMENT-RESPONSE"

            retry_response = super().send(retry_request, **kwargs)
            flow.on_retry_response(retry_response.status_code, retry_response)
            return retry_response

        except (PaymentError, requests.RequestException):
            raise
        except Exception as e:
            raise PaymentError(f"Failed to handle payment: {str(e)}") from e


def x402_http_adapter(
    account: Any,
    max_value: Optional[int] = None,
    payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    **kwargs,
) -> x402HTTPAdapter:
    """Create an HTTP adapter that handles 402 Payment Required responses.

    Args:
        account: eth_account account or TypedDataSigner for signing payments
        max_value: Optional maximum allowed payment amount in base units
        payment_requirements_selector: Optional custom selector for payment requirements.
            Should be a callable that takes (accepts, network_filter, scheme_filter, max_value)
            and returns a PaymentRequirements object.
        **kwargs: Additional arguments to pass to HTTPAdapter

    Returns:
        x402HTTPAdapter instance that can be mounted to a requests session
    """
    client = x402Client(
        account,
        max_value=max_value,
        payment_requirements_selector=payment_requirements_selector,
    )
    return x402HTTPAdapter(client, **kwargs)


def x402_requests(
    account: Any,
    max_value: Optional[int] = None,
    payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    **kwargs,
) -> requests.Session:
    """Create a requests session with x402 payment handling.

    Args:
        account: eth_account account or TypedDataSigner for signing payments
        max_value: Optional maximum allowed payment amount in base units
        payment_requirements_selector: Optional custom selector for payment requirements.
        **kwargs: Additional arguments to pass to HTTPAdapter

    Returns:
        Session with x402 payment handling configured
    """
    session = requests.Session()
    adapter = x402_http_adapter(
        account,
        max_value=max_value,
        payment_requirements_selector=payment_requirements_selector,
        **kwargs,
    )

    # Mount the adapter for both HTTP and HTTPS
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    return session
