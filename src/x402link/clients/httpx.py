import json
from typing import Any, Dict, List, Optional

from httpx import AsyncClient, HTTPError, Request, Response

from x402link.clients.base import (
    PaymentFlow,
    PaymentSelectorCallable,
    x402Client,
)
from x402link.exceptions import InvalidPaymentRequiredError, PaymentError

PAYMENT_HEADER = "X-PAYMENT"
RETRY_EXTENSION = "x402_is_retry"


class HttpxHooks:
    def __init__(self, client: x402Client, http_client: Optional[AsyncClient] = None):
        self.client = client
        self._http_client = http_client

    async def on_request(self, request: Request):
        """Handle request before it is sent.

        Extension point: payment is driven entirely from on_response, so
        subclasses may override this to tag or log outgoing requests.
        """
        pass

    async def _send_retry(self, request: Request) -> Response:
        if self._http_client is not None:
            return await self._http_client.send(request)
        async with AsyncClient() as client:
            return await client.send(request)

    async def on_response(self, response: Response) -> Response:
        """Handle response after it is received."""

        # If this is not a 402, just return the response
        if response.status_code != 402:
            return response

        try:
            request = response.request

            # The paid retry comes back through this hook as well; its 402 is
            # turned into PaymentRejectedError by the flow that sent it
            if request.extensions.get(RETRY_EXTENSION):
                return response

            flow = PaymentFlow(self.client)
            flow.on_response(response.status_code)

            await response.aread()
            try:
                body = json.loads(response.content)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                flow.fail()
                raise InvalidPaymentRequiredError(
                    f"Invalid 402 response: body is not JSON: {e}"
                ) from e

            flow.select(body)
            payment_header = await flow.authorize_async()

            request.headers[PAYMENT_HEADER] = payment_header
            request.headers["Access-Control-Expose-Headers"] = "X-PAYMENT-RESPONSE"
            request.extensions[RETRY_EXTENSION] = True

            retry_response = await self._send_retry(request)
            await retry_response.aread()
            flow.on_retry_response(retry_response.status_code, retry_response)

            # Event hook return values are ignored by httpx, so the retry's
            # result is copied onto the response the caller will receive
            response.status_code = retry_response.status_code
            response.headers = retry_response.headers
            response._content = retry_response.content
            return response

        except (PaymentError, HTTPError):
            raise
        except Exception as e:
            raise PaymentError(f"Failed to handle payment: {str(e)}") from e


def x402_payment_hooks(
    account: Any,
    max_value: Optional[int] = None,
    payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
    http_client: Optional[AsyncClient] = None,
) -> Dict[str, List]:
    """Create httpx event hooks dictionary for handling 402 Payment Required responses.

    Args:
        account: eth_account account or TypedDataSigner for signing payments
        max_value: Optional maximum allowed payment amount in base units
        payment_requirements_selector: Optional custom selector for payment requirements.
            Should be a callable that takes (accepts, network_filter, scheme_filter, max_value)
            and returns a PaymentRequirements object.
        http_client: Optional client used to send the paid retry

    Returns:
        Dictionary of event hooks that can be directly assigned to client.event_hooks
    """
    # Create x402Client
    client = x402Client(
        account,
        max_value=max_value,
        payment_requirements_selector=payment_requirements_selector,
    )

    # Create hooks
    hooks = HttpxHooks(client, http_client)

    # Return event hooks dictionary
    return {
        "request": [hooks.on_request],
        "response": [hooks.on_response],
    }


class x402HttpxClient(AsyncClient):
    """AsyncClient with built-in x402 payment handling."""

    def __init__(
        self,
        account: Any,
        max_value: Optional[int] = None,
        payment_requirements_selector: Optional[PaymentSelectorCallable] = None,
        **kwargs,
    ):
        """Initialize an AsyncClient with x402 payment handling.

        Args:
            account: eth_account account or TypedDataSigner for signing payments
            max_value: Optional maximum allowed payment amount in base units
            payment_requirements_selector: Optional custom selector for payment requirements.
            **kwargs: Additional arguments to pass to AsyncClient
        """
        super().__init__(**kwargs)
        self.event_hooks = x402_payment_hooks(
            account, max_value, payment_requirements_selector, http_client=self
        )
