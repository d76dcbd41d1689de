"""Paid URL shortener: the action behind the x402 gate.

POST /api/create-short-url costs ``settings.price``. The request body is
checked before any payment is asked for, and the route is only reached once
the payment middleware has verified an X-PAYMENT header. Lookups are free.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from x402link.config import Settings
from x402link.fastapi.middleware import require_payment
from x402link.shortener.store import (
    DuplicateShortCodeError,
    InMemoryLinkStore,
    LinkStore,
    ShortLink,
    allocate_short_code,
)
from x402link.types import PaymentPayload, PaymentRequirements, VerifyResponse

logger = logging.getLogger(__name__)

CREATE_PATH = "/api/create-short-url"


def parse_original_url(body: Any) -> Optional[str]:
    """Return the http(s) URL from a create request body, or None."""
    original_url = body.get("originalUrl") if isinstance(body, dict) else None
    if not isinstance(original_url, str) or not original_url.startswith(
        ("http://", "https://")
    ):
        return None
    return original_url


async def read_original_url(request: Request) -> Optional[str]:
    try:
        body = await request.json()
    except ValueError:
        return None
    return parse_original_url(body)


def invalid_url_response() -> JSONResponse:
    return JSONResponse({"error": "Invalid URL provided"}, status_code=400)


async def check_create_request(request: Request) -> Optional[JSONResponse]:
    """Refuse a create request with a bad URL before it is paid for."""
    if await read_original_url(request) is None:
        logger.info(f"Refused create request with invalid URL on {request.url.path}")
        return invalid_url_response()
    return None


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[LinkStore] = None,
    facilitator: Optional[Any] = None,
    nonce_store: Optional[Any] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store if store is not None else InMemoryLinkStore()

    app = FastAPI(title="x402link")
    app.state.settings = settings
    app.state.store = store

    app.middleware("http")(
        require_payment(
            path=CREATE_PATH,
            price=settings.price,
            pay_to_address=settings.address,
            network=settings.network,
            description=settings.description,
            mime_type="application/json",
            max_deadline_seconds=settings.max_timeout_seconds,
            facilitator_config={"url": settings.facilitator_url},
            settle=settings.settle_payments,
            facilitator=facilitator,
            nonce_store=nonce_store,
            request_check=check_create_request,
        )
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post(CREATE_PATH)
    async def create_short_url(request: Request):
        original_url = await read_original_url(request)
        if original_url is None:
            return invalid_url_response()

        payment: PaymentPayload = request.state.payment
        requirements: PaymentRequirements = request.state.payment_details
        verify_response: VerifyResponse = request.state.verify_response
        authorization = payment.payload.authorization

        try:
            link = store.insert(
                ShortLink(
                    original_url=original_url,
                    short_code=allocate_short_code(store),
                    payment_header=request.state.payment_header,
                    receiver_address=requirements.pay_to,
                    payment_amount=authorization.value,
                    network=requirements.network,
                    payer=verify_response.payer or authorization.from_,
                )
            )
        except DuplicateShortCodeError as e:
            logger.error(f"Could not allocate a short code: {e}")
            return JSONResponse({"error": "Failed to create short URL"}, status_code=500)

        logger.info(f"Created short link {link.short_code} for payer {link.payer}")

        return {
            "success": True,
            "shortUrl": f"{settings.base_url}/{link.short_code}",
            "shortCode": link.short_code,
            "originalUrl": link.original_url,
            "payment": {
                "verified": True,
                "receiver": link.receiver_address,
                "amount": link.payment_amount,
                "currency": link.payment_currency,
                "network": link.network,
            },
        }

    @app.get("/api/redirect/{code}")
    async def lookup_short_url(code: str):
        link = store.get(code)
        if link is None:
            return JSONResponse({"error": "Short URL not found"}, status_code=404)
        return {"originalUrl": link.original_url}

    @app.get("/{code}")
    async def follow_short_url(code: str):
        link = store.get(code)
        if link is None:
            return JSONResponse({"error": "Short URL not found"}, status_code=404)
        return RedirectResponse(link.original_url, status_code=307)

    return app
