"""Shorten a URL, paying for it with x402."""

import asyncio
import os
import sys

from dotenv import load_dotenv
from eth_account import Account

from x402link.clients.base import decode_x_payment_response
from x402link.clients.httpx import x402HttpxClient
from x402link.exceptions import PaymentAmountExceededError, PaymentError

load_dotenv()

# 0.1 USDC
MAX_PAYMENT = 100_000


def validate_environment() -> tuple[str, str]:
    """Validate required environment variables.

    Returns:
        Tuple of (private_key, base_url).

    Raises:
        SystemExit: If required environment variables are missing.
    """
    private_key = os.getenv("PRIVATE_KEY")
    base_url = os.getenv("RESOURCE_SERVER_URL", "http://localhost:3000")

    if not private_key:
        print("Error: Missing required environment variable PRIVATE_KEY")
        print("Please copy .env-local to .env and fill in the values.")
        sys.exit(1)

    return private_key, base_url


async def main(original_url: str) -> None:
    private_key, base_url = validate_environment()

    account = Account.from_key(private_key)
    print(f"Initialized account: {account.address}")

    async with x402HttpxClient(
        account=account, max_value=MAX_PAYMENT, base_url=base_url
    ) as client:
        try:
            response = await client.post(
                "/api/create-short-url", json={"originalUrl": original_url}
            )
        except PaymentAmountExceededError as e:
            print(f"Refusing to pay {e.required}, limit is {e.max_value}")
            sys.exit(1)
        except PaymentError as e:
            print(f"Payment failed: {e}")
            sys.exit(1)

        print(f"Response status: {response.status_code}")
        print(f"Response body: {response.text}")

        if "X-PAYMENT-RESPONSE" in response.headers:
            payment = decode_x_payment_response(response.headers["X-PAYMENT-RESPONSE"])
            print(f"Paid on {payment['network']} by {payment['payer']}")


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "https://example.com"))
