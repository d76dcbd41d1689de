from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from x402link.chains import (
    get_chain_id,
    get_default_token_address,
    get_token_decimals,
    get_token_name,
    get_token_version,
)
from x402link.types import (
    PaymentPayload,
    PaymentRequirements,
    Price,
    TokenAmount,
)

x402_VERSION = 1

DEFAULT_TOKEN_NAME = "USD Coin"
DEFAULT_TOKEN_VERSION = "2"


def parse_money(money: Any, network: str) -> TokenAmount:
    """Convert a USD money value into the default stablecoin's atomic units.

    Args:
        money: "$0.01", "0.01", 0.01 or 1
        network: network whose default USDC deployment should be used

    Returns:
        TokenAmount in the asset's smallest unit
    """
    if isinstance(money, str):
        money = money.strip().lstrip("$").replace(",", "")
    try:
        value = Decimal(str(money))
    except InvalidOperation:
        raise ValueError(f"Invalid money amount: {money}")
    if value < 0:
        raise ValueError(f"Money amount must not be negative: {money}")

    chain_id = get_chain_id(network)
    asset_address = get_default_token_address(chain_id)
    decimals = get_token_decimals(chain_id, asset_address)

    atomic = value * (Decimal(10) ** decimals)
    if atomic != atomic.to_integral_value():
        raise ValueError(
            f"Money amount {money} has more precision than the asset's {decimals} decimals"
        )

    return TokenAmount.model_validate(
        {
            "amount": str(int(atomic)),
            "asset": {
                "address": asset_address,
                "decimals": decimals,
                "eip712": {
                    "name": get_token_name(chain_id, asset_address),
                    "version": get_token_version(chain_id, asset_address),
                },
            },
        }
    )


def process_price_to_atomic_amount(
    price: Price, network: str
) -> tuple[str, str, dict[str, Any]]:
    """Process a Price into atomic amount, asset address, and EIP-712 domain info

    Args:
        price: Either Money (USD string/int/float) or TokenAmount
        network: Network identifier

    Returns:
        Tuple of (max_amount_required, asset_address, eip712_domain)

    Raises:
        ValueError: If price format is invalid or the network has no default asset
    """
    if not isinstance(price, TokenAmount):
        price = parse_money(price, network)

    return (
        price.amount,
        price.asset.address,
        {
            "name": price.asset.eip712.name,
            "version": price.asset.eip712.version,
        },
    )


def find_matching_payment_requirements(
    payment_requirements: list[PaymentRequirements],
    payment: PaymentPayload,
) -> Optional[PaymentRequirements]:
    """Find the offered requirements the payment was created against.

    Matching is on scheme and network only; amount, asset and recipient are
    checked later against the returned (server-side) requirements.
    """
    for requirements in payment_requirements:
        if (
            requirements.scheme == payment.scheme
            and requirements.network == payment.network
        ):
            return requirements
    return None
