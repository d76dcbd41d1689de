from typing import Literal, get_args


SupportedNetworks = Literal["base-sepolia", "base", "avalanche-fuji", "avalanche"]

SUPPORTED_EVM_NETWORKS: list[str] = list(get_args(SupportedNetworks))

EVM_NETWORK_TO_CHAIN_ID = {
    "base-sepolia": 84532,
    "base": 8453,
    "avalanche-fuji": 43113,
    "avalanche": 43114,
}
