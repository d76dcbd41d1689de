import os
import re
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from x402link.facilitator import DEFAULT_FACILITATOR_URL
from x402link.networks import SUPPORTED_EVM_NETWORKS

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# environment variable -> Settings field
ENV_VARS = {
    "ADDRESS": "address",
    "NETWORK": "network",
    "PRICE": "price",
    "FACILITATOR_URL": "facilitator_url",
    "MAX_TIMEOUT_SECONDS": "max_timeout_seconds",
    "BASE_URL": "base_url",
    "SETTLE_PAYMENTS": "settle_payments",
}


class Settings(BaseModel):
    """Server configuration for the paid short-link service."""

    address: str
    network: str = "base-sepolia"
    price: str = "$0.001"
    facilitator_url: str = DEFAULT_FACILITATOR_URL
    max_timeout_seconds: int = 60
    base_url: str = "http://localhost:3000"
    settle_payments: bool = False
    description: str = "URL Shortening Service"

    @field_validator("address")
    def validate_address(cls, v):
        if not _ADDRESS_RE.match(v):
            raise ValueError("address must be a 0x-prefixed 20-byte hex address")
        return v

    @field_validator("network")
    def validate_network(cls, v):
        if v not in SUPPORTED_EVM_NETWORKS:
            raise ValueError(f"network must be one of {SUPPORTED_EVM_NETWORKS}")
        return v

    @field_validator("base_url", "facilitator_url")
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from environment variables, loading .env first."""
        load_dotenv(env_file)

        if not os.getenv("ADDRESS"):
            raise ValueError("Missing required environment variable ADDRESS")

        values = {
            field: os.getenv(var)
            for var, field in ENV_VARS.items()
            if os.getenv(var) is not None
        }
        return cls.model_validate(values)
