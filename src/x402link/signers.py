"""Typed-data signing capabilities.

The payment flow never touches a wallet library directly. It talks to a
``TypedDataSigner``: anything with an ``address`` and a ``sign_typed_data``
method. ``sign_typed_data`` may be a plain method or a coroutine function
(remote wallets, hardware keys); both are supported by the async client path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Optional, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

SignatureResult = Union[bytes, str]


@runtime_checkable
class TypedDataSigner(Protocol):
    """Protocol for EIP-712 capable payer keys."""

    @property
    def address(self) -> str: ...

    def sign_typed_data(
        self,
        domain: dict[str, Any],
        types: dict[str, list[dict[str, str]]],
        primary_type: str,
        message: dict[str, Any],
    ) -> Union[SignatureResult, Awaitable[SignatureResult]]: ...


class EthAccountSigner:
    """Client-side EVM signer using eth_account library.

    Example:
        ```python
        from eth_account import Account
        from x402link.signers import EthAccountSigner

        signer = EthAccountSigner(Account.from_key("0x..."))
        ```

    Args:
        account: eth_account LocalAccount instance.
        chain_id: Optional chain the account is connected to. When set, it
            must match the chain of the network being paid on.
    """

    def __init__(self, account: "LocalAccount", chain_id: Optional[int] = None) -> None:
        self._account = account
        self.chain_id = chain_id

    @property
    def address(self) -> str:
        """The signer's checksummed address."""
        return self._account.address

    def sign_typed_data(
        self,
        domain: dict[str, Any],
        types: dict[str, list[dict[str, str]]],
        primary_type: str,
        message: dict[str, Any],
    ) -> bytes:
        """Sign EIP-712 typed data.

        Args:
            domain: EIP-712 domain separator.
            types: Type definitions, excluding EIP712Domain.
            primary_type: Primary type name (unused, inferred by eth_account).
            message: Message data.

        Returns:
            65-byte ECDSA signature (r, s, v).
        """
        signed = self._account.sign_typed_data(
            domain_data=domain,
            message_types=types,
            message_data=message,
        )
        return bytes(signed.signature)


def as_signer(account: Any) -> TypedDataSigner:
    """Wrap a bare eth_account account; pass signers through untouched."""
    if isinstance(account, EthAccountSigner):
        return account
    # LocalAccount exposes sign_typed_data too, but with eth_account's own
    # keyword names, so it must be adapted
    if hasattr(account, "key") and hasattr(account, "sign_message"):
        return EthAccountSigner(account)
    if isinstance(account, TypedDataSigner):
        return account
    raise TypeError(
        f"{type(account).__name__} cannot sign typed data; "
        "pass an eth_account account or a TypedDataSigner"
    )
