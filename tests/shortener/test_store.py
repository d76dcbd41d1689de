from unittest.mock import patch

import pytest

from x402link.shortener.store import (
    MAX_CODE_ATTEMPTS,
    SHORT_CODE_ALPHABET,
    DuplicateShortCodeError,
    InMemoryLinkStore,
    ShortLink,
    allocate_short_code,
    generate_short_code,
)


def make_link(short_code="abc123"):
    return ShortLink(
        original_url="https://example.com/a/very/long/path",
        short_code=short_code,
        payment_header="eyJ4NDAyVmVyc2lvbiI6IDF9",
        receiver_address="0x1111111111111111111111111111111111111111",
        payment_amount="1000",
        network="base-sepolia",
        payer="0x1234567890123456789012345678901234567890",
    )


def test_generate_short_code():
    code = generate_short_code()
    assert len(code) == 6
    assert all(c in SHORT_CODE_ALPHABET for c in code)
    assert len({generate_short_code() for _ in range(100)}) > 90


def test_store_insert_and_get():
    store = InMemoryLinkStore()
    link = make_link()

    assert store.insert(link) is link
    assert store.get("abc123") == link
    assert store.get("zzz999") is None
    assert len(store) == 1


def test_store_duplicate_insert():
    store = InMemoryLinkStore()
    store.insert(make_link())

    with pytest.raises(DuplicateShortCodeError):
        store.insert(make_link())


def test_short_link_defaults():
    link = make_link()
    assert link.payment_currency == "USDC"
    assert link.created_at.tzinfo is not None


def test_allocate_short_code_retries_collisions():
    store = InMemoryLinkStore()
    store.insert(make_link("taken1"))

    with patch(
        "x402link.shortener.store.generate_short_code",
        side_effect=["taken1", "taken1", "free01"],
    ):
        assert allocate_short_code(store) == "free01"


def test_allocate_short_code_gives_up():
    store = InMemoryLinkStore()
    store.insert(make_link("taken1"))

    with patch(
        "x402link.shortener.store.generate_short_code", return_value="taken1"
    ) as generate:
        with pytest.raises(DuplicateShortCodeError):
            allocate_short_code(store)

    assert generate.call_count == MAX_CODE_ATTEMPTS
