import secrets
import string
import threading
from datetime import datetime, timezone
from typing import Optional, Protocol

from pydantic import BaseModel, Field

SHORT_CODE_ALPHABET = string.ascii_letters + string.digits
SHORT_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 5


class ShortLink(BaseModel):
    """A paid short link, with the payment proof kept for audit."""

    original_url: str
    short_code: str
    payment_header: str
    receiver_address: str
    payment_amount: str
    payment_currency: str = "USDC"
    network: str
    payer: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DuplicateShortCodeError(Exception):
    """Raised when inserting a link whose short code is already taken."""

    pass


class LinkStore(Protocol):
    def get(self, short_code: str) -> Optional[ShortLink]: ...

    def insert(self, link: ShortLink) -> ShortLink: ...


class InMemoryLinkStore:
    def __init__(self):
        self._links: dict[str, ShortLink] = {}
        self._lock = threading.Lock()

    def get(self, short_code: str) -> Optional[ShortLink]:
        with self._lock:
            return self._links.get(short_code)

    def insert(self, link: ShortLink) -> ShortLink:
        with self._lock:
            if link.short_code in self._links:
                raise DuplicateShortCodeError(link.short_code)
            self._links[link.short_code] = link
            return link

    def __len__(self) -> int:
        with self._lock:
            return len(self._links)


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


def allocate_short_code(store: LinkStore, attempts: int = MAX_CODE_ATTEMPTS) -> str:
    """Find an unused short code, giving up after ``attempts`` collisions."""
    for _ in range(attempts):
        code = generate_short_code()
        if store.get(code) is None:
            return code
    raise DuplicateShortCodeError(f"No free short code after {attempts} attempts")
