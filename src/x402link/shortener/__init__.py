from x402link.shortener.app import create_app
from x402link.shortener.store import InMemoryLinkStore, LinkStore, ShortLink

__all__ = ["create_app", "InMemoryLinkStore", "LinkStore", "ShortLink"]
