"""
Bearer credential resolution.

Tokens are opaque random strings; only their SHA-256 is stored.
"""

import secrets
from typing import Optional

from .storage import SettlementStore

BEARER_SCHEME = "bearer"


def issue_token(store: SettlementStore, user_id: str) -> str:
    token = secrets.token_urlsafe(32)
    store.save_token(token, user_id)
    return token


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Extract the token from an Authorization header value."""
    if not header:
        return None
    parts = header.split()
    if parts and parts[0].lower() == BEARER_SCHEME:
        parts = parts[1:]
    if len(parts) != 1:
        return None
    return parts[0]


def resolve_bearer(store: SettlementStore, header: Optional[str]) -> Optional[str]:
    """Map an Authorization header to a user id, or None if unknown."""
    token = parse_bearer(header)
    if token is None:
        return None
    return store.user_for_token(token)
