"""
Token store package.

Holds issued GNAP access tokens with lazy expiry and cascading revocation
by link package.
"""

from .store import AccessTokenStore, Introspection

__all__ = [
    "AccessTokenStore",
    "Introspection",
]
