"""
Access token store.

Tokens are opaque ``secrets.token_urlsafe`` values mapped to the rights they
carry. Expiry is evaluated lazily at introspection; ``cleanup`` exists for
housekeeping only.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..config import ServiceConfig
from ..gnap.types import AccessItem, AccessToken, ClientIdentity, PolicyRecord
from ..store.keyed import KeyedStore

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


@dataclass
class Introspection:
    """Result of looking up a token value. Absence is data, not an error."""
    token: Optional[AccessToken]
    valid: bool

    @property
    def found(self) -> bool:
        return self.token is not None


class AccessTokenStore:
    """Keyed store of issued capability tokens."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        self.config = config or ServiceConfig()
        self._tokens: KeyedStore[AccessToken] = KeyedStore(name="access_tokens")

    def _new_value(self) -> str:
        while True:
            value = secrets.token_urlsafe(TOKEN_BYTES)
            if value not in self._tokens:
                return value

    async def save(
        self,
        granted_access: List[AccessItem],
        enabling_policies: List[PolicyRecord],
        bound_client: ClientIdentity,
    ) -> AccessToken:
        now = self.config.now()
        token = AccessToken(
            value=self._new_value(),
            bound_client=bound_client,
            granted_access=list(granted_access),
            enabling_policies=list(enabling_policies),
            expiration_time=now + self.config.token_ttl,
            issued_at=now,
        )
        await self._tokens.put(token.value, token)
        logger.debug("Stored token for client %s with %d grants", bound_client.key_id, len(token.granted_access))
        return token

    async def introspect(self, value: str) -> Introspection:
        token = await self._tokens.get(value)
        if token is None:
            return Introspection(token=None, valid=False)
        return Introspection(token=token, valid=token.is_valid(self.config.now()))

    async def revoke(self, value: str) -> bool:
        return await self._tokens.delete(value)

    async def revoke_by_package(self, package_id: str) -> int:
        """Delete every token enabled by a claim against ``package_id``.

        Tokens whose rights came from ``manage`` or ``initialize`` are kept.
        """
        removed = await self._tokens.delete_where(
            lambda token: any(p.is_claim_on(package_id) for p in token.enabling_policies)
        )
        if removed:
            logger.info("Revoked %d token(s) claimed from package %s", len(removed), package_id)
        return len(removed)

    async def cleanup(self) -> int:
        """Remove expired tokens and return count removed."""
        now = self.config.now()
        removed = await self._tokens.delete_where(lambda token: not token.is_valid(now))
        if removed:
            logger.info("Cleaned up %d expired tokens", len(removed))
        return len(removed)

    async def count(self) -> int:
        return len(self._tokens)

    async def get_statistics(self) -> Dict[str, Any]:
        now = self.config.now()
        tokens = [t for _, t in await self._tokens.items()]
        return {
            "total_tokens": len(tokens),
            "valid_tokens": sum(1 for t in tokens if t.is_valid(now)),
            "token_ttl": self.config.token_ttl,
        }


__all__ = ["AccessTokenStore", "Introspection"]
