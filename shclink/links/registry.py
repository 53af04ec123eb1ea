"""
Link policy registry.

A link policy holds the claim terms for one shareable package: an optional
PIN, how many clients may claim it, and the read grants a successful claim
yields. Claims and replacements for a given link are serialized through the
underlying ``KeyedStore`` so concurrent claims can never exceed the limit and
PIN failure counting cannot race.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..config import ServiceConfig
from ..errors import (
    ClaimLimitReached,
    ClaimRejected,
    InvalidRequest,
    LinkInactive,
    LinkNotFound,
    LinkOwnershipConflict,
    PinMismatch,
)
from ..gnap.types import AccessType, ClientIdentity, RARItem
from ..store.keyed import KeyedStore

logger = logging.getLogger(__name__)


@dataclass
class LinkClaim:
    client: ClientIdentity
    claimed_at: float
    active: bool = True


@dataclass
class LinkTerms:
    """What a share request asks the registry to store."""
    owner: str
    claim_limit: int
    granted_access: List[RARItem]
    pin: Optional[str] = None


@dataclass
class LinkPolicy:
    id: str
    owner: str
    claim_limit: int
    granted_access: List[RARItem]
    pin: Optional[str] = None
    claims: List[LinkClaim] = field(default_factory=list)
    failures: int = 0
    active: bool = True
    revision: int = 1

    @property
    def remaining_claims(self) -> int:
        return max(self.claim_limit - len(self.claims), 0)

    def pin_matches(self, supplied: Optional[str]) -> bool:
        if self.pin is None:
            return True
        if supplied is None:
            return False
        return hmac.compare_digest(self.pin.encode("utf-8"), supplied.encode("utf-8"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "needPin": self.pin is not None,
            "claimLimit": self.claim_limit,
            "claims": len(self.claims),
            "failures": self.failures,
            "active": self.active,
            "access": [item.to_wire() for item in self.granted_access],
        }


@dataclass
class ClaimGrant:
    link_id: str
    granted_access: List[RARItem]
    revision: int


ReplacedCallback = Callable[[str], Awaitable[Any]]


class LinkRegistry:
    """Keyed store of link policies with an atomic claim operation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        self.config = config or ServiceConfig()
        self.lockout_threshold = self.config.pin_lockout_threshold
        self._links: KeyedStore[LinkPolicy] = KeyedStore(name="link_policies")

    async def get(self, link_id: str) -> Optional[LinkPolicy]:
        return await self._links.get(link_id)

    async def is_current(self, link_id: str, revision: Optional[int]) -> bool:
        """True when ``link_id`` still has the policy ``revision``."""
        policy = await self._links.get(link_id)
        return policy is not None and policy.revision == revision

    async def put(self, link_id: str, terms: LinkTerms, on_replaced: Optional[ReplacedCallback] = None) -> LinkPolicy:
        """Replace the policy for ``link_id`` with fresh terms.

        Claims and the failure counter start over. ``on_replaced`` runs while
        the link is still locked, so cascading token revocation completes
        before any claim can observe the new policy.
        """
        if not isinstance(terms.claim_limit, int) or isinstance(terms.claim_limit, bool) or terms.claim_limit < 1:
            raise InvalidRequest("claimLimit must be an integer >= 1")
        for item in terms.granted_access:
            if item.type != AccessType.READ:
                raise InvalidRequest(f"link policies may only grant {AccessType.READ.value}")

        async with self._links.locked(link_id):
            existing = self._links.get_unlocked(link_id)
            if existing is not None and existing.owner != terms.owner:
                raise LinkOwnershipConflict(
                    f"link {link_id} belongs to another client",
                    details={"link_id": link_id},
                )
            policy = LinkPolicy(
                id=link_id,
                owner=terms.owner,
                claim_limit=terms.claim_limit,
                granted_access=list(terms.granted_access),
                pin=terms.pin,
                revision=existing.revision + 1 if existing else 1,
            )
            self._links.put_unlocked(link_id, policy)
            if on_replaced is not None:
                await on_replaced(link_id)
        logger.info("Link policy %s set (revision %d, claim limit %d)", link_id, policy.revision, policy.claim_limit)
        return policy

    async def claim(self, link_id: str, supplied_pin: Optional[str], client: ClientIdentity) -> ClaimGrant:
        """Atomically check the link's terms and record a claim by ``client``."""

        async def _claim(policy: Optional[LinkPolicy]) -> Tuple[Optional[LinkPolicy], Union[ClaimGrant, ClaimRejected]]:
            if policy is None:
                return None, LinkNotFound(f"no link policy {link_id}", details={"link_id": link_id})
            if not policy.active:
                return policy, LinkInactive(f"link {link_id} is no longer active", details={"link_id": link_id})
            if not policy.pin_matches(supplied_pin):
                policy.failures += 1
                if policy.failures >= self.lockout_threshold:
                    policy.active = False
                    logger.warning("Link %s locked after %d PIN failures", link_id, policy.failures)
                return policy, PinMismatch(
                    failures=policy.failures,
                    remaining_attempts=max(self.lockout_threshold - policy.failures, 0),
                )
            policy.failures = 0
            if len(policy.claims) >= policy.claim_limit:
                return policy, ClaimLimitReached(
                    f"link {link_id} reached its claim limit of {policy.claim_limit}",
                    details={"link_id": link_id, "claim_limit": policy.claim_limit},
                )
            policy.claims.append(LinkClaim(client=client, claimed_at=self.config.now()))
            return policy, ClaimGrant(link_id=link_id, granted_access=list(policy.granted_access), revision=policy.revision)

        outcome = await self._links.mutate(link_id, _claim)
        if isinstance(outcome, ClaimRejected):
            logger.warning("Claim on link %s by %s rejected: %s", link_id, client.key_id, outcome.reason)
            raise outcome
        logger.info("Link %s claimed by %s", link_id, client.key_id)
        return outcome

    async def count(self) -> int:
        return len(self._links)


__all__ = [
    "LinkClaim",
    "LinkTerms",
    "LinkPolicy",
    "ClaimGrant",
    "LinkRegistry",
]
