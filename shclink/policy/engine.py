"""Access policy evaluation for GNAP transaction requests.

Each requested access item is run through a fixed, ordered chain of
evaluators; the first one producing a non-empty grant wins and later ones
are not consulted. An item no evaluator grants is simply left out of the
issued token.

Evaluators, in order:
 - ``anyone_can_initialize``: the ``shclink-initialize`` reference mints a new
   package inside the caller's own namespace. Open to anyone since every right
   it yields is confined to that namespace.
 - ``creator_can_manage``: modify/share items whose locations all sit inside
   the caller's namespace are granted unchanged.
 - ``anyone_can_claim_active_link``: a link id reference is claimed against the
   link's terms (PIN, claim limit) and yields the link's read grants.

Identity is always the key that signed the request, never a self-declared
``kid``; a verified signature alone grants nothing.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..config import ServiceConfig
from ..errors import ClaimRejected
from ..gnap.types import (
    INITIALIZE_REFERENCE,
    AccessItem,
    AccessType,
    Anyone,
    ClientIdentity,
    Keyholder,
    Permission,
    PolicyRecord,
    RARItem,
    Reference,
)
from ..links.registry import LinkRegistry
from ..locations import client_namespace, data_location, policy_location

logger = logging.getLogger(__name__)

PACKAGE_ACTIONS = ("POST", "GET", "PUT", "DELETE")
MANAGEABLE_TYPES = (AccessType.MODIFY, AccessType.SHARE)


def new_package_id() -> str:
    return str(uuid.uuid4())


@dataclass
class PolicyContext:
    """Inputs shared by every evaluator for one transaction request."""
    client: ClientIdentity
    pin: Optional[str] = None


@dataclass
class Grant:
    granted_access: List[AccessItem]
    enabling_policies: List[PolicyRecord]

    def __bool__(self) -> bool:
        return bool(self.granted_access)


@dataclass
class ItemRejection:
    """A requested item whose evaluation ended in an explicit rejection."""
    item: AccessItem
    error: ClaimRejected

    def to_dict(self) -> Dict[str, Any]:
        return {"access": self.item.to_wire(), **self.error.to_dict()}


@dataclass
class PolicyDecision:
    """Accumulated outcome of evaluating a whole access request."""
    granted_access: List[AccessItem] = field(default_factory=list)
    enabling_policies: List[PolicyRecord] = field(default_factory=list)
    rejections: List[ItemRejection] = field(default_factory=list)

    def add(self, grant: Grant) -> None:
        self.granted_access.extend(grant.granted_access)
        self.enabling_policies.extend(grant.enabling_policies)

    @property
    def claims(self) -> List[PolicyRecord]:
        return [p for p in self.enabling_policies if p.permission == Permission.CLAIM]


@dataclass
class PolicyEnvironment:
    """Collaborators the evaluators may consult."""
    config: ServiceConfig
    links: LinkRegistry
    new_package_id: Callable[[], str] = new_package_id


Evaluator = Callable[[AccessItem, PolicyContext, PolicyEnvironment], Awaitable[Optional[Grant]]]


async def anyone_can_initialize(item: AccessItem, ctx: PolicyContext, env: PolicyEnvironment) -> Optional[Grant]:
    if not isinstance(item, Reference) or item.link_id != INITIALIZE_REFERENCE:
        return None
    package_id = env.new_package_id()
    key_id = ctx.client.key_id
    return Grant(
        granted_access=[
            RARItem(
                type=AccessType.MODIFY.value,
                actions=PACKAGE_ACTIONS,
                locations=(data_location(env.config, key_id, package_id),),
            ),
            RARItem(
                type=AccessType.SHARE.value,
                actions=PACKAGE_ACTIONS,
                locations=(policy_location(env.config, key_id, package_id),),
            ),
        ],
        enabling_policies=[PolicyRecord(who=Anyone(), permission=Permission.INITIALIZE)],
    )


async def creator_can_manage(item: AccessItem, ctx: PolicyContext, env: PolicyEnvironment) -> Optional[Grant]:
    if not isinstance(item, RARItem) or item.type not in MANAGEABLE_TYPES:
        return None
    prefix = client_namespace(env.config, ctx.client.key_id)
    if not all(location.startswith(prefix) for location in item.locations):
        return None
    return Grant(
        granted_access=[item],
        enabling_policies=[
            PolicyRecord(
                who=Keyholder(ctx.client.key_id),
                permission=Permission.MANAGE,
                package=ctx.client.key_id,
            )
        ],
    )


async def anyone_can_claim_active_link(item: AccessItem, ctx: PolicyContext, env: PolicyEnvironment) -> Optional[Grant]:
    if not isinstance(item, Reference) or item.link_id == INITIALIZE_REFERENCE:
        return None
    if await env.links.get(item.link_id) is None:
        return None
    claim = await env.links.claim(item.link_id, ctx.pin, ctx.client)
    return Grant(
        granted_access=list(claim.granted_access),
        enabling_policies=[
            PolicyRecord(who=Anyone(), permission=Permission.CLAIM, package=claim.link_id, revision=claim.revision)
            for _ in claim.granted_access
        ],
    )


DEFAULT_EVALUATORS: Tuple[Evaluator, ...] = (
    anyone_can_initialize,
    creator_can_manage,
    anyone_can_claim_active_link,
)


class PolicyEngine:
    """Runs the first-policy-wins evaluator chain."""

    def __init__(self, env: PolicyEnvironment, evaluators: Sequence[Evaluator] = DEFAULT_EVALUATORS):
        self.env = env
        self.evaluators: Tuple[Evaluator, ...] = tuple(evaluators)

    async def evaluate(self, item: AccessItem, ctx: PolicyContext) -> Optional[Grant]:
        """Return the first non-empty grant for ``item``.

        Raises:
            ClaimRejected: the item named a link whose terms refused the claim.
        """
        for evaluator in self.evaluators:
            grant = await evaluator(item, ctx, self.env)
            if grant:
                logger.debug("%s granted %s to %s", evaluator.__name__, item.to_wire(), ctx.client.key_id)
                return grant
        logger.debug("No policy granted %s to %s", item.to_wire(), ctx.client.key_id)
        return None

    async def evaluate_all(self, items: Sequence[AccessItem], ctx: PolicyContext) -> PolicyDecision:
        """Evaluate each item in order and accumulate the grants."""
        decision = PolicyDecision()
        for item in items:
            try:
                grant = await self.evaluate(item, ctx)
            except ClaimRejected as e:
                decision.rejections.append(ItemRejection(item=item, error=e))
                continue
            if grant:
                decision.add(grant)
        return decision


__all__ = [
    "PACKAGE_ACTIONS",
    "PolicyContext",
    "Grant",
    "ItemRejection",
    "PolicyDecision",
    "PolicyEnvironment",
    "Evaluator",
    "anyone_can_initialize",
    "creator_can_manage",
    "anyone_can_claim_active_link",
    "DEFAULT_EVALUATORS",
    "PolicyEngine",
]
