"""
SHC link authorization service.

This module wires the request authenticator, policy engine, token store,
link registry and resource gate into the three operations an HTTP adapter
exposes:

- ``request_access``  (``POST /gnap``)
- ``put_policy``      (``PUT {namespace}/{clientId}/{packageId}/policy``)
- ``read_resource``   (``GET {namespace}/{clientId}/{packageId}/data/{file}``)

Handlers take a ``SignedRequest`` and either return a JSON-ready result or
raise an ``SHCLinkError`` subclass; mapping errors to HTTP statuses is left to
the adapter.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional

from ..access import ResourceAccessGate
from ..audit import AuditLogger
from ..config import ServiceConfig
from ..errors import (
    AccessDenied,
    AuthenticationFailure,
    InvalidRequest,
    LinkInactive,
    ShareRejected,
    UnknownToken,
)
from ..gnap.authenticator import AuthenticatedRequest, RequestAuthenticator
from ..gnap.types import AccessType, RARItem, SignedRequest, TransactionRequest
from ..links.registry import LinkRegistry, LinkTerms
from ..locations import data_prefix, parse_location
from ..monitoring.metrics import MetricsRegistry
from ..policy.engine import PolicyContext, PolicyDecision, PolicyEngine, PolicyEnvironment
from ..tokenstore.store import AccessTokenStore

logger = logging.getLogger(__name__)

ResourceLoader = Callable[[str], Awaitable[Any]]

POLICY_REPLACED_STATUS = "PUT new policy"


async def _no_resources(location: str) -> Any:
    raise AccessDenied(f"no resource loader configured for {location}", details={"location": location})


def filtered_bundle_loader(bundle: Dict[str, Any]) -> ResourceLoader:
    """Serve a FHIR bundle filtered to entries mentioning the requested file's stem.

    ``.../data/Immunization.json`` yields the bundle with only the entries whose
    JSON text contains ``Immunization`` (case-insensitive).
    """

    async def load(location: str) -> Dict[str, Any]:
        stem = location.rsplit("/", 1)[-1].replace(".json", "")
        pattern = re.compile(re.escape(stem), re.IGNORECASE)
        entries = [e for e in bundle.get("entry", []) if pattern.search(json.dumps(e))]
        return {**bundle, "entry": entries}

    return load


class SHCLinkService:
    """
    Delegated-authorization core for SMART Health Card link sharing.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        resource_loader: Optional[ResourceLoader] = None,
        metrics: Optional[MetricsRegistry] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.config = config or ServiceConfig()
        self.resource_loader: ResourceLoader = resource_loader or _no_resources
        self.tokens = AccessTokenStore(self.config)
        self.links = LinkRegistry(self.config)
        self.engine = PolicyEngine(PolicyEnvironment(config=self.config, links=self.links))
        self.authenticator = RequestAuthenticator(self.tokens, self.config)
        self.gate = ResourceAccessGate()
        self.metrics = metrics or MetricsRegistry()
        self.audit = audit or AuditLogger()

    async def authenticate(self, request: SignedRequest) -> AuthenticatedRequest:
        try:
            return await self.authenticator.authenticate(request)
        except (AuthenticationFailure, UnknownToken) as e:
            self.metrics.observe_auth_failure(e.reason)
            raise

    async def request_access(self, request: SignedRequest) -> Dict[str, Any]:
        """
        Negotiate an access token for a GNAP transaction request.

        Claims are recorded as each item is evaluated. If a claimed link is
        replaced before the token is saved, the token is withdrawn with
        ``LinkInactive``; claim slots already taken on other links named in
        the same request stay consumed.

        Args:
            request: Signed ``POST /gnap`` request

        Returns:
            ``{"access_token": {"value": ..., "access": [...]}}``

        Raises:
            AuthenticationFailure: If the proof-of-possession check fails
            InvalidRequest: If the transaction body is malformed
            ClaimRejected: If nothing was granted and a link claim was refused
        """
        auth = await self.authenticate(request)
        tx = TransactionRequest.from_payload(auth.payload)
        if tx.client is not None and tx.client.key_id != auth.client.key_id:
            raise InvalidRequest("declared client key does not match the signing key")

        ctx = PolicyContext(client=auth.client, pin=tx.pin)
        decision = await self.engine.evaluate_all(tx.access, ctx)
        self._record_rejections(decision, auth.client.key_id)
        if not decision.granted_access and decision.rejections:
            raise decision.rejections[0].error

        token = await self.tokens.save(decision.granted_access, decision.enabling_policies, auth.client)

        # A policy replacement may have landed between the claim and the save;
        # its revocation sweep cannot have seen this token.
        for record in decision.claims:
            if not await self.links.is_current(record.package, record.revision):
                await self.tokens.revoke(token.value)
                logger.warning("Link %s changed while issuing a token; token withdrawn", record.package)
                raise LinkInactive(
                    f"link {record.package} was replaced during the claim",
                    details={"link_id": record.package},
                )

        claimed = {record.package for record in decision.claims}
        if claimed:
            self.metrics.observe_claim("granted", len(claimed))
        self.metrics.observe_issued()
        self.audit.log_token_issued(token.value, auth.client.key_id, len(token.granted_access))
        logger.info("Issued token to %s with %d grant(s)", auth.client.key_id, len(token.granted_access))
        return {"access_token": token.to_response()}

    def _record_rejections(self, decision: PolicyDecision, client_id: str) -> None:
        for rejection in decision.rejections:
            link_id = str(rejection.item.to_wire())
            self.metrics.observe_claim(rejection.error.reason)
            self.audit.log_claim_rejected(link_id, client_id, rejection.error.reason)

    async def put_policy(self, request: SignedRequest) -> Dict[str, Any]:
        """
        Replace the link policy of a package.

        Every token previously obtained by claiming the package is revoked
        before the new policy becomes claimable.

        Raises:
            AccessDenied: If the token lacks share access to this exact URL
            ShareRejected: If a location lies outside the package's data area
        """
        auth = await self.authenticate(request)
        self._require(auth, request.url, AccessType.SHARE)

        location = parse_location(self.config, request.url)
        if location.kind != "policy":
            raise InvalidRequest(f"{request.url} is not a policy location")
        terms = self._parse_terms(auth, location.client_id, location.package_id)

        revoked = 0

        async def _revoke(link_id: str) -> None:
            nonlocal revoked
            revoked = await self.tokens.revoke_by_package(link_id)

        policy = await self.links.put(location.package_id, terms, on_replaced=_revoke)
        self.metrics.observe_revoked(revoked)
        self.audit.log_policy_replaced(policy.id, policy.owner, policy.revision, revoked)
        return {
            "status": POLICY_REPLACED_STATUS,
            "gnap": {"url": self.config.gnap_endpoint, "access": location.package_id},
            "revoked": revoked,
        }

    def _parse_terms(self, auth: AuthenticatedRequest, client_id: str, package_id: str) -> LinkTerms:
        body = auth.payload
        if not isinstance(body, dict):
            raise InvalidRequest("policy body must be an object")

        pin = body.get("pin", body.get("needPin"))
        if pin is not None and not isinstance(pin, str):
            raise InvalidRequest("needPin must be a string PIN")

        locations = body.get("locations")
        if not isinstance(locations, list) or not locations or not all(isinstance(l, str) for l in locations):
            raise InvalidRequest("locations must be a non-empty list of strings")
        allowed = data_prefix(self.config, client_id, package_id)
        outside = [l for l in locations if not l.startswith(allowed)]
        if outside:
            raise ShareRejected(
                f"requested access to data locations outside of managed package {allowed}",
                details={"locations": outside, "allowed_prefix": allowed},
            )

        return LinkTerms(
            owner=auth.client.key_id,
            claim_limit=body.get("claimLimit"),
            granted_access=[RARItem(type=AccessType.READ.value, locations=tuple(locations))],
            pin=pin or None,
        )

    async def read_resource(self, request: SignedRequest) -> Any:
        """Return the resource at the request URL if the token grants read on it."""
        auth = await self.authenticate(request)
        self._require(auth, request.url, AccessType.READ)
        return await self.resource_loader(request.url)

    def _require(self, auth: AuthenticatedRequest, location: str, access_type: AccessType) -> None:
        try:
            self.gate.require(auth, location, access_type)
        except AccessDenied as e:
            self.audit.log_access_denied(location, auth.client.key_id, e.reason)
            raise

    async def get_statistics(self) -> Dict[str, Any]:
        stats = await self.tokens.get_statistics()
        stats["link_policies"] = await self.links.count()
        stats["metrics"] = self.metrics.snapshot()
        return stats


__all__ = [
    "ResourceLoader",
    "SHCLinkService",
    "filtered_bundle_loader",
    "POLICY_REPLACED_STATUS",
]
