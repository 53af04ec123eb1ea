"""
Proof-of-possession request authentication.

Every request carries a compact JWS (``ES256``) whose protected header binds
it to the HTTP method (``htm``), the absolute request URL (``uri``), its
creation time (``created``) and, when an access token is presented, the
token's hash (``ath``).

Key resolution has two paths:

- Trusted path: ``Authorization: GNAP <token>`` names an issued token; the
  key bound to that token at issuance verifies the request.
- Bootstrap path: with no token, the verification key is read from the
  not-yet-verified payload (``client.key.jwk``). This key is self-asserted.
  Verifying the signature only proves the caller holds the matching private
  key; authority comes solely from the policy evaluation performed afterwards
  for that proven key. A successful verification is never an authorization.
"""

from __future__ import annotations

import hmac
import json
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

import jwt

from ..config import ServiceConfig
from ..errors import (
    AuthenticationFailure,
    InvalidRequest,
    InvalidSignature,
    MethodMismatch,
    MissingSignature,
    StaleRequest,
    TokenBindingMismatch,
    UnknownToken,
    UriMismatch,
)
from .keys import ALGORITHM, access_token_hash, load_public_jwk
from .signing import DETACHED_JWS_HEADER, JWS_TYPE
from .types import AccessToken, ClientIdentity, SignedRequest

if TYPE_CHECKING:  # pragma: no cover
    from ..tokenstore.store import AccessTokenStore

logger = logging.getLogger(__name__)

GNAP_SCHEME = "GNAP "


@dataclass
class AuthenticatedRequest:
    """Outcome of a successful authentication."""
    request: SignedRequest
    client: ClientIdentity
    payload: Optional[Any] = None
    access_token: Optional[AccessToken] = None
    token_value: Optional[str] = None
    token_valid: bool = False
    header: Dict[str, Any] = field(default_factory=dict)


class RequestAuthenticator:
    """Verifies GNAP-bound JWS signatures on inbound requests."""

    def __init__(self, tokens: "AccessTokenStore", config: Optional[ServiceConfig] = None):
        self.tokens = tokens
        self.config = config or tokens.config

    async def authenticate(self, request: SignedRequest) -> AuthenticatedRequest:
        """Verify ``request`` or raise an ``AuthenticationFailure``.

        A token that is not (or no longer) in the store raises ``UnknownToken``.
        """
        try:
            return await self._authenticate(request)
        except (AuthenticationFailure, UnknownToken) as e:
            logger.warning("Rejected %s %s: %s (%s)", request.method, request.url, e.reason, e.message)
            raise

    async def _authenticate(self, request: SignedRequest) -> AuthenticatedRequest:
        method = request.method.upper()
        jws = self._envelope(request, method)

        token_value = self._presented_token(request)
        access_token: Optional[AccessToken] = None
        token_valid = False
        if token_value is not None:
            introspection = await self.tokens.introspect(token_value)
            if introspection.token is None:
                raise UnknownToken("presented access token is unknown or revoked")
            access_token = introspection.token
            token_valid = introspection.valid
            client = access_token.bound_client
        else:
            client = self._self_asserted_client(jws)

        try:
            key = load_public_jwk(client.jwk)
        except InvalidRequest as e:
            raise InvalidSignature(f"unusable verification key: {e.message}") from e

        header, payload_bytes = self._verify(jws, key)
        self._check_binding(header, method, request.url, token_value)

        return AuthenticatedRequest(
            request=request,
            client=client,
            payload=self._parse_payload(payload_bytes),
            access_token=access_token,
            token_value=token_value,
            token_valid=token_valid,
            header=header,
        )

    def _envelope(self, request: SignedRequest, method: str) -> str:
        if method in self.config.methods_without_body:
            jws = request.header(DETACHED_JWS_HEADER)
        else:
            body = request.body
            jws = body.decode("ascii", errors="replace") if isinstance(body, (bytes, bytearray)) else body
        if not jws or not jws.strip():
            raise MissingSignature("no JWS found in body or header to authenticate request")
        return jws.strip()

    @staticmethod
    def _presented_token(request: SignedRequest) -> Optional[str]:
        authorization = request.header("Authorization")
        if authorization and authorization.startswith(GNAP_SCHEME):
            value = authorization[len(GNAP_SCHEME):].strip()
            return value or None
        return None

    @staticmethod
    def _self_asserted_client(jws: str) -> ClientIdentity:
        try:
            unverified = jwt.api_jws.decode_complete(jws, options={"verify_signature": False})
            payload = json.loads(unverified["payload"] or b"null")
        except (jwt.PyJWTError, ValueError) as e:
            raise InvalidSignature(f"malformed JWS: {e}") from e
        if not isinstance(payload, dict) or "client" not in payload:
            raise InvalidSignature("request declares no client key and presents no access token")
        try:
            return ClientIdentity.from_gnap_client(payload["client"])
        except InvalidRequest as e:
            raise InvalidSignature(f"unusable client key: {e.message}") from e

    @staticmethod
    def _verify(jws: str, key: Any) -> Tuple[Dict[str, Any], bytes]:
        try:
            verified = jwt.api_jws.decode_complete(jws, key=key, algorithms=[ALGORITHM])
        except jwt.PyJWTError as e:
            raise InvalidSignature(f"signature verification failed: {e}") from e
        header = verified["header"]
        if header.get("typ") != JWS_TYPE:
            raise InvalidSignature(f"expected typ {JWS_TYPE}, got {header.get('typ')}")
        return header, verified["payload"]

    def _check_binding(self, header: Dict[str, Any], method: str, url: str, token_value: Optional[str]) -> None:
        if header.get("htm") != method:
            raise MethodMismatch(f"signed htm {header.get('htm')} does not match {method}")
        if header.get("uri") != url:
            raise UriMismatch(f"signed uri {header.get('uri')} does not match {url}")
        created = header.get("created")
        if isinstance(created, bool) or not isinstance(created, (int, float)) or not math.isfinite(created):
            raise StaleRequest("signed request carries no finite numeric created time")
        skew = abs(self.config.now() - created)
        if skew > self.config.freshness_window:
            raise StaleRequest(
                f"signed request created {int(skew)} seconds away from current time",
                details={"skew": skew, "window": self.config.freshness_window},
            )
        if token_value is not None:
            expected = access_token_hash(token_value)
            ath = header.get("ath")
            if not isinstance(ath, str) or not hmac.compare_digest(ath.encode("ascii", "replace"), expected.encode("ascii")):
                raise TokenBindingMismatch("signed ath does not match the presented access token")

    @staticmethod
    def _parse_payload(payload: bytes) -> Optional[Any]:
        if not payload:
            return None
        try:
            return json.loads(payload)
        except ValueError as e:
            raise InvalidRequest(f"signed payload is not JSON: {e}") from e


__all__ = ["AuthenticatedRequest", "RequestAuthenticator", "GNAP_SCHEME"]
