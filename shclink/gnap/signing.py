"""
Client-side request signing.

``SignedClient`` produces ``SignedRequest`` objects carrying a compact JWS
whose protected header binds the request method, absolute URL and creation
time (and, when a token is used, its ``ath`` hash). For methods without a
body the JWS travels in the ``Detached-JWS`` header; otherwise it is the
``application/jose`` body.
"""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Optional, Sequence

import jwt

from .keys import ALGORITHM, KeyPair, access_token_hash, new_key_pair
from .types import ClientIdentity, SignedRequest

JWS_TYPE = "gnap-binding+jws"
DETACHED_JWS_HEADER = "Detached-JWS"
JOSE_CONTENT_TYPE = "application/jose"
DEFAULT_METHODS_WITHOUT_BODY = ("OPTIONS", "HEAD", "GET")


def sign_jws_attached(
    key_pair: KeyPair,
    method: str,
    uri: str,
    payload: Optional[Any] = None,
    access_token_value: Optional[str] = None,
    created: Optional[int] = None,
) -> str:
    """Sign ``payload`` (JSON-encoded, or empty when None) with GNAP binding headers."""
    headers: Dict[str, Any] = {
        "typ": JWS_TYPE,
        "htm": method,
        "uri": uri,
        "created": int(time.time()) if created is None else created,
    }
    if access_token_value:
        headers["ath"] = access_token_hash(access_token_value)
    body = b"" if payload is None else json.dumps(payload).encode("utf-8")
    return jwt.api_jws.encode(body, key_pair.private, algorithm=ALGORITHM, headers=headers)


class SignedClient:
    """A key holder able to build signed GNAP requests."""

    def __init__(
        self,
        key_pair: Optional[KeyPair] = None,
        display: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.time,
        methods_without_body: Sequence[str] = DEFAULT_METHODS_WITHOUT_BODY,
    ):
        self.key_pair = key_pair or new_key_pair()
        self.display = display
        self.clock = clock
        self.methods_without_body = tuple(methods_without_body)

    @property
    def identity(self) -> ClientIdentity:
        return ClientIdentity.from_jwk(self.key_pair.public_jwk, display=self.display)

    @property
    def key_id(self) -> str:
        return self.identity.key_id

    def gnap_client(self) -> Dict[str, Any]:
        return self.identity.to_gnap_client()

    def transaction(self, access: Sequence[Any], pin: Optional[str] = None) -> Dict[str, Any]:
        """Build a ``POST /gnap`` body requesting ``access`` for this client."""
        body: Dict[str, Any] = {
            "access_token": {"access": list(access)},
            "client": self.gnap_client(),
        }
        if pin is not None:
            body["shclink"] = {"pin": pin}
        return body

    def request(
        self,
        method: str,
        url: str,
        body: Optional[Any] = None,
        access_token: Optional[str] = None,
        created: Optional[int] = None,
    ) -> SignedRequest:
        method = method.upper()
        jws = sign_jws_attached(
            self.key_pair,
            method,
            url,
            payload=body,
            access_token_value=access_token,
            created=int(self.clock()) if created is None else created,
        )
        headers: Dict[str, str] = {}
        if access_token:
            headers["Authorization"] = f"GNAP {access_token}"
        if method in self.methods_without_body:
            headers[DETACHED_JWS_HEADER] = jws
            return SignedRequest(method=method, url=url, headers=headers, body=None)
        headers["Content-Type"] = JOSE_CONTENT_TYPE
        return SignedRequest(method=method, url=url, headers=headers, body=jws.encode("ascii"))


__all__ = [
    "JWS_TYPE",
    "DETACHED_JWS_HEADER",
    "JOSE_CONTENT_TYPE",
    "sign_jws_attached",
    "SignedClient",
]
