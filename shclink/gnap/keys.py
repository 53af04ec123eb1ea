"""
Key material helpers: ES256 key pairs, public JWK loading, RFC 7638
thumbprints and the ``ath`` access-token hash.
"""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict

import jwt
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.algorithms import ECAlgorithm

from ..errors import InvalidRequest

ALGORITHM = "ES256"
CURVE = "P-256"

# Members that define an EC public key for thumbprint purposes (RFC 7638 §3.2)
_EC_THUMBPRINT_MEMBERS = ("crv", "kty", "x", "y")


def b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def access_token_hash(token_value: str) -> str:
    """Return ``base64url(SHA-256(token))``, the value signed as ``ath``."""
    return b64url(hashlib.sha256(token_value.encode("utf-8")).digest())


def jwk_thumbprint(jwk: Dict[str, Any]) -> str:
    """Compute the RFC 7638 SHA-256 thumbprint of an EC public JWK."""
    try:
        members = {name: jwk[name] for name in _EC_THUMBPRINT_MEMBERS}
    except KeyError as e:
        raise InvalidRequest(f"JWK is missing member {e.args[0]}") from e
    canonical = json.dumps(members, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return b64url(hashlib.sha256(canonical).digest())


def load_public_jwk(jwk: Dict[str, Any]) -> ec.EllipticCurvePublicKey:
    """Load a P-256 public key from a JWK, rejecting anything else.

    Private members are ignored so a client that accidentally publishes its
    private JWK is still verified against the public half only.
    """
    if not isinstance(jwk, dict):
        raise InvalidRequest("JWK must be an object")
    if jwk.get("kty") != "EC" or jwk.get("crv") != CURVE:
        raise InvalidRequest(f"only EC {CURVE} keys are supported")
    if jwk.get("alg") not in (None, ALGORITHM):
        raise InvalidRequest(f"unsupported key algorithm: {jwk.get('alg')}")
    public = {k: v for k, v in jwk.items() if k != "d"}
    try:
        key = jwt.PyJWK(public, algorithm=ALGORITHM).key
    except (jwt.PyJWTError, ValueError, TypeError) as e:
        raise InvalidRequest(f"unusable JWK: {e}") from e
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise InvalidRequest("JWK did not yield an EC public key")
    return key


@dataclass
class KeyPair:
    """ES256 signing key together with its public JWK."""
    private: ec.EllipticCurvePrivateKey
    public_jwk: Dict[str, Any]

    @property
    def key_id(self) -> str:
        return self.public_jwk["kid"]


def new_key_pair() -> KeyPair:
    """Generate a fresh P-256 key; ``kid`` is set to the JWK thumbprint."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_jwk = json.loads(ECAlgorithm.to_jwk(private_key.public_key()))
    public_jwk.update({"alg": ALGORITHM, "use": "sig"})
    public_jwk["kid"] = jwk_thumbprint(public_jwk)
    return KeyPair(private=private_key, public_jwk=public_jwk)


__all__ = [
    "ALGORITHM",
    "CURVE",
    "b64url",
    "access_token_hash",
    "jwk_thumbprint",
    "load_public_jwk",
    "KeyPair",
    "new_key_pair",
]
