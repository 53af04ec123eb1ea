"""
GNAP request signing, verification and wire types.
"""

from .keys import KeyPair, access_token_hash, jwk_thumbprint, load_public_jwk, new_key_pair
from .types import (
    INITIALIZE_REFERENCE,
    AccessItem,
    AccessToken,
    AccessType,
    Anyone,
    ClientIdentity,
    Keyholder,
    Permission,
    PolicyRecord,
    RARItem,
    Reference,
    SignedRequest,
    TransactionRequest,
    access_to_wire,
    parse_access_item,
)
from .signing import DETACHED_JWS_HEADER, JWS_TYPE, SignedClient, sign_jws_attached
from .authenticator import AuthenticatedRequest, RequestAuthenticator

__all__ = [
    # Keys
    "KeyPair",
    "access_token_hash",
    "jwk_thumbprint",
    "load_public_jwk",
    "new_key_pair",

    # Wire types
    "INITIALIZE_REFERENCE",
    "AccessItem",
    "AccessToken",
    "AccessType",
    "Anyone",
    "ClientIdentity",
    "Keyholder",
    "Permission",
    "PolicyRecord",
    "RARItem",
    "Reference",
    "SignedRequest",
    "TransactionRequest",
    "access_to_wire",
    "parse_access_item",

    # Signing / verification
    "DETACHED_JWS_HEADER",
    "JWS_TYPE",
    "SignedClient",
    "sign_jws_attached",
    "AuthenticatedRequest",
    "RequestAuthenticator",
]
