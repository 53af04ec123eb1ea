"""
GNAP wire types for SHC link sharing.

An access request is a list of items, each either a bare string reference
(a link id, or the ``shclink-initialize`` sentinel) or a rich authorization
request (RAR) object naming a type and exact locations. Both shapes are
modelled as an explicit tagged variant so policy evaluation can dispatch on
them without inspecting raw JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import InvalidRequest
from .keys import jwk_thumbprint, load_public_jwk

INITIALIZE_REFERENCE = "shclink-initialize"
PROOF_METHOD = "jws"


class AccessType(str, Enum):
    """RAR item types understood by the policy engine."""
    READ = "shclink-read"
    MODIFY = "shclink-modify"
    SHARE = "shclink-share"


class Permission(str, Enum):
    INITIALIZE = "initialize"
    MANAGE = "manage"
    CLAIM = "claim"


@dataclass(frozen=True)
class Reference:
    """Access item that names a link (or the initialize sentinel) by id."""
    link_id: str

    def to_wire(self) -> str:
        return self.link_id


@dataclass(frozen=True)
class RARItem:
    """Structured access item; locations are exact absolute URIs."""
    type: str
    locations: Tuple[str, ...]
    actions: Optional[Tuple[str, ...]] = None
    datatypes: Optional[Tuple[str, ...]] = None

    def covers(self, location: str) -> bool:
        return location in self.locations

    def to_wire(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type}
        if self.actions is not None:
            result["actions"] = list(self.actions)
        result["locations"] = list(self.locations)
        if self.datatypes is not None:
            result["datatypes"] = list(self.datatypes)
        return result

    @classmethod
    def from_wire(cls, raw: Dict[str, Any]) -> "RARItem":
        item_type = raw.get("type")
        locations = raw.get("locations")
        if not isinstance(item_type, str) or not item_type:
            raise InvalidRequest("access item requires a string 'type'")
        if not isinstance(locations, list) or not all(isinstance(l, str) for l in locations):
            raise InvalidRequest("access item requires a list of string 'locations'")
        return cls(
            type=item_type,
            locations=tuple(locations),
            actions=_optional_str_tuple(raw, "actions"),
            datatypes=_optional_str_tuple(raw, "datatypes"),
        )


AccessItem = Union[Reference, RARItem]


def _optional_str_tuple(raw: Dict[str, Any], key: str) -> Optional[Tuple[str, ...]]:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidRequest(f"'{key}' must be a list of strings")
    return tuple(value)


def parse_access_item(raw: Any) -> AccessItem:
    if isinstance(raw, str):
        return Reference(raw)
    if isinstance(raw, dict):
        return RARItem.from_wire(raw)
    raise InvalidRequest(f"unsupported access item: {raw!r}")


def access_to_wire(items: List[AccessItem]) -> List[Any]:
    return [item.to_wire() for item in items]


@dataclass(frozen=True)
class ClientIdentity:
    """A client is its public signing key; ``key_id`` is the JWK thumbprint."""
    jwk: Dict[str, Any] = field(hash=False, compare=False)
    key_id: str = ""
    display: Optional[Dict[str, Any]] = field(default=None, hash=False, compare=False)

    @classmethod
    def from_jwk(cls, jwk: Dict[str, Any], display: Optional[Dict[str, Any]] = None) -> "ClientIdentity":
        load_public_jwk(jwk)
        public = {k: v for k, v in jwk.items() if k != "d"}
        return cls(jwk=public, key_id=jwk_thumbprint(public), display=display)

    @classmethod
    def from_gnap_client(cls, raw: Any) -> "ClientIdentity":
        """Parse the ``client`` member of a GNAP transaction request."""
        if not isinstance(raw, dict):
            raise InvalidRequest("client must be an object")
        proof = raw.get("proof", PROOF_METHOD)
        if proof != PROOF_METHOD:
            raise InvalidRequest(f"unsupported proof method: {proof}")
        key = raw.get("key")
        jwk = key.get("jwk") if isinstance(key, dict) else None
        if not isinstance(jwk, dict):
            raise InvalidRequest("client.key.jwk is required")
        return cls.from_jwk(jwk, display=raw.get("display"))

    def to_gnap_client(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"proof": PROOF_METHOD, "key": {"jwk": dict(self.jwk)}}
        if self.display:
            result["display"] = dict(self.display)
        return result


@dataclass(frozen=True)
class Anyone:
    """Matches every client."""


@dataclass(frozen=True)
class Keyholder:
    key_id: str


@dataclass(frozen=True)
class PolicyRecord:
    """Why a grant was made. Kept for cascading revocation only."""
    who: Union[Anyone, Keyholder]
    permission: Permission
    package: Optional[str] = None
    revision: Optional[int] = None

    def is_claim_on(self, package_id: str) -> bool:
        return self.permission == Permission.CLAIM and self.package == package_id


@dataclass
class AccessToken:
    """An issued capability token and the rights recorded against it."""
    value: str
    bound_client: ClientIdentity
    granted_access: List[AccessItem]
    enabling_policies: List[PolicyRecord]
    expiration_time: float
    issued_at: float = 0.0

    def is_valid(self, now: float) -> bool:
        return now < self.expiration_time

    def grants(self, access_type: str, location: str) -> bool:
        return any(
            isinstance(item, RARItem) and item.type == access_type and item.covers(location)
            for item in self.granted_access
        )

    def to_response(self) -> Dict[str, Any]:
        return {"value": self.value, "access": access_to_wire(self.granted_access)}


@dataclass
class SignedRequest:
    """An inbound request as seen by the server: method, absolute URL, headers, raw body."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


@dataclass
class TransactionRequest:
    """Parsed body of a ``POST /gnap`` request."""
    access: List[AccessItem]
    client: Optional[ClientIdentity] = None
    pin: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TransactionRequest":
        if not isinstance(payload, dict):
            raise InvalidRequest("transaction request body must be an object")
        access_token = payload.get("access_token")
        raw_access = access_token.get("access") if isinstance(access_token, dict) else None
        if not isinstance(raw_access, list):
            raise InvalidRequest("access_token.access must be a list")
        client = None
        if payload.get("client") is not None:
            client = ClientIdentity.from_gnap_client(payload["client"])
        pin = None
        shclink = payload.get("shclink")
        if isinstance(shclink, dict) and shclink.get("pin") is not None:
            pin = str(shclink["pin"])
        return cls(access=[parse_access_item(a) for a in raw_access], client=client, pin=pin)


__all__ = [
    "INITIALIZE_REFERENCE",
    "AccessType",
    "Permission",
    "Reference",
    "RARItem",
    "AccessItem",
    "parse_access_item",
    "access_to_wire",
    "ClientIdentity",
    "Anyone",
    "Keyholder",
    "PolicyRecord",
    "AccessToken",
    "SignedRequest",
    "TransactionRequest",
]
