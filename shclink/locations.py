"""Package namespace URLs.

Every client owns the namespace ``{public_url}{links_path}/{keyId}/``; each
package inside it has a ``data`` area and a ``policy`` endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import ServiceConfig
from .errors import InvalidRequest


@dataclass(frozen=True)
class PackageLocation:
    client_id: str
    package_id: str
    kind: str  # "data" or "policy"
    file: Optional[str] = None


def client_namespace(config: ServiceConfig, key_id: str) -> str:
    return f"{config.namespace_root}/{key_id}/"


def package_root(config: ServiceConfig, key_id: str, package_id: str) -> str:
    return f"{config.namespace_root}/{key_id}/{package_id}"


def data_location(config: ServiceConfig, key_id: str, package_id: str) -> str:
    return f"{package_root(config, key_id, package_id)}/data"


def policy_location(config: ServiceConfig, key_id: str, package_id: str) -> str:
    return f"{package_root(config, key_id, package_id)}/policy"


def data_prefix(config: ServiceConfig, key_id: str, package_id: str) -> str:
    """Prefix every shared data location of a package must start with."""
    return f"{data_location(config, key_id, package_id)}/"


def parse_location(config: ServiceConfig, url: str) -> PackageLocation:
    root = f"{config.namespace_root}/"
    if not url.startswith(root):
        raise InvalidRequest(f"{url} is outside {root}")
    parts = url[len(root):].split("/")
    if len(parts) == 3 and parts[2] == "policy":
        client_id, package_id, kind = parts
        file = None
    elif len(parts) == 4 and parts[2] == "data":
        client_id, package_id, kind, file = parts
        if not file:
            raise InvalidRequest(f"{url} names no data file")
    else:
        raise InvalidRequest(f"{url} is not a package data or policy location")
    if not client_id or not package_id:
        raise InvalidRequest(f"{url} is missing a client or package id")
    return PackageLocation(client_id=client_id, package_id=package_id, kind=kind, file=file)


__all__ = [
    "PackageLocation",
    "client_namespace",
    "package_root",
    "data_location",
    "policy_location",
    "data_prefix",
    "parse_location",
]
