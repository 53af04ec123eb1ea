"""
SHC Link Python Package

GNAP capability-based delegated authorization for SMART Health Card link sharing.
"""

__version__ = "0.1.0"

from .config import ServiceConfig
from .errors import SHCLinkError
from .gnap import (
    AccessToken,
    AccessType,
    KeyPair,
    SignedClient,
    SignedRequest,
    new_key_pair,
)
from .service import SHCLinkService

__all__ = [
    "ServiceConfig",
    "SHCLinkError",
    "AccessToken",
    "AccessType",
    "KeyPair",
    "SignedClient",
    "SignedRequest",
    "new_key_pair",
    "SHCLinkService",
]
