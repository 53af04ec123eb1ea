"""Final authorization check for resource and policy endpoints."""

from __future__ import annotations

import logging
from typing import Optional

from .errors import AccessDenied, TokenExpired
from .gnap.authenticator import AuthenticatedRequest
from .gnap.types import AccessToken, AccessType

logger = logging.getLogger(__name__)


class ResourceAccessGate:
    """Checks that a presented token covers an exact location.

    Locations are compared by exact string equality; no prefix or pattern
    matching is applied.
    """

    def require(self, auth: AuthenticatedRequest, location: str, access_type: str = AccessType.READ) -> AccessToken:
        token: Optional[AccessToken] = auth.access_token
        if token is None:
            raise AccessDenied("request carries no access token", details={"location": location})
        if not auth.token_valid:
            raise TokenExpired("access token is expired", details={"location": location})
        if not token.grants(access_type, location):
            logger.warning("Token for %s does not grant %s on %s", token.bound_client.key_id, access_type, location)
            raise AccessDenied(
                f"access token does not provide {_type_name(access_type)} access to {location}",
                details={"location": location, "type": _type_name(access_type)},
            )
        return token


def _type_name(access_type: str) -> str:
    return access_type.value if isinstance(access_type, AccessType) else str(access_type)


__all__ = ["ResourceAccessGate"]
