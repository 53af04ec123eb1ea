"""
Exception hierarchy for the SHC link authorization core.

Every rejection carries a short machine-readable ``reason`` plus optional
``details`` so callers (HTTP adapters, audit, tests) can diagnose a failure
without parsing messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SHCLinkError(Exception):
    """Base class for all errors raised by this package."""

    reason: str = "error"

    def __init__(self, message: str = "", reason: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.__class__.__name__
        if reason is not None:
            self.reason = reason
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "reason": self.reason,
            "message": self.message,
            "details": self.details,
        }


class InvalidRequest(SHCLinkError):
    """Malformed request payload."""
    reason = "invalid_request"


# --- Authentication ----------------------------------------------------------

class AuthenticationFailure(SHCLinkError):
    """Proof-of-possession check failed. Terminal, nothing is mutated."""
    reason = "authentication_failed"


class MissingSignature(AuthenticationFailure):
    reason = "missing_signature"


class InvalidSignature(AuthenticationFailure):
    reason = "invalid_signature"


class MethodMismatch(AuthenticationFailure):
    reason = "htm_mismatch"


class UriMismatch(AuthenticationFailure):
    reason = "uri_mismatch"


class StaleRequest(AuthenticationFailure):
    reason = "stale_request"


class TokenBindingMismatch(AuthenticationFailure):
    reason = "ath_mismatch"


# --- Link claims -------------------------------------------------------------

class ClaimRejected(SHCLinkError):
    """A claim against a link policy was explicitly refused."""
    reason = "claim_rejected"


class LinkNotFound(ClaimRejected):
    reason = "link_not_found"


class LinkInactive(ClaimRejected):
    reason = "link_inactive"


class PinMismatch(ClaimRejected):
    reason = "pin_mismatch"

    def __init__(self, message: str = "", failures: int = 0, remaining_attempts: int = 0):
        super().__init__(
            message or "incorrect PIN",
            details={"failures": failures, "remaining_attempts": remaining_attempts},
        )
        self.failures = failures
        self.remaining_attempts = remaining_attempts


class ClaimLimitReached(ClaimRejected):
    reason = "claim_limit_reached"


# --- Sharing -----------------------------------------------------------------

class ShareRejected(SHCLinkError):
    """A share request asked for data outside the managed package."""
    reason = "share_rejected"


class LinkOwnershipConflict(ShareRejected):
    reason = "link_owner_mismatch"


# --- Resource access ---------------------------------------------------------

class AccessDenied(SHCLinkError):
    reason = "access_denied"


class TokenExpired(AccessDenied):
    reason = "token_expired"


class UnknownToken(AccessDenied):
    """The presented token was never issued or has been revoked."""
    reason = "unknown_token"


__all__ = [
    "SHCLinkError",
    "InvalidRequest",
    "AuthenticationFailure",
    "MissingSignature",
    "InvalidSignature",
    "MethodMismatch",
    "UriMismatch",
    "StaleRequest",
    "TokenBindingMismatch",
    "ClaimRejected",
    "LinkNotFound",
    "LinkInactive",
    "PinMismatch",
    "ClaimLimitReached",
    "ShareRejected",
    "LinkOwnershipConflict",
    "AccessDenied",
    "TokenExpired",
    "UnknownToken",
]
