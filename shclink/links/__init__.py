"""
Link policy package.
"""

from .registry import ClaimGrant, LinkClaim, LinkPolicy, LinkRegistry, LinkTerms

__all__ = [
    "ClaimGrant",
    "LinkClaim",
    "LinkPolicy",
    "LinkRegistry",
    "LinkTerms",
]
