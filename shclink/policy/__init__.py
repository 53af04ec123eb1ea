"""
Policy evaluation package.
"""

from .engine import (
    DEFAULT_EVALUATORS,
    Grant,
    ItemRejection,
    PolicyContext,
    PolicyDecision,
    PolicyEngine,
    PolicyEnvironment,
    anyone_can_claim_active_link,
    anyone_can_initialize,
    creator_can_manage,
)

__all__ = [
    "DEFAULT_EVALUATORS",
    "Grant",
    "ItemRejection",
    "PolicyContext",
    "PolicyDecision",
    "PolicyEngine",
    "PolicyEnvironment",
    "anyone_can_claim_active_link",
    "anyone_can_initialize",
    "creator_can_manage",
]
