"""
Audit trail for token issuance, link sharing and claims.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def _fingerprint(token_value: str) -> str:
    """Short, non-reversible token reference suitable for logs."""
    return f"{token_value[:6]}..."


class AuditLogger:
    """Records audit events in memory and mirrors them to the log."""

    def __init__(self, max_entries: int = 1000):
        self.max_entries = max_entries
        self.logs: List[Dict[str, Any]] = []

    def log(self, message: str, context: Optional[Dict[str, Any]] = None):
        """Log a message with optional context."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": message,
            "context": context or {},
        }
        self.logs.append(entry)
        if len(self.logs) > self.max_entries:
            del self.logs[: len(self.logs) - self.max_entries]
        logger.info("[AUDIT] %s %s", message, entry["context"])

    def log_token_issued(self, token_value: str, client_id: str, grants: int):
        self.log(
            f"Token issued to {client_id}",
            {
                "event_type": "token_issued",
                "token": _fingerprint(token_value),
                "client": client_id,
                "grants": grants,
            },
        )

    def log_policy_replaced(self, link_id: str, owner: str, revision: int, revoked: int):
        self.log(
            f"Link policy replaced: {link_id}",
            {
                "event_type": "policy_replaced",
                "link_id": link_id,
                "owner": owner,
                "revision": revision,
                "revoked_tokens": revoked,
            },
        )

    def log_claim_rejected(self, link_id: str, client_id: str, reason: str):
        self.log(
            f"Claim rejected on {link_id}: {reason}",
            {
                "event_type": "claim_rejected",
                "link_id": link_id,
                "client": client_id,
                "reason": reason,
            },
        )

    def log_access_denied(self, location: str, client_id: str, reason: str):
        self.log(
            f"Access denied to {location}: {reason}",
            {
                "event_type": "access_denied",
                "location": location,
                "client": client_id,
                "reason": reason,
            },
        )

    def get_logs(self, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get logged entries, optionally filtered by event type."""
        if event_type is None:
            return self.logs.copy()
        return [e for e in self.logs if e["context"].get("event_type") == event_type]


__all__ = ["AuditLogger"]
