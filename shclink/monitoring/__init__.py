"""
Monitoring package.
"""

from .metrics import (
    METRIC_AUTH_FAILURES,
    METRIC_CLAIMS,
    METRIC_TOKENS_ISSUED,
    METRIC_TOKENS_REVOKED,
    MetricsRegistry,
)

__all__ = [
    "METRIC_AUTH_FAILURES",
    "METRIC_CLAIMS",
    "METRIC_TOKENS_ISSUED",
    "METRIC_TOKENS_REVOKED",
    "MetricsRegistry",
]
