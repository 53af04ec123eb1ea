"""Prometheus metrics for the authorization core.

Each ``MetricsRegistry`` owns a private ``CollectorRegistry`` so several
service instances (and tests) can coexist in one process.
"""
from __future__ import annotations

from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter

METRIC_TOKENS_ISSUED = "shclink_tokens_issued"
METRIC_AUTH_FAILURES = "shclink_auth_failures"
METRIC_CLAIMS = "shclink_claims"
METRIC_TOKENS_REVOKED = "shclink_tokens_revoked"


class MetricsRegistry:
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.tokens_issued = Counter(METRIC_TOKENS_ISSUED, "Access tokens issued", registry=self.registry)
        self.auth_failures = Counter(METRIC_AUTH_FAILURES, "Rejected request signatures", ["reason"], registry=self.registry)
        self.claims = Counter(METRIC_CLAIMS, "Link claim attempts", ["outcome"], registry=self.registry)
        self.tokens_revoked = Counter(METRIC_TOKENS_REVOKED, "Tokens removed by cascading revocation", registry=self.registry)

    def observe_issued(self) -> None:
        self.tokens_issued.inc()

    def observe_auth_failure(self, reason: str) -> None:
        self.auth_failures.labels(reason=reason).inc()

    def observe_claim(self, outcome: str, count: int = 1) -> None:
        self.claims.labels(outcome=outcome).inc(count)

    def observe_revoked(self, count: int) -> None:
        if count:
            self.tokens_revoked.inc(count)

    def snapshot(self) -> Dict[str, float]:
        """Flatten current sample values, keyed by sample name and labels."""
        values: Dict[str, float] = {}
        for metric in self.registry.collect():
            for sample in metric.samples:
                if not sample.name.endswith("_total"):
                    continue
                labels = ",".join(f"{k}={v}" for k, v in sorted(sample.labels.items()))
                key = f"{sample.name}{{{labels}}}" if labels else sample.name
                values[key] = sample.value
        return values


__all__ = [
    "MetricsRegistry",
    "METRIC_TOKENS_ISSUED",
    "METRIC_AUTH_FAILURES",
    "METRIC_CLAIMS",
    "METRIC_TOKENS_REVOKED",
]
