"""Service configuration."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

DEFAULT_PORT = 3000


def _default_public_url() -> str:
    return f"http://localhost:{DEFAULT_PORT}"


@dataclass
class ServiceConfig:
    """Configuration shared by the authenticator, stores and handlers."""
    public_url: str = field(default_factory=_default_public_url)
    links_path: str = "/shclinks"
    token_ttl: int = 300  # seconds an issued access token stays usable
    freshness_window: int = 300  # max |now - created| for signed requests
    pin_lockout_threshold: int = 5
    methods_without_body: Tuple[str, ...] = ("OPTIONS", "HEAD", "GET")
    now_func: Callable[[], float] = field(default_factory=lambda: time.time)

    def __post_init__(self):
        self.public_url = self.public_url.rstrip("/")
        if not self.links_path.startswith("/"):
            self.links_path = "/" + self.links_path
        self.links_path = self.links_path.rstrip("/")
        if self.token_ttl <= 0:
            raise ValueError("token_ttl must be positive")
        if self.freshness_window < 0:
            raise ValueError("freshness_window must not be negative")
        if self.pin_lockout_threshold < 1:
            raise ValueError("pin_lockout_threshold must be at least 1")

    @property
    def namespace_root(self) -> str:
        """Absolute URL under which every client namespace lives."""
        return f"{self.public_url}{self.links_path}"

    @property
    def gnap_endpoint(self) -> str:
        return f"{self.public_url}/gnap"

    def now(self) -> float:
        return self.now_func()

    @classmethod
    def from_env(cls, prefix: str = "SHCLINK_", now_func: Optional[Callable[[], float]] = None) -> "ServiceConfig":
        """Build a config from environment variables.

        ``PORT`` and ``PUBLIC_URL`` are read unprefixed; the remaining knobs
        use ``prefix`` (``SHCLINK_TOKEN_TTL``, ``SHCLINK_FRESHNESS_WINDOW``,
        ``SHCLINK_PIN_LOCKOUT``, ``SHCLINK_LINKS_PATH``).
        """
        port = int(os.getenv("PORT", str(DEFAULT_PORT)))
        kwargs = {
            "public_url": os.getenv("PUBLIC_URL") or f"http://localhost:{port}",
            "links_path": os.getenv(f"{prefix}LINKS_PATH", "/shclinks"),
            "token_ttl": int(os.getenv(f"{prefix}TOKEN_TTL", "300")),
            "freshness_window": int(os.getenv(f"{prefix}FRESHNESS_WINDOW", "300")),
            "pin_lockout_threshold": int(os.getenv(f"{prefix}PIN_LOCKOUT", "5")),
        }
        if now_func is not None:
            kwargs["now_func"] = now_func
        return cls(**kwargs)


__all__ = ["ServiceConfig", "DEFAULT_PORT"]
