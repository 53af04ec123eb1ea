"""
Service package.
"""

from .service import POLICY_REPLACED_STATUS, ResourceLoader, SHCLinkService, filtered_bundle_loader

__all__ = [
    "POLICY_REPLACED_STATUS",
    "ResourceLoader",
    "SHCLinkService",
    "filtered_bundle_loader",
]
