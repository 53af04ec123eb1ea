"""
Shared storage primitives.
"""

from .keyed import KeyedStore

__all__ = ["KeyedStore"]
