"""
Resource API bindings.
"""

from .memory import InMemoryResourceApi

__all__ = ["InMemoryResourceApi"]
