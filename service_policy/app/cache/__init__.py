"""
Cache package for the Access Policy Service.

Provides the in-process decision cache that stores evaluated access
decisions for a bounded time. Entries are dropped per user when roles
change and wholesale when rules or resource definitions change.
"""

from .decision_cache import CacheEntry, DecisionCache

__all__ = ["CacheEntry", "DecisionCache"]
