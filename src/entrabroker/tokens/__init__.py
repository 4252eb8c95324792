"""Token decoding, resource aliasing and FOCI classification.

Public API:
- parse(), is_expired(), Claims (token codec)
- canonical_resource(), resource_id(), same_audience(), cache_key()
- FociRegistry, FociStatus
"""

from .codec import Claims, is_expired, parse
from .foci import FociRegistry, FociStatus
from .resources import cache_key, canonical_resource, resource_id, same_audience

__all__ = [
    "Claims",
    "parse",
    "is_expired",
    "FociRegistry",
    "FociStatus",
    "cache_key",
    "canonical_resource",
    "resource_id",
    "same_audience",
]
