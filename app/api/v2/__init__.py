"""
API v2 endpoints.
"""

from . import linkedin

__all__ = [
    'linkedin',
]
