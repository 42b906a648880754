"""
HTTP-facing adapters of the Access Policy Service.
"""

from .access_middleware import AccessControlMiddleware

__all__ = ["AccessControlMiddleware"]
