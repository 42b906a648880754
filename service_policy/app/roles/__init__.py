"""
Role directory adapters.

The policy engine never owns role assignments; it asks a role directory.
Two adapters are provided: an in-memory directory for single-node
deployments and tests, and an HTTP client for a remote role service.
"""

from .directory import InMemoryRoleDirectory, MutableRoleDirectory, RoleDirectory
from .http_client import HttpRoleDirectory

__all__ = [
    "HttpRoleDirectory",
    "InMemoryRoleDirectory",
    "MutableRoleDirectory",
    "RoleDirectory",
]
