"""
Role directory interfaces for the Access Policy Service.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Mapping, Optional, Set

from shared.errors import ValidationError
from shared.logging import get_logger


class RoleDirectory(ABC):
    """Source of truth for which roles a user holds."""

    @abstractmethod
    async def get_user_roles(self, user_id: str) -> List[str]:
        """Return the user's role names; may perform I/O."""

    async def health_check(self) -> bool:
        return True


class MutableRoleDirectory(RoleDirectory):
    """Role directory that also accepts assignments."""

    @abstractmethod
    async def assign_role(self, user_id: str, role: str) -> bool:
        """Grant a role. Returns False if the user already held it."""

    @abstractmethod
    async def remove_role(self, user_id: str, role: str) -> bool:
        """Revoke a role. Returns False if the user did not hold it."""


class InMemoryRoleDirectory(MutableRoleDirectory):
    """Process-local role directory, seeded from configuration."""

    def __init__(self, assignments: Optional[Mapping[str, Iterable[str]]] = None,
                 known_roles: Optional[Iterable[str]] = None):
        self.logger = get_logger("policy.role_directory")
        self._known_roles: Optional[Set[str]] = set(known_roles) if known_roles is not None else None
        self._assignments: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

        for user_id, roles in (assignments or {}).items():
            for role in roles:
                self._assign(user_id, role)

    async def get_user_roles(self, user_id: str) -> List[str]:
        with self._lock:
            return list(self._assignments.get(user_id, ()))

    async def assign_role(self, user_id: str, role: str) -> bool:
        if self._known_roles is not None and role not in self._known_roles:
            raise ValidationError(f"Role {role} does not exist", details={"role": role})

        assigned = self._assign(user_id, role)
        if assigned:
            self.logger.info("Role assigned", user_id=user_id, role=role)
        return assigned

    async def remove_role(self, user_id: str, role: str) -> bool:
        with self._lock:
            roles = self._assignments.get(user_id)
            if not roles or role not in roles:
                return False
            roles.remove(role)

        self.logger.info("Role removed", user_id=user_id, role=role)
        return True

    def _assign(self, user_id: str, role: str) -> bool:
        with self._lock:
            roles = self._assignments.setdefault(user_id, [])
            if role in roles:
                return False
            roles.append(role)
            return True
