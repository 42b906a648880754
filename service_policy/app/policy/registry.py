"""
Resource registry for the Access Policy Service.
"""

import threading
from typing import Dict, Iterable, List, Optional

from shared.errors import ConfigurationError
from shared.logging import get_logger

from .models import OperationCategory, ResourceDefinition

CREATE = OperationCategory.CREATE
READ = OperationCategory.READ
UPDATE = OperationCategory.UPDATE
DELETE = OperationCategory.DELETE


class ResourceRegistry:
    """Catalogue of resource types keyed by type name."""

    def __init__(self, definitions: Optional[Iterable[ResourceDefinition]] = None):
        self.logger = get_logger("policy.resource_registry")
        self._resources: Dict[str, ResourceDefinition] = {}
        self._lock = threading.RLock()

        for definition in definitions or ():
            self.register(definition)

    def register(self, definition: ResourceDefinition) -> bool:
        """Store or replace a definition. Returns True when it replaced one."""
        with self._lock:
            self._validate(definition)
            replaced = definition.type in self._resources
            self._resources[definition.type] = definition

        self.logger.info(
            "Resource registered",
            resource_type=definition.type,
            parent=definition.parent_type,
            replaced=replaced
        )
        return replaced

    def lookup(self, resource_type: str) -> Optional[ResourceDefinition]:
        """Get a definition by type name."""
        with self._lock:
            return self._resources.get(resource_type)

    def list(self) -> List[ResourceDefinition]:
        """All definitions in registration order."""
        with self._lock:
            return list(self._resources.values())

    def __contains__(self, resource_type: object) -> bool:
        with self._lock:
            return resource_type in self._resources

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def _validate(self, definition: ResourceDefinition):
        """Reject empty names, dangling parents and parent cycles."""
        if not definition.type:
            raise ConfigurationError("Resource type name is required")

        parent = definition.parent_type
        if parent is None:
            return

        chain = [definition.type]
        while parent is not None:
            if parent in chain:
                chain.append(parent)
                raise ConfigurationError(
                    f"Cyclic resource hierarchy: {' -> '.join(chain)}",
                    details={"resource_type": definition.type, "chain": chain}
                )

            parent_definition = self._resources.get(parent)
            if parent_definition is None:
                raise ConfigurationError(
                    f"Parent resource type '{parent}' of '{chain[-1]}' is not registered",
                    details={"resource_type": definition.type, "parent": parent}
                )

            chain.append(parent)
            parent = parent_definition.parent_type


def default_tournament_resources() -> List[ResourceDefinition]:
    """Resource catalogue of the tournament platform, parents first."""
    return [
        ResourceDefinition(
            type="organization",
            actions={"create", "read", "update", "delete", "manage_users", "manage_billing"},
            ownership_field="ownerId",
            allowed_operations={
                CREATE: {"super_admin"},
                READ: {"org_admin", "tournament_admin", "tournament_organizer"},
                UPDATE: {"org_admin"},
                DELETE: {"super_admin"},
            },
        ),
        ResourceDefinition(
            type="tournament",
            actions={"create", "read", "update", "delete", "publish",
                     "manage_participants", "manage_brackets", "manage_scoring"},
            ownership_field="organizerId",
            hierarchical=True,
            parent="organization",
            allowed_operations={
                CREATE: {"org_admin", "tournament_admin"},
                READ: {"org_admin", "tournament_admin", "tournament_organizer", "participant", "viewer"},
                UPDATE: {"org_admin", "tournament_admin", "tournament_organizer"},
                DELETE: {"org_admin", "tournament_admin"},
            },
        ),
        ResourceDefinition(
            type="participant",
            actions={"create", "read", "update", "delete", "register", "withdraw"},
            ownership_field="userId",
            hierarchical=True,
            parent="tournament",
            allowed_operations={
                CREATE: {"org_admin", "tournament_admin", "tournament_organizer"},
                READ: {"org_admin", "tournament_admin", "tournament_organizer", "participant", "viewer"},
                UPDATE: {"org_admin", "tournament_admin", "tournament_organizer"},
                DELETE: {"org_admin", "tournament_admin", "tournament_organizer"},
            },
        ),
        ResourceDefinition(
            type="match",
            actions={"create", "read", "update", "delete", "score", "officiate"},
            hierarchical=True,
            parent="tournament",
            allowed_operations={
                CREATE: {"org_admin", "tournament_admin", "tournament_organizer"},
                READ: {"org_admin", "tournament_admin", "tournament_organizer", "participant", "referee", "viewer"},
                UPDATE: {"org_admin", "tournament_admin", "tournament_organizer", "referee"},
                DELETE: {"org_admin", "tournament_admin"},
            },
        ),
        ResourceDefinition(
            type="user_profile",
            actions={"read", "update", "delete"},
            ownership_field="userId",
            allowed_operations={
                CREATE: {"super_admin", "org_admin"},
                READ: {"super_admin", "org_admin", "tournament_admin", "self"},
                UPDATE: {"super_admin", "org_admin", "self"},
                DELETE: {"super_admin", "org_admin"},
            },
        ),
        ResourceDefinition(
            type="payment",
            actions={"create", "read", "process", "refund"},
            ownership_field="userId",
            hierarchical=True,
            parent="tournament",
            allowed_operations={
                CREATE: {"org_admin", "tournament_admin", "participant"},
                READ: {"org_admin", "tournament_admin", "self"},
                UPDATE: {"org_admin", "tournament_admin"},
                DELETE: {"org_admin"},
            },
        ),
        ResourceDefinition(
            type="report",
            actions={"create", "read", "export"},
            hierarchical=True,
            parent="tournament",
            allowed_operations={
                CREATE: {"org_admin", "tournament_admin", "tournament_organizer"},
                READ: {"org_admin", "tournament_admin", "tournament_organizer"},
                UPDATE: {"org_admin", "tournament_admin"},
                DELETE: {"org_admin", "tournament_admin"},
            },
        ),
    ]
