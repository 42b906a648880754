"""
Policy data models for the Access Policy Service.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field

WILDCARD_ACTION = "*"


class OperationCategory(str, Enum):
    """CRUD categories that group concrete actions for role checks."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"

    @classmethod
    def for_action(cls, action: str) -> Optional["OperationCategory"]:
        """Map an action name to its category, None for non-standard actions."""
        try:
            return cls(action)
        except ValueError:
            return None


class RuleEffect(str, Enum):
    """Contextual rule effects."""
    ALLOW = "allow"
    DENY = "deny"


class DecisionStage(str, Enum):
    """Pipeline stage that produced a decision."""
    INPUT_VALIDATION = "input_validation"
    RESOURCE_VALIDATION = "resource_validation"
    CONTEXTUAL_RULE = "contextual_rule"
    ROLE_BASED = "role_based"
    OWNERSHIP = "ownership"
    HIERARCHICAL = "hierarchical"
    DEFAULT = "default"
    CONFIGURATION_ERROR = "configuration_error"
    EVALUATION_ERROR = "evaluation_error"


# Audit trail identifiers appended by each strategy
TRAIL_RESOURCE_VALIDATION = "resource_validation"
TRAIL_ROLE_CHECK = "role_based_check"
TRAIL_OWNERSHIP_CHECK = "ownership_check"
TRAIL_HIERARCHY_CHECK = "hierarchical_check"
TRAIL_DEFAULT_DENY = "default_deny"


@dataclass(frozen=True)
class AccessContext:
    """Typed request context consumed by ownership checks and rule predicates.

    `metadata` carries the remaining ad-hoc keys (for example `is_public`,
    `start_date`, `registration_deadline`, `requesting_user_id`). It is
    exposed read-only, with keys normalized to strings.
    """
    owner_id: Optional[str] = None
    organization_id: Optional[str] = None
    tournament_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        metadata = {str(key): value for key, value in dict(self.metadata or {}).items()}
        object.__setattr__(self, "metadata", MappingProxyType(metadata))

    def get(self, key: str, default: Any = None) -> Any:
        """Read a metadata value."""
        return self.metadata.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "organization_id": self.organization_id,
            "tournament_id": self.tournament_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AccessContext":
        """Build a context from a plain mapping.

        Typed keys are accepted in snake_case or camelCase (`ownerId`);
        any other key lands in metadata.
        """
        if not data:
            return cls()
        data = dict(data)
        metadata = dict(data.pop("metadata", None) or {})
        owner_id = data.pop("owner_id", data.pop("ownerId", None))
        organization_id = data.pop("organization_id", data.pop("organizationId", None))
        tournament_id = data.pop("tournament_id", data.pop("tournamentId", None))
        metadata.update(data)
        return cls(
            owner_id=owner_id,
            organization_id=organization_id,
            tournament_id=tournament_id,
            metadata=metadata,
        )


@dataclass(frozen=True)
class AccessRequest:
    """A single (user, action, resource) question put to the engine."""
    user_id: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    context: AccessContext = field(default_factory=AccessContext)

    def __post_init__(self):
        if self.context is None:
            object.__setattr__(self, "context", AccessContext())
        elif isinstance(self.context, Mapping):
            object.__setattr__(self, "context", AccessContext.from_dict(self.context))

    def missing_field(self) -> Optional[str]:
        """Name of the first required field that is empty, if any."""
        for name in ("user_id", "action", "resource_type"):
            if not getattr(self, name):
                return name
        return None

    def for_parent(self, parent_type: str) -> "AccessRequest":
        """The read request used to inherit access from a parent type."""
        return replace(self, resource_type=parent_type, action=OperationCategory.READ.value)


@dataclass(frozen=True)
class AccessResult:
    """Outcome of an access evaluation."""
    allowed: bool
    reason: str
    applied_rules: Tuple[str, ...] = ()
    cacheable: bool = True
    expires_at: Optional[datetime] = None
    decided_by: DecisionStage = DecisionStage.DEFAULT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "applied_rules": list(self.applied_rules),
            "cacheable": self.cacheable,
            "expires_at": self.expires_at,
            "decided_by": self.decided_by.value,
        }


def _frozen_roles(roles: Optional[Iterable[str]]) -> FrozenSet[str]:
    return frozenset(roles or ())


@dataclass(frozen=True)
class ResourceDefinition:
    """Registered description of a protected resource type."""
    type: str
    actions: FrozenSet[str] = frozenset()
    ownership_field: Optional[str] = None
    hierarchical: bool = False
    parent: Optional[str] = None
    allowed_operations: Mapping[OperationCategory, FrozenSet[str]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "actions", frozenset(self.actions))
        given = {OperationCategory(k): _frozen_roles(v) for k, v in dict(self.allowed_operations).items()}
        operations = {category: given.get(category, frozenset()) for category in OperationCategory}
        object.__setattr__(self, "allowed_operations", MappingProxyType(operations))

    @property
    def parent_type(self) -> Optional[str]:
        """Parent consulted for inheritance; only hierarchical types have one."""
        return self.parent if self.hierarchical and self.parent else None

    def supports_action(self, action: str) -> bool:
        return action == WILDCARD_ACTION or action in self.actions

    def roles_for(self, category: OperationCategory) -> FrozenSet[str]:
        return self.allowed_operations[category]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "actions": sorted(self.actions),
            "ownership_field": self.ownership_field,
            "hierarchical": self.hierarchical,
            "parent": self.parent,
            "allowed_operations": {
                category.value: sorted(roles) for category, roles in self.allowed_operations.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourceDefinition":
        return cls(
            type=data["type"],
            actions=frozenset(data.get("actions") or ()),
            ownership_field=data.get("ownership_field"),
            hierarchical=bool(data.get("hierarchical", False)),
            parent=data.get("parent"),
            allowed_operations=data.get("allowed_operations") or {},
        )


RuleCondition = Callable[[AccessContext], bool]


@dataclass
class ContextualRule:
    """Prioritized predicate scoped to a (resource type, action) pair."""
    id: str
    name: str
    resource: str
    action: str
    condition: RuleCondition
    effect: RuleEffect = RuleEffect.ALLOW
    priority: int = 0
    description: Optional[str] = None

    def __post_init__(self):
        self.effect = RuleEffect(self.effect)

    def applies_to(self, resource_type: str, action: str) -> bool:
        return self.resource == resource_type and self.action in (action, WILDCARD_ACTION)


class AccessContextPayload(BaseModel):
    """Context carried by an HTTP access check."""
    owner_id: Optional[str] = Field(None, description="User owning the resource instance")
    organization_id: Optional[str] = Field(None, description="Organization scope")
    tournament_id: Optional[str] = Field(None, description="Tournament scope")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Rule-specific attributes")

    def to_context(self) -> AccessContext:
        return AccessContext(
            owner_id=self.owner_id,
            organization_id=self.organization_id,
            tournament_id=self.tournament_id,
            metadata=self.metadata,
        )


class AccessCheckRequest(BaseModel):
    """Request model for an access check."""
    user_id: str = Field(..., description="User ID")
    action: str = Field(..., description="Action to perform")
    resource_type: str = Field(..., description="Resource type")
    resource_id: Optional[str] = Field(None, description="Resource instance ID")
    context: AccessContextPayload = Field(default_factory=AccessContextPayload)

    def to_access_request(self) -> AccessRequest:
        return AccessRequest(
            user_id=self.user_id,
            action=self.action,
            resource_type=self.resource_type,
            resource_id=self.resource_id,
            context=self.context.to_context(),
        )


class AccessCheckResponse(BaseModel):
    """Response model for an access check."""
    allowed: bool = Field(..., description="Whether the action is allowed")
    reason: str = Field(..., description="Reason for the decision")
    applied_rules: List[str] = Field(default_factory=list, description="Strategies and rules consulted")
    cacheable: bool = Field(..., description="Whether the decision may be cached")
    expires_at: Optional[datetime] = Field(None, description="When a cached decision expires")
    decided_by: str = Field(..., description="Pipeline stage that decided")

    @classmethod
    def from_result(cls, result: AccessResult) -> "AccessCheckResponse":
        return cls(**result.to_dict())


class ResourceDefinitionPayload(BaseModel):
    """Request/response model for a resource definition."""
    type: str = Field(..., min_length=1, description="Resource type name")
    actions: List[str] = Field(default_factory=list, description="Valid actions")
    ownership_field: Optional[str] = Field(None, description="Context key naming the owner")
    hierarchical: bool = Field(False, description="Inherit read access from parent")
    parent: Optional[str] = Field(None, description="Parent resource type")
    allowed_operations: Dict[OperationCategory, List[str]] = Field(
        default_factory=dict, description="Roles authorized per operation category"
    )

    def to_definition(self) -> ResourceDefinition:
        return ResourceDefinition.from_dict(self.model_dump())

    @classmethod
    def from_definition(cls, definition: ResourceDefinition) -> "ResourceDefinitionPayload":
        return cls(**definition.to_dict())


class ContextualRuleResponse(BaseModel):
    """Response model describing a registered contextual rule."""
    id: str
    name: str
    resource: str
    action: str
    effect: RuleEffect
    priority: int
    description: Optional[str] = None

    @classmethod
    def from_rule(cls, rule: ContextualRule) -> "ContextualRuleResponse":
        return cls(
            id=rule.id,
            name=rule.name,
            resource=rule.resource,
            action=rule.action,
            effect=rule.effect,
            priority=rule.priority,
            description=rule.description,
        )
