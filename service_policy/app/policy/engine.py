"""
Access evaluation engine for the Access Policy Service.
"""

import asyncio
import hashlib
import json
import time
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from shared.errors import ConfigurationError, RoleDirectoryError
from shared.logging import get_logger

from ..cache.decision_cache import DecisionCache
from ..roles.directory import MutableRoleDirectory, RoleDirectory
from .models import (
    TRAIL_DEFAULT_DENY,
    TRAIL_HIERARCHY_CHECK,
    TRAIL_OWNERSHIP_CHECK,
    TRAIL_RESOURCE_VALIDATION,
    TRAIL_ROLE_CHECK,
    AccessRequest,
    AccessResult,
    ContextualRule,
    DecisionStage,
    OperationCategory,
    ResourceDefinition,
)
from .registry import ResourceRegistry
from .rules import ContextualRuleSet, rules_summary

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig
    from shared.metrics import MetricsCollector


def fingerprint(request: AccessRequest) -> str:
    """Deterministic cache key for a request.

    The user id stays readable as a prefix; everything else, including a
    canonical JSON rendering of the context, is folded into the digest.
    """
    payload = json.dumps(
        [
            request.user_id,
            request.action,
            request.resource_type,
            request.resource_id,
            request.context.to_dict(),
        ],
        sort_keys=True,
        default=str,
        separators=(",", ":"),
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{request.user_id}:{digest}"


class PolicyEngine:
    """Decides whether a user may perform an action on a resource.

    Evaluation order: cache, resource/action validation, contextual rules,
    role-based check, ownership, hierarchical inheritance, default deny.
    Expected failures (unknown resource, invalid action, role directory
    outage, misconfigured hierarchy) always come back as a deny result.
    """

    def __init__(self,
                 role_directory: RoleDirectory,
                 registry: Optional[ResourceRegistry] = None,
                 rules: Optional[ContextualRuleSet] = None,
                 cache: Optional[DecisionCache] = None,
                 *,
                 role_lookup_timeout: float = 2.0,
                 max_hierarchy_depth: int = 8,
                 resource_inheritance: bool = True,
                 audit_enabled: bool = True,
                 metrics: Optional["MetricsCollector"] = None):
        self.logger = get_logger("policy.engine")
        self.role_directory = role_directory
        self.registry = registry if registry is not None else ResourceRegistry()
        self.rules = rules if rules is not None else ContextualRuleSet(metrics=metrics)
        self.cache = cache if cache is not None else DecisionCache()
        self.role_lookup_timeout = role_lookup_timeout
        self.max_hierarchy_depth = max_hierarchy_depth
        self.resource_inheritance = resource_inheritance
        self.audit_enabled = audit_enabled
        self.metrics = metrics

    @classmethod
    def from_config(cls,
                    config: "BaseConfig",
                    role_directory: RoleDirectory,
                    registry: Optional[ResourceRegistry] = None,
                    rules: Optional[ContextualRuleSet] = None,
                    metrics: Optional["MetricsCollector"] = None) -> "PolicyEngine":
        """Build an engine from service settings."""
        return cls(
            role_directory,
            registry=registry,
            rules=rules if rules is not None else ContextualRuleSet(metrics=metrics),
            cache=DecisionCache(
                ttl_seconds=config.policy_cache_ttl_seconds,
                max_entries=config.policy_cache_max_entries
            ),
            role_lookup_timeout=config.role_lookup_timeout_seconds,
            max_hierarchy_depth=config.max_hierarchy_depth,
            resource_inheritance=config.resource_inheritance,
            audit_enabled=config.audit_enabled,
            metrics=metrics,
        )

    async def check_access(self, request: AccessRequest) -> AccessResult:
        """Evaluate a request, serving identical repeats from the cache."""
        start_time = time.time()

        missing = request.missing_field()
        if missing:
            result = AccessResult(
                allowed=False,
                reason=f"Invalid access request: missing {missing}",
                cacheable=False,
                decided_by=DecisionStage.INPUT_VALIDATION,
            )
            self._record(request, result, start_time)
            return result

        try:
            cache_key = fingerprint(request)
        except (TypeError, ValueError) as e:
            self.logger.warning(
                "Request context cannot be fingerprinted, bypassing cache",
                user_id=request.user_id,
                error=str(e)
            )
            cache_key = None

        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if self.metrics:
                self.metrics.record_cache_lookup(cached is not None)
            if cached is not None:
                self.logger.debug("Decision cache hit", user_id=request.user_id, resource_type=request.resource_type)
                return cached

        applied: List[str] = []
        try:
            result = await self._evaluate(request, applied, depth=0, visited=())

        except ConfigurationError as e:
            self.logger.error("Policy configuration error", error=e.message, **e.details)
            result = AccessResult(
                allowed=False,
                reason=f"Configuration error: {e.message}",
                applied_rules=tuple(applied),
                cacheable=False,
                decided_by=DecisionStage.CONFIGURATION_ERROR,
            )
        except RoleDirectoryError as e:
            self.logger.error("Access evaluation error", user_id=request.user_id, error=e.message)
            result = AccessResult(
                allowed=False,
                reason=f"Access evaluation error: {e.message}",
                applied_rules=tuple(applied),
                cacheable=False,
                decided_by=DecisionStage.EVALUATION_ERROR,
            )

        if cache_key is not None and result.cacheable:
            result = self.cache.set(cache_key, request.user_id, result)
            if self.metrics:
                self.metrics.set_cache_size(len(self.cache))

        self._record(request, result, start_time)
        return result

    async def _evaluate(self, request: AccessRequest, applied: List[str],
                        depth: int, visited: Tuple[str, ...]) -> AccessResult:
        applied.append(TRAIL_RESOURCE_VALIDATION)
        definition = self.registry.lookup(request.resource_type)
        if definition is None:
            if depth > 0:
                raise ConfigurationError(
                    f"Parent resource type '{request.resource_type}' is not registered",
                    details={"resource_type": request.resource_type}
                )
            return AccessResult(
                allowed=False,
                reason=f"Unknown resource type: {request.resource_type}",
                applied_rules=tuple(applied),
                decided_by=DecisionStage.RESOURCE_VALIDATION,
            )

        if not definition.supports_action(request.action):
            return AccessResult(
                allowed=False,
                reason=f"Invalid action {request.action} for resource {request.resource_type}",
                applied_rules=tuple(applied),
                decided_by=DecisionStage.RESOURCE_VALIDATION,
            )

        outcome = self.rules.evaluate(request)
        applied.extend(outcome.consulted)
        if outcome.has_verdict:
            return AccessResult(
                allowed=outcome.allowed,
                reason=f"Contextual rule: {outcome.rule.name}",
                applied_rules=tuple(applied),
                decided_by=DecisionStage.CONTEXTUAL_RULE,
            )

        result = await self._check_roles(request, definition, applied)
        if result is not None:
            return result

        result = self._check_ownership(request, definition, applied)
        if result is not None:
            return result

        if self.resource_inheritance:
            result = await self._check_hierarchy(request, definition, applied, depth, visited)
            if result is not None:
                return result

        applied.append(TRAIL_DEFAULT_DENY)
        return AccessResult(
            allowed=False,
            reason="Access denied by default policy",
            applied_rules=tuple(applied),
            decided_by=DecisionStage.DEFAULT,
        )

    async def _check_roles(self, request: AccessRequest, definition: ResourceDefinition,
                           applied: List[str]) -> Optional[AccessResult]:
        applied.append(TRAIL_ROLE_CHECK)
        category = OperationCategory.for_action(request.action)
        if category is None:
            # Non-standard actions fall through to ownership and hierarchy
            return None

        user_roles = await self._lookup_roles(request.user_id)
        granted = sorted(set(user_roles) & definition.roles_for(category))
        if not granted:
            return None

        return AccessResult(
            allowed=True,
            reason=f"Role-based access granted for roles: {', '.join(granted)}",
            applied_rules=tuple(applied),
            decided_by=DecisionStage.ROLE_BASED,
        )

    async def _lookup_roles(self, user_id: str) -> List[str]:
        try:
            return list(await asyncio.wait_for(
                self.role_directory.get_user_roles(user_id),
                timeout=self.role_lookup_timeout
            ))
        except asyncio.TimeoutError as e:
            raise RoleDirectoryError(
                f"role lookup timed out after {self.role_lookup_timeout}s",
                details={"user_id": user_id}
            ) from e
        except RoleDirectoryError:
            raise
        except Exception as e:
            raise RoleDirectoryError(f"role lookup failed: {e}", details={"user_id": user_id}) from e

    def _check_ownership(self, request: AccessRequest, definition: ResourceDefinition,
                         applied: List[str]) -> Optional[AccessResult]:
        if not definition.ownership_field:
            return None

        applied.append(TRAIL_OWNERSHIP_CHECK)
        context = request.context
        owner_id = context.owner_id or context.get(definition.ownership_field)
        if owner_id is None or owner_id != request.user_id:
            return None

        return AccessResult(
            allowed=True,
            reason="Resource ownership granted",
            applied_rules=tuple(applied),
            decided_by=DecisionStage.OWNERSHIP,
        )

    async def _check_hierarchy(self, request: AccessRequest, definition: ResourceDefinition,
                               applied: List[str], depth: int,
                               visited: Tuple[str, ...]) -> Optional[AccessResult]:
        parent_type = definition.parent_type
        if parent_type is None:
            return None
        # Inheritance only ever grants read on the child
        if OperationCategory.for_action(request.action) != OperationCategory.READ:
            return None

        applied.append(TRAIL_HIERARCHY_CHECK)
        chain = visited + (definition.type,)
        if parent_type in chain:
            raise ConfigurationError(
                f"Cyclic resource hierarchy: {' -> '.join(chain + (parent_type,))}",
                details={"resource_type": definition.type, "parent": parent_type}
            )
        if depth + 1 > self.max_hierarchy_depth:
            raise ConfigurationError(
                f"Resource hierarchy deeper than {self.max_hierarchy_depth} levels",
                details={"resource_type": definition.type, "parent": parent_type}
            )

        parent_applied: List[str] = []
        parent_result = await self._evaluate(
            request.for_parent(parent_type), parent_applied, depth + 1, chain
        )
        if not parent_result.allowed:
            return None

        applied.extend(parent_result.applied_rules)
        return AccessResult(
            allowed=True,
            reason=f"Hierarchical access through parent resource: {parent_type}",
            applied_rules=tuple(applied),
            decided_by=DecisionStage.HIERARCHICAL,
        )

    def _record(self, request: AccessRequest, result: AccessResult, start_time: float):
        duration = time.time() - start_time
        if self.metrics:
            self.metrics.record_access_decision(result.allowed, result.decided_by.value, duration)

        log = self.logger.info if self.audit_enabled else self.logger.debug
        log(
            "Access decision",
            user_id=request.user_id,
            action=request.action,
            resource_type=request.resource_type,
            resource_id=request.resource_id,
            allowed=result.allowed,
            reason=result.reason,
            decided_by=result.decided_by.value,
            applied_rules=list(result.applied_rules),
            evaluation_time_ms=round(duration * 1000, 3)
        )

    # Administrative operations

    def add_contextual_rule(self, rule: ContextualRule) -> bool:
        """Add or replace a rule; every cached decision is dropped."""
        replaced = self.rules.add(rule)
        self._clear_cache()
        return replaced

    def remove_contextual_rule(self, rule_id: str) -> bool:
        """Remove a rule; every cached decision is dropped if it existed."""
        removed = self.rules.remove(rule_id)
        if removed:
            self._clear_cache()
        return removed

    def register_resource(self, definition: ResourceDefinition) -> bool:
        """Register a resource type; replacing one drops every cached decision."""
        replaced = self.registry.register(definition)
        if replaced:
            self._clear_cache()
        return replaced

    def on_role_changed(self, user_id: str) -> int:
        """Hook for the embedding system after any role change of a user."""
        count = self.cache.invalidate_user(user_id)
        if self.metrics:
            self.metrics.set_cache_size(len(self.cache))
        return count

    async def get_user_roles(self, user_id: str) -> List[str]:
        return await self._lookup_roles(user_id)

    async def assign_role(self, user_id: str, role: str) -> bool:
        """Grant a role through a mutable role directory."""
        directory = self._mutable_directory()
        changed = await directory.assign_role(user_id, role)
        self.on_role_changed(user_id)
        return changed

    async def remove_role(self, user_id: str, role: str) -> bool:
        """Revoke a role through a mutable role directory."""
        directory = self._mutable_directory()
        changed = await directory.remove_role(user_id, role)
        self.on_role_changed(user_id)
        return changed

    def _mutable_directory(self) -> MutableRoleDirectory:
        if not isinstance(self.role_directory, MutableRoleDirectory):
            raise ConfigurationError(
                "Role directory does not accept assignments",
                details={"directory": type(self.role_directory).__name__}
            )
        return self.role_directory

    def _clear_cache(self):
        self.cache.clear()
        if self.metrics:
            self.metrics.set_cache_size(0)

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        cache_stats = self.cache.get_stats()
        rules = self.rules.list()
        return {
            "cache_size": cache_stats["size"],
            "cache_hit_rate": cache_stats["hit_rate"],
            "cache_hits": cache_stats["hits"],
            "cache_misses": cache_stats["misses"],
            "rules_count": len(rules),
            "rules_by_resource": rules_summary(rules),
            "resources_count": len(self.registry),
        }
