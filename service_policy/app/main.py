"""
Access policy service for the tournament access layer.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import Body

from shared.base_service import BaseService
from shared.circuit_breaker import get_all_states, get_circuit_breaker
from shared.config import ServiceConfig
from shared.errors import NotFoundError

from .domain.access_middleware import AccessControlMiddleware
from .policy.engine import PolicyEngine
from .policy.loader import load_resource_definitions, load_role_assignments
from .policy.models import (
    AccessCheckRequest,
    AccessCheckResponse,
    ContextualRuleResponse,
    ResourceDefinitionPayload,
)
from .policy.registry import ResourceRegistry, default_tournament_resources
from .policy.rules import ContextualRuleSet, default_contextual_rules
from .roles.directory import InMemoryRoleDirectory, RoleDirectory
from .roles.http_client import HttpRoleDirectory


class PolicyService(BaseService):
    """Access policy service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None,
                 role_directory: Optional[RoleDirectory] = None,
                 engine: Optional[PolicyEngine] = None):
        super().__init__("policy", 8013, config)

        self.role_directory = role_directory or self._create_role_directory()
        self.engine = engine or self._create_engine()
        self.access_middleware = AccessControlMiddleware(self.engine)

        self._setup_policy_routes()

    def _create_role_directory(self) -> RoleDirectory:
        """Remote directory when configured, otherwise an in-memory one."""
        if self.config.role_directory_url:
            return HttpRoleDirectory(
                self.config.role_directory_url,
                timeout=self.config.role_lookup_timeout_seconds,
                circuit_breaker=get_circuit_breaker(
                    "role_directory",
                    failure_threshold=self.config.role_directory_failure_threshold,
                    recovery_timeout=self.config.role_directory_recovery_timeout
                )
            )

        assignments = {}
        if self.config.role_assignments_file:
            assignments = load_role_assignments(self.config.role_assignments_file)
        return InMemoryRoleDirectory(assignments)

    def _create_engine(self) -> PolicyEngine:
        """Seed the registry and rule set, then build the engine."""
        load_defaults = self.config.load_default_policies

        registry = ResourceRegistry(default_tournament_resources() if load_defaults else [])
        if self.config.resources_file:
            for definition in load_resource_definitions(self.config.resources_file):
                registry.register(definition)

        rules = ContextualRuleSet(
            default_contextual_rules() if load_defaults else [],
            metrics=self.metrics
        )

        self.logger.info(
            "Policy loaded",
            resources=len(registry),
            rules=len(rules),
            role_directory=type(self.role_directory).__name__
        )

        return PolicyEngine.from_config(
            self.config,
            self.role_directory,
            registry=registry,
            rules=rules,
            metrics=self.metrics
        )

    def _setup_policy_routes(self):
        """Set up policy-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "policy",
                "message": "Tournament Access Layer - Policy Service",
                "version": "1.0.0",
                "capabilities": ["access_check", "contextual_rules", "decision_cache", "hierarchy"]
            }

        @self.app.post("/access/check", response_model=AccessCheckResponse)
        async def check_access(request: AccessCheckRequest):
            """Evaluate one access request."""
            result = await self.engine.check_access(request.to_access_request())
            return AccessCheckResponse.from_result(result)

        @self.app.get("/access/resources", response_model=List[ResourceDefinitionPayload])
        async def list_resources():
            """List registered resource types."""
            return [ResourceDefinitionPayload.from_definition(d) for d in self.engine.registry.list()]

        @self.app.get("/access/resources/{resource_type}", response_model=ResourceDefinitionPayload)
        async def get_resource(resource_type: str):
            """Get a resource definition."""
            definition = self.engine.registry.lookup(resource_type)
            if definition is None:
                raise NotFoundError(f"Resource type {resource_type} not found")
            return ResourceDefinitionPayload.from_definition(definition)

        @self.app.post("/access/resources")
        async def register_resource(payload: ResourceDefinitionPayload):
            """Register or replace a resource type."""
            replaced = self.engine.register_resource(payload.to_definition())
            return {
                "resource": ResourceDefinitionPayload.from_definition(
                    self.engine.registry.lookup(payload.type)
                ),
                "replaced": replaced
            }

        @self.app.get("/access/rules", response_model=List[ContextualRuleResponse])
        async def list_rules(resource: Optional[str] = None):
            """List contextual rules in evaluation order."""
            rules = self.engine.rules.list()
            if resource:
                rules = [rule for rule in rules if rule.resource == resource]
            return [ContextualRuleResponse.from_rule(rule) for rule in rules]

        @self.app.delete("/access/rules/{rule_id}")
        async def delete_rule(rule_id: str):
            """Remove a contextual rule."""
            if not self.engine.remove_contextual_rule(rule_id):
                raise NotFoundError(f"Rule {rule_id} not found")
            return {"success": True, "message": "Rule deleted successfully"}

        @self.app.get("/access/roles/{user_id}")
        async def get_user_roles(user_id: str):
            """Roles the role directory reports for a user."""
            return {"user_id": user_id, "roles": await self.engine.get_user_roles(user_id)}

        @self.app.post("/access/roles/{user_id}/changed")
        async def role_changed(user_id: str):
            """Notification hook called after a user's roles change."""
            invalidated = self.engine.on_role_changed(user_id)
            return {"user_id": user_id, "invalidated": invalidated}

        @self.app.put("/access/roles/{user_id}")
        async def assign_role(user_id: str, role: str = Body(..., embed=True)):
            """Grant a role through the local role directory."""
            changed = await self.engine.assign_role(user_id, role)
            return {"user_id": user_id, "role": role, "changed": changed}

        @self.app.delete("/access/roles/{user_id}/{role}")
        async def remove_role(user_id: str, role: str):
            """Revoke a role through the local role directory."""
            changed = await self.engine.remove_role(user_id, role)
            return {"user_id": user_id, "role": role, "changed": changed}

        @self.app.get("/access/stats")
        async def get_stats():
            """Get policy service statistics."""
            return {
                "engine": self.engine.get_stats(),
                "circuit_breakers": get_all_states(),
                "timestamp": datetime.now().isoformat()
            }

    async def _check_dependencies(self):
        """Check policy service dependencies."""
        try:
            healthy = await self.role_directory.health_check()
        except Exception:
            healthy = False
        return {"role_directory": "ok" if healthy else "error"}


def create_app(config: Optional[ServiceConfig] = None,
               role_directory: Optional[RoleDirectory] = None):
    """Create policy service application."""
    service = PolicyService(config=config, role_directory=role_directory)
    return service.app


if __name__ == "__main__":
    service = PolicyService()
    service.run()
