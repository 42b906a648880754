"""
Shared fixtures for Access Policy Service tests.
"""

import pytest

from service_policy.app.cache.decision_cache import DecisionCache
from service_policy.app.policy.engine import PolicyEngine
from service_policy.app.policy.models import OperationCategory, ResourceDefinition
from service_policy.app.policy.registry import ResourceRegistry
from service_policy.app.policy.rules import ContextualRuleSet
from service_policy.app.roles.directory import InMemoryRoleDirectory


class FakeClock:
    """Manually advanced clock for time-dependent components."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def tournament_definitions():
    """Small organization -> tournament -> match hierarchy plus a payment type."""
    return [
        ResourceDefinition(
            type="organization",
            actions={"create", "read", "update", "delete"},
            allowed_operations={
                OperationCategory.READ: {"org_admin"},
                OperationCategory.UPDATE: {"org_admin"},
            },
        ),
        ResourceDefinition(
            type="tournament",
            actions={"create", "read", "update", "delete", "publish"},
            hierarchical=True,
            parent="organization",
            allowed_operations={
                OperationCategory.READ: {"organizer", "viewer"},
                OperationCategory.UPDATE: {"organizer"},
            },
        ),
        ResourceDefinition(
            type="match",
            actions={"create", "read", "update", "score"},
            hierarchical=True,
            parent="tournament",
            allowed_operations={
                OperationCategory.UPDATE: {"referee"},
            },
        ),
        ResourceDefinition(
            type="payment",
            actions={"create", "read", "process", "refund"},
            ownership_field="userId",
            allowed_operations={
                OperationCategory.READ: {"finance"},
            },
        ),
    ]


@pytest.fixture
def role_directory():
    """Create an in-memory role directory."""
    return InMemoryRoleDirectory({
        "viewer-1": ["viewer"],
        "organizer-1": ["organizer"],
        "admin-1": ["org_admin"],
        "referee-1": ["referee"],
    })


@pytest.fixture
def decision_cache(clock):
    """Create a decision cache driven by the fake clock."""
    return DecisionCache(ttl_seconds=300, max_entries=100, clock=clock)


@pytest.fixture
def engine(role_directory, tournament_definitions, decision_cache):
    """Create PolicyEngine instance."""
    return PolicyEngine(
        role_directory,
        registry=ResourceRegistry(tournament_definitions),
        rules=ContextualRuleSet(),
        cache=decision_cache,
        role_lookup_timeout=0.5,
    )
