"""
Unit tests for the ResourceRegistry and resource models.
"""

import pytest

from shared.errors import ConfigurationError

from service_policy.app.policy.models import OperationCategory, ResourceDefinition
from service_policy.app.policy.registry import ResourceRegistry, default_tournament_resources


class TestResourceRegistry:
    """Test cases for ResourceRegistry."""

    @pytest.fixture
    def registry(self):
        """Create ResourceRegistry with a root type."""
        return ResourceRegistry([
            ResourceDefinition(type="organization", actions={"read", "update"}),
        ])

    def test_register_and_lookup(self, registry):
        """Test registering a child of a known parent."""
        definition = ResourceDefinition(
            type="tournament",
            actions={"read"},
            hierarchical=True,
            parent="organization",
        )

        replaced = registry.register(definition)

        assert replaced is False
        assert registry.lookup("tournament") is definition
        assert "tournament" in registry
        assert len(registry) == 2

    def test_lookup_unknown(self, registry):
        """Test lookup of an unregistered type."""
        assert registry.lookup("widget") is None
        assert "widget" not in registry

    def test_replace_definition(self, registry):
        """Test that re-registering a type replaces it."""
        replacement = ResourceDefinition(type="organization", actions={"read"})

        assert registry.register(replacement) is True
        assert registry.lookup("organization").actions == frozenset({"read"})
        assert len(registry) == 1

    def test_dangling_parent_rejected(self, registry):
        """Test that a hierarchical type with an unknown parent is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            registry.register(ResourceDefinition(
                type="match", actions={"read"}, hierarchical=True, parent="tournament"
            ))

        assert "tournament" in exc_info.value.message
        assert "match" not in registry

    def test_parent_ignored_when_not_hierarchical(self, registry):
        """Test that a non-hierarchical type may name an unknown parent."""
        definition = ResourceDefinition(type="report", actions={"read"}, parent="tournament")

        registry.register(definition)

        assert definition.parent_type is None
        assert "report" in registry

    def test_cycle_rejected(self, registry):
        """Test that a replacement closing a parent cycle is rejected."""
        registry.register(ResourceDefinition(
            type="tournament", actions={"read"}, hierarchical=True, parent="organization"
        ))

        with pytest.raises(ConfigurationError) as exc_info:
            registry.register(ResourceDefinition(
                type="organization", actions={"read"}, hierarchical=True, parent="tournament"
            ))

        assert "Cyclic resource hierarchy" in exc_info.value.message
        assert registry.lookup("organization").parent is None

    def test_self_parent_rejected(self, registry):
        """Test that a type cannot be its own parent."""
        with pytest.raises(ConfigurationError):
            registry.register(ResourceDefinition(
                type="loop", actions={"read"}, hierarchical=True, parent="loop"
            ))

    def test_empty_type_rejected(self, registry):
        """Test that a definition needs a name."""
        with pytest.raises(ConfigurationError):
            registry.register(ResourceDefinition(type="", actions={"read"}))

    def test_list_in_registration_order(self):
        """Test listing definitions."""
        registry = ResourceRegistry(default_tournament_resources())

        types = [definition.type for definition in registry.list()]

        assert types[0] == "organization"
        assert set(types) == {
            "organization", "tournament", "participant", "match",
            "user_profile", "payment", "report",
        }


class TestResourceDefinition:
    """Test cases for ResourceDefinition."""

    def test_operations_cover_every_category(self):
        """Test that missing categories default to no roles."""
        definition = ResourceDefinition(
            type="match",
            actions={"read"},
            allowed_operations={"read": ["viewer"]},
        )

        assert definition.roles_for(OperationCategory.READ) == frozenset({"viewer"})
        assert definition.roles_for(OperationCategory.DELETE) == frozenset()

    def test_supports_action(self):
        """Test action validation including the wildcard."""
        definition = ResourceDefinition(type="match", actions={"read", "score"})

        assert definition.supports_action("score") is True
        assert definition.supports_action("*") is True
        assert definition.supports_action("delete") is False

    def test_dict_round_trip(self):
        """Test conversion to and from plain mappings."""
        data = {
            "type": "tournament",
            "actions": ["read", "update"],
            "ownership_field": "organizerId",
            "hierarchical": True,
            "parent": "organization",
            "allowed_operations": {"update": ["organizer"]},
        }

        definition = ResourceDefinition.from_dict(data)

        assert definition.parent_type == "organization"
        assert definition.to_dict()["allowed_operations"] == {
            "create": [], "read": [], "update": ["organizer"], "delete": [],
        }
        assert ResourceDefinition.from_dict(definition.to_dict()) == definition

    def test_unknown_category_rejected(self):
        """Test that operation categories are validated."""
        with pytest.raises(ValueError):
            ResourceDefinition(type="match", allowed_operations={"execute": ["admin"]})

    def test_operation_category_for_action(self):
        """Test mapping actions to categories."""
        assert OperationCategory.for_action("read") == OperationCategory.READ
        assert OperationCategory.for_action("publish") is None
