"""
Loaders for policy configuration files.

Both files are YAML (JSON is accepted, being a YAML subset):

resources file::

    resources:
      - type: league
        actions: [create, read, update, delete]
        hierarchical: true
        parent: organization
        allowed_operations:
          read: [org_admin, viewer]

role assignments file::

    assignments:
      user-1: [org_admin]
"""

from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from shared.errors import ConfigurationError

from .models import ResourceDefinition


def _read(path: Union[str, Path]) -> Dict[str, Any]:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read policy file {path}", details={"error": str(e)}) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed policy file {path}", details={"error": str(e)}) from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Policy file {path} must contain a mapping")
    return data


def load_resource_definitions(path: Union[str, Path]) -> List[ResourceDefinition]:
    """Read resource definitions in file order (parents before children)."""
    entries = _read(path).get("resources") or []
    definitions = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get("type"):
            raise ConfigurationError(
                f"Resource entry #{index} in {path} has no type",
                details={"index": index}
            )
        try:
            definitions.append(ResourceDefinition.from_dict(entry))
        except ValueError as e:
            raise ConfigurationError(
                f"Resource '{entry['type']}' in {path} is invalid: {e}",
                details={"resource_type": entry["type"]}
            ) from e
    return definitions


def load_role_assignments(path: Union[str, Path]) -> Dict[str, List[str]]:
    """Read the user -> roles mapping."""
    assignments = _read(path).get("assignments") or {}
    if not isinstance(assignments, dict):
        raise ConfigurationError(f"'assignments' in {path} must be a mapping")
    return {str(user_id): [str(role) for role in roles or []] for user_id, roles in assignments.items()}
