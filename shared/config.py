"""
Shared configuration management for the access-control layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Log level")

    # Decision cache
    policy_cache_ttl_seconds: int = Field(default=300, ge=0, description="Lifetime of a cached decision")
    policy_cache_max_entries: int = Field(default=10000, ge=1, description="Upper bound on cached decisions")

    # Evaluation
    role_lookup_timeout_seconds: float = Field(default=2.0, gt=0, description="Timeout for role directory calls")
    max_hierarchy_depth: int = Field(default=8, ge=1, description="Maximum parent hops during hierarchical checks")
    resource_inheritance: bool = Field(default=True, description="Enable hierarchical resource inheritance")
    audit_enabled: bool = Field(default=True, description="Log every access decision")

    # Policy sources
    load_default_policies: bool = Field(default=True, description="Seed tournament resources and rules on start")
    resources_file: Optional[str] = Field(default=None, description="YAML/JSON file with resource definitions")
    role_assignments_file: Optional[str] = Field(default=None, description="YAML/JSON file with user role assignments")

    # External services
    role_directory_url: Optional[str] = Field(default=None, description="Remote role directory base URL")
    role_directory_failure_threshold: int = Field(default=3, ge=1)
    role_directory_recovery_timeout: float = Field(default=30.0, gt=0)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
