"""
Shared utilities for the tournament access-control layer.

This package aggregates common building blocks consumed by the policy
service and any embedding application:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers for policy decisions
- errors: Canonical error types and responses
- retry: Retry decorator for external calls
- circuit_breaker: Resilient external call protection
- base_service: FastAPI service skeleton (health, metrics, error handlers)

Do not import from service_* packages into shared/.
"""
