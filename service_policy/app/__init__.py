"""
Access Policy Service package for the tournament access layer.

This package decides whether a user may perform an action on a tournament
resource. It provides:

- app.main: API surface for access checks, policy administration and health.
- app.policy: Resource registry, contextual rules and the evaluation engine.
- app.cache: In-process decision cache with role/rule invalidation.
- app.roles: Role directory adapters (in-memory, HTTP).
- app.domain: FastAPI middleware that enforces decisions on routes.

Guidelines:
- One engine instance per process, injected where needed.
- Expected failures always resolve to a deny, never an exception.
- Keep evaluation deterministic so cached decisions stay sound.
"""
