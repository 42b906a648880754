"""
Policy package.

Holds the access-control decision logic of the Access Policy Service:

- models: Requests, results, resource definitions and contextual rules.
- registry: Resource type catalogue with hierarchy validation.
- rules: Priority-ordered contextual rules and the tournament defaults.
- engine: The evaluation pipeline (cache, validation, rules, roles,
  ownership, hierarchy, default deny).
- loader: Reading resource definitions and role assignments from files.
"""
