"""Infrastructure Layer: engine lifecycle and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from services/
"""
