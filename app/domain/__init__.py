"""
Domain layer containing the relay's core logic.

Submodules:
- relay: Connections, session registry, message routing and liveness sweeping.
- utils: Domain-specific utilities (e.g., ID generation).
"""
