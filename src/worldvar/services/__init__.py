"""Service layer — parsing, execution, and cache/authority reconciliation.

Services may import from domain and infrastructure layers.
They must never import from commands or output.
"""
