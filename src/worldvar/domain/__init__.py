"""Domain layer — values, paths, commands, and error types.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""
