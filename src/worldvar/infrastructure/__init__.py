"""Infrastructure layer — state authority adapters.

Adapters speak the domain's tree and event types so the service layer can
treat every authority alike. They must never import from services,
commands, or output.
"""
