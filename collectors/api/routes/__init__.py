"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from collectors.api.routes import chat, vehicles

__all__ = [
    "chat",
    "vehicles",
]
