"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from src.api.routes import admin, leads, message_links

__all__ = [
    "admin",
    "leads",
    "message_links",
]
