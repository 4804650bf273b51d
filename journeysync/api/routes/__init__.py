"""FastAPI route modules.

Exports all route modules for inclusion in the main application.
"""

from journeysync.api.routes import clients, journeys, sync, touchpoints

__all__ = [
    "clients",
    "journeys",
    "sync",
    "touchpoints",
]
