"""
API route modules.

Each module defines routes for one area.
"""

from routes.relay import router as relay_router
from routes.sessions import router as sessions_router

__all__ = [
    "relay_router",
    "sessions_router",
]
