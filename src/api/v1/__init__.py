"""
API v1 package.

Contains versioned routes for the identity and session API.
"""

from src.api.v1.routes import router

__all__ = ["router"]
