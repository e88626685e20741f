"""
API routers package.
"""

from escrow_auth.routers import auth, health

__all__ = [
    "auth",
    "health",
]
