"""
Middleware package.
"""

from escrow_auth.middleware.auth import (
    get_app_settings,
    get_client_ip,
    get_session_id,
    get_session_registry,
    get_token_issuer,
    get_user_directory,
)

__all__ = [
    "get_app_settings",
    "get_client_ip",
    "get_session_id",
    "get_session_registry",
    "get_token_issuer",
    "get_user_directory",
]
