"""
Authentication helpers for the MCP service.

Exports the JWT authenticator and the route dependencies that enforce
authentication and admin-only access.
"""

from .jwt_auth import (
    ADMIN_ROLES,
    AuthContext,
    AuthMiddleware,
    JWTAuthenticator,
    require_admin,
    require_auth,
)

__all__ = [
    "ADMIN_ROLES",
    "AuthContext",
    "AuthMiddleware",
    "JWTAuthenticator",
    "require_admin",
    "require_auth",
]
