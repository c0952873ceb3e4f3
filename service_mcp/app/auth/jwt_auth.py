"""
JWT authentication for the MCP service.

Token verification is delegated to python-jose; this module only maps the
verified claims onto the request and exposes FastAPI dependencies.
"""

import hmac
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, Request
from jose import JWTError, jwt

from shared.errors import AuthenticationError, AuthorizationError
from shared.logging import get_logger, set_user_context

ADMIN_ROLES = frozenset({"admin", "super_admin"})


@dataclass(frozen=True)
class AuthContext:
    """Authenticated request context derived from a verified credential."""

    user_id: Optional[str]
    tenant_id: Optional[str]
    role: Optional[str]
    claims: Dict[str, Any] = field(default_factory=dict)
    auth_method: str = "jwt"


class JWTAuthenticator:
    """Validates bearer tokens signed with a shared secret."""

    def __init__(
        self,
        secret: str,
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
        algorithms: Iterable[str] = ("HS256",),
        *,
        api_key: Optional[str] = None,
    ) -> None:
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.algorithms = list(algorithms)
        self.api_key = api_key
        self.logger = get_logger("mcp.auth.jwt")

    def authenticate(self, request: Request) -> AuthContext:
        """Authenticate the request from its API key or bearer token."""
        api_key = request.headers.get("X-API-Key")
        if api_key and self.api_key:
            return self._authenticate_api_key(api_key)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            raise AuthenticationError("Authorization header required")

        if not auth_header.startswith("Bearer "):
            raise AuthenticationError("Bearer token required")

        token = auth_header[7:].strip()
        claims = self.verify_token(token)
        return AuthContext(
            user_id=self._claim(claims, "user_id") or self._claim(claims, "sub"),
            tenant_id=self._claim(claims, "tenant_id"),
            role=self._claim(claims, "role"),
            claims=claims,
        )

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify signature and registered claims, returning the payload."""
        if not token:
            raise AuthenticationError("Invalid token")

        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError as exc:
            raise AuthenticationError("Invalid token", details={"error": str(exc)}) from exc

    def _authenticate_api_key(self, api_key: str) -> AuthContext:
        if not hmac.compare_digest(api_key, self.api_key):
            raise AuthenticationError("Invalid API key")

        self.logger.info("Request authenticated with API key", api_key=api_key[:4] + "...")
        return AuthContext(user_id="api-key", tenant_id=None, role="service", auth_method="api_key")

    @staticmethod
    def _claim(claims: Dict[str, Any], key: str) -> Optional[str]:
        value = claims.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


class AuthMiddleware:
    """Resolves caller identity for every request that presents credentials.

    Failures are not rejected here; they are kept on ``request.state`` so
    public routes stay reachable and protected routes report them through
    ``require_auth``.
    """

    def __init__(self, authenticator: JWTAuthenticator):
        self.authenticator = authenticator
        self.logger = get_logger("mcp.auth_middleware")

    async def dispatch(self, request: Request, call_next):
        request.state.auth_context = None
        request.state.auth_error = None

        if request.headers.get("Authorization") or request.headers.get("X-API-Key"):
            try:
                context = self.authenticator.authenticate(request)
            except AuthenticationError as exc:
                self.logger.warning("Authentication failed", error=exc.message, path=request.url.path)
                request.state.auth_error = exc
            else:
                request.state.auth_context = context
                request.state.user_id = context.user_id
                request.state.role = context.role
                if context.tenant_id:
                    request.state.claims_tenant_id = context.tenant_id
                set_user_context(context.user_id, context.tenant_id)

        return await call_next(request)


def require_auth(request: Request) -> AuthContext:
    """FastAPI dependency returning the authenticated caller."""
    context = getattr(request.state, "auth_context", None)
    if context is not None:
        return context

    error = getattr(request.state, "auth_error", None)
    if error is not None:
        raise error
    raise AuthenticationError("Authorization header required")


def require_admin(context: AuthContext = Depends(require_auth)) -> AuthContext:
    """FastAPI dependency restricting a route to admin roles."""
    if context.role is None:
        raise AuthorizationError("Role not found")
    if context.role not in ADMIN_ROLES:
        raise AuthorizationError("Admin access required", details={"role": context.role})
    return context
