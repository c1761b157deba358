"""
Bearer-token authentication for the booking service.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import Request
from jose import JWTError, jwt

from shared.errors import AuthenticationError, AuthorizationError
from shared.logging import get_logger, set_user_context


ROLES = frozenset({"patient", "doctor", "admin"})


@dataclass(frozen=True)
class AuthContext:
    """Authenticated caller derived from a verified JWT."""

    subject: str
    role: str
    claims: Dict[str, Any]


class TokenAuthenticator:
    """Validates HS256 JWTs and restricts routes by role."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm
        self.logger = get_logger("booking.auth")

    def issue_token(self, subject: str, role: str, *, expires_in: int = 3600, **claims: Any) -> str:
        """Sign a token for ``subject``. Used by tests and local tooling."""
        if role not in ROLES:
            raise ValueError(f"Unknown role {role!r}")
        now = int(time.time())
        payload = {"sub": subject, "role": role, "iat": now, "exp": now + expires_in, **claims}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def authenticate(self, request: Request) -> AuthContext:
        """Authenticate the incoming request using the Authorization bearer token."""
        authorization = request.headers.get("Authorization")
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthenticationError("Missing or invalid Authorization header")

        token = authorization[7:].strip()
        if not token:
            raise AuthenticationError("Authorization header contained empty bearer token")

        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as exc:
            self.logger.info("Rejected bearer token", error=str(exc))
            raise AuthenticationError("Invalid or expired token") from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("JWT missing subject claim")

        role = claims.get("role")
        if role not in ROLES:
            raise AuthenticationError("JWT missing or unknown role claim")

        set_user_context(user_id=subject, role=role)
        return AuthContext(subject=subject, role=role, claims=claims)

    def require_roles(self, *roles: str) -> Callable[[Request], Awaitable[AuthContext]]:
        """FastAPI dependency admitting only callers holding one of ``roles``."""
        allowed = frozenset(roles)
        unknown = allowed - ROLES
        if unknown:
            raise ValueError(f"Unknown roles: {sorted(unknown)}")

        async def dependency(request: Request) -> AuthContext:
            context = self.authenticate(request)
            if context.role not in allowed:
                raise AuthorizationError(
                    "You're not authorized",
                    {"role": context.role, "required": sorted(allowed)},
                )
            return context

        dependency.__name__ = f"require_{'_or_'.join(sorted(allowed))}"
        return dependency


def bearer_header(token: Optional[str]) -> Dict[str, str]:
    """Authorization header for ``token``."""
    return {"Authorization": f"Bearer {token}"} if token else {}
