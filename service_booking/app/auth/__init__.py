"""
Authentication helpers for the booking service.
"""

from .tokens import AuthContext, TokenAuthenticator, ROLES, bearer_header

__all__ = [
    "AuthContext",
    "ROLES",
    "TokenAuthenticator",
    "bearer_header",
]
