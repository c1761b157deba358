"""
Unit tests for bearer-token authentication.
"""

import pytest
from jose import jwt

from shared.errors import AuthenticationError, AuthorizationError
from shared.logging import add_correlation_context, clear_context
from service_booking.app.auth.tokens import TokenAuthenticator, bearer_header


class TestTokenAuthenticator:
    """Test cases for TokenAuthenticator."""

    @pytest.fixture
    def authenticator(self):
        return TokenAuthenticator("test-secret")

    def test_valid_token(self, authenticator, make_request):
        token = authenticator.issue_token("pat-1", "patient")

        context = authenticator.authenticate(make_request(headers=bearer_header(token)))

        assert context.subject == "pat-1"
        assert context.role == "patient"

    def test_authentication_tags_log_events_with_caller(self, authenticator, make_request):
        token = authenticator.issue_token("doc-1", "doctor")

        try:
            authenticator.authenticate(make_request(headers=bearer_header(token)))
            event = add_correlation_context(None, "info", {"event": "Doctor profile updated"})
        finally:
            clear_context()

        assert event["user_id"] == "doc-1"
        assert event["role"] == "doctor"

    def test_missing_header(self, authenticator, make_request):
        with pytest.raises(AuthenticationError):
            authenticator.authenticate(make_request(headers={}))

    def test_wrong_secret(self, authenticator, make_request):
        token = TokenAuthenticator("other-secret").issue_token("pat-1", "patient")

        with pytest.raises(AuthenticationError):
            authenticator.authenticate(make_request(headers=bearer_header(token)))

    def test_unknown_role_claim(self, authenticator, make_request):
        token = jwt.encode({"sub": "pat-1", "role": "superuser"}, "test-secret", algorithm="HS256")

        with pytest.raises(AuthenticationError):
            authenticator.authenticate(make_request(headers=bearer_header(token)))

    def test_missing_subject(self, authenticator, make_request):
        token = jwt.encode({"role": "patient"}, "test-secret", algorithm="HS256")

        with pytest.raises(AuthenticationError):
            authenticator.authenticate(make_request(headers=bearer_header(token)))

    @pytest.mark.asyncio
    async def test_require_roles(self, authenticator, make_request):
        require_admin = authenticator.require_roles("admin")
        patient = make_request(headers=bearer_header(authenticator.issue_token("pat-1", "patient")))
        admin = make_request(headers=bearer_header(authenticator.issue_token("admin-1", "admin")))

        with pytest.raises(AuthorizationError):
            await require_admin(patient)
        assert (await require_admin(admin)).subject == "admin-1"

    def test_require_roles_rejects_unknown_role(self, authenticator):
        with pytest.raises(ValueError):
            authenticator.require_roles("nurse")

    def test_bearer_header_without_token(self):
        assert bearer_header(None) == {}
