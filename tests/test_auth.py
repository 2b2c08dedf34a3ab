"""
tests/test_auth.py — Token verification and the admin gate.

The identity provider is never contacted: IdentityToolkitVerifier gets a
stub session.
"""

import sys
from pathlib import Path

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall.auth import (
    ForbiddenError,
    IdentityToolkitVerifier,
    InvalidTokenError,
    MissingAuthError,
    StaticTokenVerifier,
    TokenVerifier,
    auth_error_body,
    bearer_token,
    build_verifier,
    require_admin,
)
from oncall.config import Settings


class FakeResponse:

    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:

    def __init__(self, response=None, error=None):
        self.headers = {}
        self.calls = []
        self.response = response
        self.error = error

    def post(self, url, params=None, json=None, timeout=None):
        self.calls.append({"url": url, "params": params, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


# ---------------------------------------------------------------------------
# Verifiers
# ---------------------------------------------------------------------------

class TestIdentityToolkitVerifier:

    def test_valid_token(self):
        session = FakeSession(FakeResponse(200, {"users": [{"localId": "u-admin", "email": "a@x.org"}]}))
        verifier = IdentityToolkitVerifier("key-123", base_url="https://id.example/v1/", session=session)

        actor = verifier.verify("tok")
        assert actor.uid == "u-admin"
        assert actor.email == "a@x.org"
        assert session.calls[0]["url"] == "https://id.example/v1/accounts:lookup"
        assert session.calls[0]["params"] == {"key": "key-123"}
        assert session.calls[0]["json"] == {"idToken": "tok"}

    @pytest.mark.parametrize("response", [
        FakeResponse(400, {"error": {"message": "INVALID_ID_TOKEN"}}),
        FakeResponse(200, {"users": []}),
        FakeResponse(200, {}),
        FakeResponse(200, {"users": [{"email": "no-id@x.org"}]}),
        FakeResponse(200, ["not", "an", "object"]),
    ])
    def test_rejected(self, response):
        verifier = IdentityToolkitVerifier("key", session=FakeSession(response))
        with pytest.raises(InvalidTokenError):
            verifier.verify("tok")

    def test_non_json_body(self):
        response = FakeResponse(200, requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0))
        verifier = IdentityToolkitVerifier("key", session=FakeSession(response))
        with pytest.raises(InvalidTokenError):
            verifier.verify("tok")

    def test_network_failure(self):
        session = FakeSession(error=requests.exceptions.ConnectionError("down"))
        with pytest.raises(InvalidTokenError):
            IdentityToolkitVerifier("key", session=session).verify("tok")


class TestBuildVerifier:

    def test_verifier_is_abstract(self):
        with pytest.raises(TypeError):
            TokenVerifier()

    def test_prefers_identity_provider(self):
        settings = Settings(identity_api_key="k", static_tokens={"t": "u"})
        assert isinstance(build_verifier(settings), IdentityToolkitVerifier)

    def test_static_tokens(self):
        verifier = build_verifier(Settings(static_tokens={"t": "u"}))
        assert verifier.verify("t").uid == "u"

    def test_nothing_configured_rejects_everything(self):
        with pytest.raises(InvalidTokenError):
            build_verifier(Settings()).verify("anything")


# ---------------------------------------------------------------------------
# Admin gate
# ---------------------------------------------------------------------------

class TestRequireAdmin:

    @pytest.fixture
    def verifier(self):
        return StaticTokenVerifier({
            "admin": "u-admin",
            "resident": "u-cohen",
            "former": "u-former",
            "ghost": "u-ghost",
        })

    def test_active_admin(self, verifier, directory):
        actor = require_admin({"Authorization": "Bearer admin"}, verifier, directory)
        assert actor.uid == "u-admin"
        assert actor.role == "admin"
        assert actor.email == "admin@example.org"

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer   "}])
    def test_missing(self, verifier, directory, headers):
        with pytest.raises(MissingAuthError):
            require_admin(headers, verifier, directory)

    def test_invalid_token(self, verifier, directory):
        with pytest.raises(InvalidTokenError):
            require_admin({"Authorization": "Bearer nope"}, verifier, directory)

    @pytest.mark.parametrize("token", ["resident", "former", "ghost"])
    def test_forbidden(self, verifier, directory, token):
        with pytest.raises(ForbiddenError) as exc:
            require_admin({"Authorization": f"Bearer {token}"}, verifier, directory)
        assert exc.value.status_code == 403
        assert auth_error_body(exc.value)["errorCode"] == "ADMIN_REQUIRED"

    def test_bearer_token_lowercase_header(self):
        assert bearer_token({"authorization": "Bearer abc "}) == "abc"
