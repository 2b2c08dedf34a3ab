"""
auth.py — Caller verification for the admin endpoints

  Authorization: Bearer <ID token>
      → token verifier → uid
      → users/{uid} must exist with role == "admin" and status == "active"

Verifiers:
  - IdentityToolkitVerifier: looks the token up against the identity
    provider REST API (accounts:lookup) with a requests.Session
  - StaticTokenVerifier:     fixed token → uid table for development / tests

Failures raise AuthError subclasses before any business data is read.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import requests

from oncall.config import DEFAULT_IDENTITY_URL, Settings
from oncall.models import OnCallError, UserIdentity
from oncall.store import UserDirectory

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
ACTIVE_STATUS = "active"


class AuthError(OnCallError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class MissingAuthError(AuthError):
    error_code = "MISSING_AUTH"


class InvalidTokenError(AuthError):
    error_code = "INVALID_TOKEN"


class ForbiddenError(AuthError):
    status_code = 403
    error_code = "ADMIN_REQUIRED"


@dataclass(frozen=True)
class Actor:
    uid: str
    email: Optional[str] = None
    role: Optional[str] = None


# ---------------------------------------------------------------------------
# Token verifiers
# ---------------------------------------------------------------------------

class TokenVerifier(ABC):
    @abstractmethod
    def verify(self, token: str) -> Actor:
        """Return the caller for a valid token; raise InvalidTokenError otherwise."""


class StaticTokenVerifier(TokenVerifier):

    def __init__(self, tokens: Mapping[str, str]):
        self.tokens = dict(tokens)

    def verify(self, token: str) -> Actor:
        uid = self.tokens.get(token)
        if not uid:
            raise InvalidTokenError("Invalid or expired token")
        return Actor(uid=uid)


class IdentityToolkitVerifier(TokenVerifier):
    """
    Verify ID tokens with the identity provider's accounts:lookup endpoint.

    Args:
        api_key:  web API key of the project
        base_url: REST base URL
        timeout:  request timeout in seconds
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_IDENTITY_URL,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    def verify(self, token: str) -> Actor:
        endpoint = f"{self.base_url}/accounts:lookup"
        try:
            response = self.session.post(
                endpoint,
                params={"key": self.api_key},
                json={"idToken": token},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Identity lookup failed: {e}")
            raise InvalidTokenError("Invalid or expired token")

        if response.status_code != 200:
            logger.warning(f"Identity lookup rejected token: HTTP {response.status_code}")
            raise InvalidTokenError("Invalid or expired token")

        try:
            body = response.json()
        except ValueError as e:
            logger.warning(f"Identity lookup returned a non-JSON body: {e}")
            raise InvalidTokenError("Invalid or expired token")

        users = (body.get("users") if isinstance(body, dict) else None) or []
        if not users or not users[0].get("localId"):
            raise InvalidTokenError("Invalid or expired token")
        return Actor(uid=users[0]["localId"], email=users[0].get("email"))


def build_verifier(settings: Settings) -> TokenVerifier:
    if settings.identity_api_key:
        return IdentityToolkitVerifier(settings.identity_api_key, base_url=settings.identity_url)
    if settings.static_tokens:
        logger.warning("Using static token table for authentication (development mode)")
        return StaticTokenVerifier(settings.static_tokens)
    logger.warning("No token verifier configured; every request will be rejected")
    return StaticTokenVerifier({})


# ---------------------------------------------------------------------------
# Admin gate
# ---------------------------------------------------------------------------

def bearer_token(headers: Mapping[str, str]) -> str:
    header = headers.get("Authorization") or headers.get("authorization") or ""
    if not header.startswith("Bearer "):
        raise MissingAuthError("Missing or invalid authorization header")
    token = header[len("Bearer "):].strip()
    if not token:
        raise MissingAuthError("Missing or invalid authorization header")
    return token


def require_admin(
    headers: Mapping[str, str],
    verifier: TokenVerifier,
    directory: UserDirectory,
) -> Actor:
    """Verify the caller and require an active admin profile."""
    actor = verifier.verify(bearer_token(headers))
    profile: Optional[UserIdentity] = directory.get_user(actor.uid)
    if profile is None:
        raise ForbiddenError("User profile not found")
    if profile.role != ADMIN_ROLE or profile.status != ACTIVE_STATUS:
        raise ForbiddenError("Forbidden: Admin access required")
    return Actor(uid=actor.uid, email=actor.email or profile.email or None, role=profile.role)


def auth_error_body(error: AuthError) -> Dict[str, str]:
    return {"errorCode": error.error_code, "error": str(error)}
