"""
Authentication Providers

Resolve an opaque bearer token to a user identity. The hosted auth
service owns sign-up, sessions and token issuance; this module only
asks it "who is this token?".

Two implementations:
1. StaticTokenAuthProvider - fixed token map from settings, for local
   development and tests
2. SupabaseAuthProvider - asks the hosted auth API over HTTP
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import httpx
import structlog

from src.config import get_settings
from src.models.transaction import AuthenticatedUser

if TYPE_CHECKING:
    from src.audit import AuditLogger


logger = structlog.get_logger(__name__)


class Unauthorized(Exception):
    """Missing or invalid credential."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Pull the token out of an Authorization header value.

    Raises:
        Unauthorized: If the header is missing or carries no token
    """
    if not authorization or not authorization.strip():
        raise Unauthorized("Missing authorization header")

    token = authorization.strip()
    scheme, _, rest = token.partition(" ")
    if scheme.lower() == "bearer":
        token = rest.strip()

    if not token:
        raise Unauthorized("Unauthorized")
    return token


class AuthProviderInterface(ABC):
    """Resolves bearer tokens to users."""

    @abstractmethod
    async def get_user(self, token: str) -> AuthenticatedUser:
        """
        Resolve a token.

        Raises:
            Unauthorized: If the token is unknown, expired or malformed
        """
        pass

    async def authenticate(self, authorization: Optional[str]) -> AuthenticatedUser:
        """Resolve a raw Authorization header value."""
        return await self.get_user(extract_bearer_token(authorization))


class StaticTokenAuthProvider(AuthProviderInterface):
    """Tokens configured up front as {token: user_id}."""

    def __init__(self, tokens: Optional[dict[str, str]] = None):
        if tokens is None:
            tokens = get_settings().auth.static_token_map
        self._tokens = dict(tokens)

    async def get_user(self, token: str) -> AuthenticatedUser:
        user_id = self._tokens.get(token)
        if not user_id:
            raise Unauthorized("Unauthorized")
        return AuthenticatedUser(id=user_id)


class SupabaseAuthProvider(AuthProviderInterface):
    """
    Token lookup against a hosted Supabase-compatible auth API.

    GET {url}/auth/v1/user with the service key as `apikey` and the
    caller's token as bearer. Any non-200 answer means unauthorized.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        settings = get_settings().auth
        self._base_url = (base_url or settings.supabase_url).rstrip("/")
        self._service_key = service_key if service_key is not None else settings.service_key
        self._timeout = settings.timeout_seconds
        self._client = client
        self._audit_logger = audit_logger

        if not self._base_url:
            raise ValueError("AUTH_SUPABASE_URL must be set for the supabase auth provider")

    async def get_user(self, token: str) -> AuthenticatedUser:
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {token}",
        }
        url = f"{self._base_url}/auth/v1/user"

        try:
            if self._client is not None:
                response = await self._client.get(url, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, headers=headers)
        except httpx.HTTPError as e:
            logger.error("auth_lookup_failed", error=str(e))
            if self._audit_logger is not None:
                await self._audit_logger.log_external_service_error("auth", str(e))
            raise Unauthorized("Unauthorized") from e

        if response.status_code != 200:
            raise Unauthorized("Unauthorized")

        try:
            data = response.json()
        except ValueError as e:
            raise Unauthorized("Unauthorized") from e

        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise Unauthorized("Unauthorized")

        return AuthenticatedUser(id=str(user_id), email=data.get("email"))


def create_auth_provider(audit_logger: Optional["AuditLogger"] = None) -> AuthProviderInterface:
    """Build the provider selected by AUTH_PROVIDER."""
    if get_settings().auth.provider == "supabase":
        return SupabaseAuthProvider(audit_logger=audit_logger)
    return StaticTokenAuthProvider()
