"""Caller authentication and client identity package."""

from src.services.auth.client_identity import (
    build_client_context,
    extract_client_ip,
    hash_client_ip,
)
from src.services.auth.provider import (
    AuthProviderInterface,
    StaticTokenAuthProvider,
    SupabaseAuthProvider,
    Unauthorized,
    create_auth_provider,
    extract_bearer_token,
)

__all__ = [
    "AuthProviderInterface",
    "StaticTokenAuthProvider",
    "SupabaseAuthProvider",
    "Unauthorized",
    "build_client_context",
    "create_auth_provider",
    "extract_bearer_token",
    "extract_client_ip",
    "hash_client_ip",
]
