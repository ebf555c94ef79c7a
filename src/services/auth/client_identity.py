"""
Client identity helpers.

The submitting client's address is reduced to a salted SHA-256 hash as
soon as it is read from the request headers. The raw address is never
logged, stored or passed further than build_client_context().
"""

import hashlib
from typing import Mapping, Optional

from src.models.transaction import ClientContext


UNKNOWN_CLIENT = "unknown"


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case sensitive, request headers are not
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def extract_client_ip(headers: Mapping[str, str]) -> str:
    """
    Pick the client address from proxy headers.

    Order: first entry of X-Forwarded-For, then X-Real-IP, then "unknown".
    """
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = _header(headers, "x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return UNKNOWN_CLIENT


def hash_client_ip(client_ip: str, salt: str) -> str:
    """Salted one-way hash of a client address (hex SHA-256 of salt + address)."""
    return hashlib.sha256((salt + client_ip).encode("utf-8")).hexdigest()


def build_client_context(headers: Mapping[str, str], salt: str) -> ClientContext:
    return ClientContext(
        ip_hash=hash_client_ip(extract_client_ip(headers), salt),
        user_agent=_header(headers, "user-agent"),
    )
