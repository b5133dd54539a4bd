"""Storage key construction for rate limit counters.

Keys have the shape ``rl:{identity}:{resource}``. Both components are
normalized so that neither can contain the ``:`` delimiter or a glob
metacharacter, which keeps keys unambiguous and makes the prefix patterns
returned here match exactly the keys built for the same input.
"""

from __future__ import annotations

import hashlib
import re

KEY_NAMESPACE = "rl"
KEY_DELIMITER = ":"
SUBSTITUTE_CHAR = "_"
UNKNOWN_IDENTIFIER = "unknown"
MAX_IDENTIFIER_LENGTH = 64

# Delimiter-colliding characters, whitespace, and glob metacharacters used by
# prefix patterns (Redis SCAN MATCH and the in-memory matcher).
_UNSAFE_CHARS = re.compile(r"[:/\\?&=+*\[\]\s]")


def normalize_identifier(identifier: str | None) -> str:
    """Normalize an identity or resource into a key-safe component.

    Args:
        identifier: Raw caller-supplied value.

    Returns:
        Component free of unsafe characters, at most 64 characters long.
        Empty input maps to ``"unknown"``; overlong input maps to the
        SHA-256 hex digest of the original value.

    Examples:
        >>> normalize_identifier("GET /v1/items?x=1")
        'GET__v1_items_x_1'
        >>> normalize_identifier("  ")
        'unknown'
    """
    if not identifier or not identifier.strip():
        return UNKNOWN_IDENTIFIER

    normalized = _UNSAFE_CHARS.sub(SUBSTITUTE_CHAR, identifier)
    if len(normalized) > MAX_IDENTIFIER_LENGTH:
        return hashlib.sha256(identifier.encode("utf-8")).hexdigest()
    return normalized


def build_key(identity: str, resource: str) -> str:
    """Build the counter key for an (identity, resource) pair."""
    return KEY_DELIMITER.join(
        (KEY_NAMESPACE, normalize_identifier(identity), normalize_identifier(resource))
    )


def build_client_prefix(identity: str) -> str:
    """Pattern matching every counter key of one identity."""
    return KEY_DELIMITER.join((KEY_NAMESPACE, normalize_identifier(identity), "*"))


def build_resource_prefix(resource: str) -> str:
    """Pattern matching every counter key of one resource."""
    return KEY_DELIMITER.join((KEY_NAMESPACE, "*", normalize_identifier(resource)))


def hash_identity(identity: str) -> str:
    """Short SHA-256 prefix for logging identities without exposing them."""
    return hashlib.sha256(identity.encode()).hexdigest()[:16]
