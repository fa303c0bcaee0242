"""API key authentication dependency with SHA-256 hashing."""

from __future__ import annotations

import hashlib
import logging

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from aoiviewer.config import settings
from aoiviewer.services.metrics import metrics

logger = logging.getLogger("aoiviewer.auth")

ANONYMOUS_USER = "anonymous"

_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _hash_key(key: str) -> str:
    """Return the SHA-256 hex digest of a key."""
    return hashlib.sha256(key.encode()).hexdigest()


def _valid_key_hashes() -> set[str]:
    """Parse comma-separated API_KEYS setting into a set of hashes.

    64-character hex strings are treated as pre-hashed values.
    Shorter strings are hashed on the fly.
    """
    if not settings.api_keys:
        return set()
    hashes = set()
    for k in settings.api_keys.split(","):
        k = k.strip()
        if not k:
            continue
        if len(k) == 64:
            try:
                int(k, 16)
                hashes.add(k)
                continue
            except ValueError:
                pass
        hashes.add(_hash_key(k))
    return hashes


def user_id_for(key_hash: str) -> str:
    """Stable, non-secret user identifier derived from a key hash."""
    return f"user_{key_hash[:16]}"


async def require_user(
    api_key: str | None = Security(_header),
) -> str:
    """Resolve the calling user from the X-API-Key header.

    When auth is disabled (default), every caller is ``"anonymous"``.
    The plaintext key never leaves this function; AOIs are owned by an
    identifier derived from its hash.
    """
    if not settings.auth_enabled:
        return ANONYMOUS_USER

    if api_key is None:
        metrics.inc_auth_failure()
        raise HTTPException(status_code=401, detail="Missing API key")

    hashed = _hash_key(api_key)
    if hashed not in _valid_key_hashes():
        metrics.inc_auth_failure()
        logger.warning("Rejected API key with hash prefix %s", hashed[:8])
        raise HTTPException(status_code=403, detail="Invalid API key")

    return user_id_for(hashed)
