import logging
import time
from typing import Any

import httpx
from jose import JWTError, jwt

from focusdesk.config import Settings

logger = logging.getLogger(__name__)

JWKS_CACHE_TTL = 3600
DISCOVERY_TIMEOUT_SECONDS = 10


class OIDCVerificationError(ValueError):
    pass


class JWKSCache:
    """Signing keys per issuer, refreshed once they are older than ``ttl`` seconds."""

    def __init__(self, ttl: float = JWKS_CACHE_TTL):
        self.ttl = ttl
        self._keys: dict[str, tuple[float, dict[str, Any]]] = {}

    async def get(self, issuer_url: str) -> dict[str, Any]:
        now = time.monotonic()
        cached = self._keys.get(issuer_url)
        if cached and (now - cached[0]) < self.ttl:
            return cached[1]

        discovery_url = f"{issuer_url.rstrip('/')}/.well-known/openid-configuration"
        async with httpx.AsyncClient(timeout=DISCOVERY_TIMEOUT_SECONDS) as client:
            discovery = await client.get(discovery_url)
            discovery.raise_for_status()
            keys = await client.get(discovery.json()["jwks_uri"])
            keys.raise_for_status()

        jwks = keys.json()
        self._keys[issuer_url] = (now, jwks)
        return jwks

    def clear(self) -> None:
        self._keys.clear()


jwks_cache = JWKSCache()


async def validate_oidc_id_token(id_token: str, issuer_url: str, client_id: str) -> dict[str, Any]:
    try:
        jwks = await jwks_cache.get(issuer_url)
    except httpx.HTTPError as e:
        logger.error("Failed to fetch OIDC JWKS from %s: %s", issuer_url, e)
        raise OIDCVerificationError(f"Failed to contact OIDC provider: {e}") from None

    try:
        return jwt.decode(
            id_token,
            jwks,
            algorithms=["RS256", "ES256"],
            audience=client_id,
            issuer=issuer_url,
            options={"verify_exp": True, "verify_at_hash": False},
        )
    except JWTError as e:
        raise OIDCVerificationError(f"Invalid OIDC token: {e}") from None


async def verify_external_identity(id_token: str | None, external_id: str, settings: Settings) -> dict[str, Any]:
    """Check that ``id_token`` was issued by the configured provider for ``external_id``."""
    if not id_token:
        raise OIDCVerificationError("OIDC id_token is required for authentication")

    claims = await validate_oidc_id_token(id_token, settings.oidc_issuer_url, settings.oidc_client_id)
    if claims.get("sub") != external_id:
        raise OIDCVerificationError("Token subject does not match external_id")
    return claims
