from __future__ import annotations

import asyncio
import logging

import jwt
from jwt import PyJWKClient

from support_relay.application.dto.principal import Principal

logger = logging.getLogger(__name__)


class JWKSVerifier:
    """Verify JWTs using a remote JWKS endpoint."""

    def __init__(self, jwks_url: str) -> None:
        self._jwks_url = jwks_url
        self._jwk_client = PyJWKClient(jwks_url)

    async def verify(self, token: str) -> Principal:
        # PyJWKClient fetches keys with blocking urllib calls.
        signing_key = await asyncio.to_thread(self._jwk_client.get_signing_key_from_jwt, token)
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256", "ES256"],
            options={"require": ["sub"]},
        )
        logger.debug("JWKS token verified (kid=%s)", signing_key.key_id)
        return Principal.from_claims(payload)
