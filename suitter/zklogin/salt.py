"""Salt authority and its HTTP client.

The salt is ``HMAC-SHA256(secret_key, sub)`` truncated to 16 bytes. It is
never stored: the same subject always re-derives the same salt while the
secret key is unchanged, which is what lets a user recover the same address
on any device. Rotating the secret key orphans every derived address.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from typing import Any, Dict, Iterable, Optional, Union

import jwt
import requests

from .errors import InvalidIdentityToken, SaltOverflow, SaltServiceError

logger = logging.getLogger(__name__)

SALT_BYTES = 16
MAX_SALT = 1 << 128


def derive_salt(secret_key: Union[str, bytes], sub: str) -> str:
    """
    Derive the salt for a subject.

    Args:
        secret_key: Salt authority secret
        sub: Subject claim of the identity token

    Returns:
        Decimal string of an integer below 2**128

    Raises:
        SaltOverflow: if the truncated digest does not fit in 128 bits
    """
    key = secret_key.encode("utf-8") if isinstance(secret_key, str) else bytes(secret_key)
    digest = hmac.new(key, sub.encode("utf-8"), hashlib.sha256).digest()

    salt = int.from_bytes(digest[:SALT_BYTES], "big")
    if salt >= MAX_SALT:
        raise SaltOverflow(f"Generated salt is too large ({salt.bit_length()} bits)")
    return str(salt)


def read_subject(token: str) -> str:
    """Return the ``sub`` claim of an unverified token.

    Raises:
        InvalidIdentityToken: if the token does not parse or has no sub.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise InvalidIdentityToken(f"Invalid JWT: {e}") from e

    sub = payload.get("sub")
    if not sub or not isinstance(sub, str):
        raise InvalidIdentityToken("Invalid JWT: missing sub claim")
    return sub


def get_salt(token: str, secret_key: Union[str, bytes]) -> str:
    """Parse ``token`` without verification and derive its subject's salt."""
    return derive_salt(secret_key, read_subject(token))


class ProviderTokenVerifier:
    """Verifies identity tokens against the provider's published JWKS.

    Used by the salt endpoint when ``SALT_VERIFY_JWT`` is on, so that salts
    are only handed out for tokens the provider actually signed.
    """

    def __init__(self, jwks_url: str, audiences: Optional[Iterable[str]] = None):
        self.jwks_client = jwt.PyJWKClient(jwks_url)
        self.audiences = [a for a in (audiences or []) if a]

    def verify(self, token: str) -> Dict[str, Any]:
        signing_key = self.jwks_client.get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=self.audiences or None,
            options={"verify_aud": bool(self.audiences)},
        )


class SaltServiceClient:
    """Client for the ``POST {jwt} -> {salt}`` salt endpoint."""

    def __init__(self, url: str, http: Optional[requests.Session] = None, timeout: Optional[float] = 30):
        self.url = url
        self.http = http or requests.Session()
        self.timeout = timeout

    def get_salt(self, token: str) -> str:
        """
        Fetch the salt for ``token``.

        Raises:
            SaltServiceError: on transport failure, non-2xx status or a
                response that is not a valid 128-bit decimal salt
        """
        try:
            resp = self.http.post(self.url, json={"jwt": token}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Salt service unreachable: {e}")
            raise SaltServiceError(f"Salt service unreachable: {e}") from e

        if resp.status_code >= 300:
            logger.error(f"Salt request failed: {resp.status_code} {resp.text}")
            raise SaltServiceError(f"Salt request failed: {resp.status_code}", status_code=resp.status_code)

        try:
            salt = str(resp.json()["salt"])
        except (ValueError, KeyError, TypeError) as e:
            raise SaltServiceError("Salt response missing salt") from e

        if not re.fullmatch(r"[0-9]+", salt) or int(salt) >= MAX_SALT:
            raise SaltServiceError("Salt service returned an out-of-range salt")
        return salt
