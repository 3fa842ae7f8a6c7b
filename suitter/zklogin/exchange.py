"""OAuth implicit-flow exchange with the identity provider."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import jwt

from .errors import InvalidIdentityToken

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
OAUTH_SCOPES = "openid email profile"


@dataclass(frozen=True)
class IdentityProvider:
    client_id: str
    redirect_uri: str
    auth_url: str = GOOGLE_AUTH_URL


@dataclass
class IdentityClaims:
    """Claims read from an identity token that has not been verified yet."""

    sub: str
    aud: str
    iss: Optional[str] = None
    nonce: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def build_authorization_url(provider: IdentityProvider, nonce: str) -> str:
    params = {
        "client_id": provider.client_id,
        "redirect_uri": provider.redirect_uri,
        "response_type": "id_token",
        "scope": OAUTH_SCOPES,
        "nonce": nonce,
    }
    return f"{provider.auth_url}?{urlencode(params)}"


def begin_redirect(provider: IdentityProvider, nonce: str, navigate: Callable[[str], None]) -> str:
    """
    Send the user to the provider's authorization page.

    Nothing in memory survives ``navigate``; everything needed on return must
    already be in the session store.

    Returns:
        The authorization URL handed to ``navigate``
    """
    url = build_authorization_url(provider, nonce)
    logger.info(f"Redirecting to identity provider {provider.auth_url}")
    navigate(url)
    return url


def extract_token(url: str, replace_url: Optional[Callable[[str], None]] = None) -> Optional[str]:
    """
    Read ``id_token`` from the URL fragment of a redirect-back page load.

    Any fragment is stripped through ``replace_url`` so the token does not
    linger in history, copied links or referrers. Tokens in the query string
    are ignored.

    Returns:
        The token, or None when the fragment carries none
    """
    parts = urlsplit(url)
    if not parts.fragment:
        return None

    params = parse_qs(parts.fragment)
    token = (params.get("id_token") or [None])[0]

    if replace_url is not None:
        replace_url(urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, "")))

    return token or None


def decode_claims(token: str) -> IdentityClaims:
    """Decode token claims without verifying the provider signature.

    The proving service verifies the signature; until then the claims are
    only trusted to locate the user's salt and address.

    Raises:
        InvalidIdentityToken: if the token cannot be parsed or lacks sub/aud.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise InvalidIdentityToken(f"Invalid JWT token: {e}") from e

    sub = payload.get("sub")
    aud = payload.get("aud")
    if isinstance(aud, list):
        aud = aud[0] if aud else None

    if not sub or not aud:
        raise InvalidIdentityToken("Invalid JWT token: missing sub or aud claim")

    return IdentityClaims(
        sub=str(sub),
        aud=str(aud),
        iss=payload.get("iss"),
        nonce=payload.get("nonce"),
        email=payload.get("email"),
        name=payload.get("name"),
        picture=payload.get("picture"),
        raw=payload,
    )
