"""Bearer token exchange for ``WWW-Authenticate: Bearer`` challenges."""

from __future__ import annotations

import logging

import requests

from registry_digest.registry.auth import Credentials
from registry_digest.registry.errors import RegistryError, TokenParseError, status_line
from registry_digest.registry.transport import http_get

logger = logging.getLogger(__name__)


def is_bearer_challenge(header: str | None) -> bool:
    """Return ``True`` if *header* is a ``Bearer`` ``WWW-Authenticate`` value."""
    return bool(header) and header.startswith("Bearer")


def parse_auth_challenge(header: str) -> dict[str, str]:
    """Parse a ``Bearer realm=...,service=...,scope=...`` header into a dict.

    Pairs without ``=`` are skipped; keys that are not present are simply
    missing from the result.
    """
    # Drop the auth scheme token.
    _, _, header = header.strip().partition(" ")

    params: dict[str, str] = {}
    for part in header.split(","):
        part = part.strip()
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        params[key.strip()] = value.strip().strip('"').strip()
    return params


def fetch_bearer_token(
    session: requests.Session,
    challenge: dict[str, str],
    credentials: Credentials,
    *,
    timeout: float | None = None,
) -> str:
    """Request a token from the authorization server named by *challenge*.

    Args:
        session: Session to issue the request on.
        challenge: Parsed challenge, see :func:`parse_auth_challenge`.
        credentials: Sent as basic auth unless anonymous.
        timeout: HTTP request timeout in seconds.

    Returns:
        The bearer token.

    Raises:
        RegistryError: If the token endpoint does not answer 200.
        TokenParseError: If the response is not a JSON object with a token.
    """
    realm = challenge.get("realm", "")
    service = challenge.get("service", "")
    scope = challenge.get("scope", "")
    logger.debug("Authenticating: realm=%s service=%s scope=%s", realm, service, scope)

    auth = None
    if not credentials.is_anonymous:
        auth = (credentials.username, credentials.password)

    resp = http_get(
        session,
        realm,
        params={"service": service, "scope": scope},
        auth=auth,
        timeout=timeout,
    )
    try:
        if resp.status_code != 200:
            raise RegistryError(f"Got bad response from token endpoint {realm}: {status_line(resp)}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise TokenParseError(f"Error parsing OAuth token response: {exc}") from exc
    finally:
        resp.close()

    token = None
    if isinstance(data, dict):
        # Some authorization servers only send the OAuth2 field name.
        token = data.get("token") or data.get("access_token")
    if not isinstance(token, str) or not token:
        raise TokenParseError("Error parsing OAuth token response: no token in response")
    return token
