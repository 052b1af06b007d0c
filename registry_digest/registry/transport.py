"""Thin wrapper over :mod:`requests` that maps transport failures to digest errors."""

from __future__ import annotations

import logging
from typing import Any

import requests

from registry_digest.registry.errors import NetworkError, RequestBuildError

logger = logging.getLogger(__name__)

# requests raises these before anything reaches the network.
_BUILD_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
    requests.exceptions.InvalidHeader,
)


def new_session(*, insecure_skip_verify: bool = False) -> requests.Session:
    """Create a session whose TLS verification setting only affects itself."""
    session = requests.Session()
    session.verify = not insecure_skip_verify
    return session


def http_get(session: requests.Session, url: str, **kwargs: Any) -> requests.Response:
    """Issue ``GET url`` on *session*.

    Raises:
        RequestBuildError: If the URL or headers are malformed.
        NetworkError: On connection, TLS, DNS or timeout failures.
    """
    logger.debug("GET %s", url)
    try:
        return session.get(url, **kwargs)
    except _BUILD_ERRORS as exc:
        raise RequestBuildError(f"Error creating registry request: {exc}") from exc
    except requests.RequestException as exc:
        raise NetworkError(f"Error during registry request: {exc}") from exc
