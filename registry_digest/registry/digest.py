"""Extract a manifest digest from a registry response."""

from __future__ import annotations

import hashlib
import logging

import requests

from registry_digest.registry.errors import BodyReadError

logger = logging.getLogger(__name__)

#: Header in which registries advertise the canonical manifest digest.
DIGEST_HEADER = "Docker-Content-Digest"


def compute_digest(data: bytes) -> str:
    """Return ``sha256:<hex>`` for *data*."""
    return "sha256:" + hashlib.sha256(data).hexdigest()


def digest_from_response(response: requests.Response) -> str:
    """Return the manifest digest of a successful (200) response.

    The ``Docker-Content-Digest`` header is trusted as-is when present.
    Otherwise the whole body is read and hashed locally.

    Raises:
        BodyReadError: If the body cannot be read.
    """
    header = response.headers.get(DIGEST_HEADER)
    if header:
        return header

    logger.debug("No %s header on %s, hashing the manifest body", DIGEST_HEADER, response.url)
    try:
        body = response.content
    except requests.RequestException as exc:
        raise BodyReadError(f"Error reading registry response body: {exc}") from exc
    return compute_digest(body)
