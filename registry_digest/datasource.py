"""The ``registry_image`` data source: reads the digest of a tag from its registry."""

from __future__ import annotations

import logging
from typing import Any

from registry_digest.config import ProviderConfig, validate
from registry_digest.registry.resolver import RetryPolicy, get_image_digest, retry_on_any_error

logger = logging.getLogger(__name__)


def read_registry_image(
    data: dict[str, Any],
    provider: ProviderConfig | None = None,
    *,
    timeout: float | None = 30,
    retry_policy: RetryPolicy = retry_on_any_error,
) -> dict[str, Any]:
    """Read the current digest of the image named in *data*.

    Args:
        data: ``{"name": ..., "insecure_skip_verify": ...}``.
        provider: Provider settings holding the registry credentials.
        timeout: HTTP request timeout in seconds.
        retry_policy: Decides whether a failed attempt is retried.

    Returns:
        The input fields plus ``sha256_digest`` and ``id`` (both the digest).

    Raises:
        ConfigError: If *data* is invalid.
        ImageDigestError: If the digest cannot be resolved.
    """
    validate(data, "registry_image.schema.json", "registry_image data source")
    provider = provider or ProviderConfig()
    insecure_skip_verify = data.get("insecure_skip_verify", False)

    digest = get_image_digest(
        data["name"],
        provider.credential_store,
        insecure_skip_verify=insecure_skip_verify,
        timeout=timeout,
        retry_policy=retry_policy,
    )
    return {
        "id": digest,
        "name": data["name"],
        "sha256_digest": digest,
        "insecure_skip_verify": insecure_skip_verify,
    }
