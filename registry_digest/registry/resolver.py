"""Resolve an image reference to its manifest digest, with the legacy media-type retry."""

from __future__ import annotations

import logging
from typing import Callable

from registry_digest.registry.auth import (
    AuthPolicy,
    CredentialStore,
    default_auth_policy,
    resolve_credentials,
)
from registry_digest.registry.client import RegistryClient
from registry_digest.registry.errors import (
    DigestError,
    ImageDigestError,
    NetworkError,
    RequestBuildError,
)
from registry_digest.registry.parser import ImageReference, parse_image_reference

logger = logging.getLogger(__name__)

RetryPolicy = Callable[[DigestError], bool]


def retry_on_any_error(error: DigestError) -> bool:
    """Retry with the legacy media type whatever went wrong."""
    return True


def retry_on_negotiation_error(error: DigestError) -> bool:
    """Retry only when the registry answered; transport and URL errors fail fast."""
    return not isinstance(error, (NetworkError, RequestBuildError))


RETRY_POLICIES: dict[str, RetryPolicy] = {
    "any": retry_on_any_error,
    "negotiation": retry_on_negotiation_error,
}


def get_image_digest(
    name: str | ImageReference,
    credential_store: CredentialStore | None = None,
    *,
    insecure_skip_verify: bool = False,
    timeout: float | None = 30,
    auth_policy: AuthPolicy = default_auth_policy,
    retry_policy: RetryPolicy = retry_on_any_error,
) -> str:
    """Return the ``sha256:<hex>`` manifest digest of the image *name*.

    The lookup runs once asking for the modern manifest media types. If that
    fails and *retry_policy* accepts the error, it runs again from scratch
    asking for the legacy schema 1 manifest.

    Args:
        name: Image reference (``[registry/]repository[:tag]``) or an
            already-normalized :class:`ImageReference`.
        credential_store: Where to look up credentials for the registry.
        insecure_skip_verify: Disable TLS certificate verification.
        timeout: HTTP request timeout in seconds.
        auth_policy: Chooses how credentials are presented for a host.
        retry_policy: Decides whether a failed attempt is retried.

    Returns:
        The manifest digest.

    Raises:
        ImageDigestError: Wrapping the error of the last attempt made.
    """
    ref = parse_image_reference(name) if isinstance(name, str) else name
    credentials = resolve_credentials(ref.registry, credential_store)

    def attempt(legacy: bool) -> str:
        with RegistryClient(
            ref.registry,
            ref.repository,
            credentials=credentials,
            legacy=legacy,
            insecure_skip_verify=insecure_skip_verify,
            timeout=timeout,
            auth_policy=auth_policy,
        ) as client:
            return client.fetch_manifest_digest(ref.tag)

    try:
        digest = attempt(legacy=False)
    except DigestError as exc:
        if not retry_policy(exc):
            logger.warning("Digest lookup for %s failed, not retrying: %s", ref, exc)
            raise ImageDigestError(ref.registry, ref.repository, ref.tag, exc) from exc
        logger.info("Digest lookup for %s failed (%s), retrying with legacy media type", ref, exc)
        try:
            digest = attempt(legacy=True)
        except DigestError as legacy_exc:
            raise ImageDigestError(
                ref.registry, ref.repository, ref.tag, legacy_exc
            ) from legacy_exc

    logger.debug("Resolved %s to %s", ref, digest)
    return digest
