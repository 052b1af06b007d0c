"""Exceptions raised while resolving an image digest."""

from __future__ import annotations


class DigestError(Exception):
    """Base class for every failure of a digest lookup."""


class RequestBuildError(DigestError):
    """Raised when a request cannot be built (malformed URL or host)."""


class NetworkError(DigestError):
    """Raised on transport failures: DNS, TLS, refused or reset connections, timeouts."""


class BadCredentials(DigestError):
    """Raised when the registry answers 401 without a bearer challenge."""


class RegistryError(DigestError):
    """Raised when a registry or token endpoint returns an unexpected status."""


class TokenParseError(DigestError):
    """Raised when a token endpoint response cannot be decoded."""


class BodyReadError(DigestError):
    """Raised when a manifest body cannot be read to compute its digest."""


class ImageDigestError(DigestError):
    """Final error of a digest lookup, after the legacy media-type retry.

    Args:
        registry: Registry hostname the lookup targeted.
        repository: Repository path.
        tag: Image tag.
        error: The error of the last attempt made.
    """

    def __init__(self, registry: str, repository: str, tag: str, error: DigestError) -> None:
        self.registry = registry
        self.repository = repository
        self.tag = tag
        self.error = error
        super().__init__(
            f"Got error when attempting to fetch image version {repository}:{tag} "
            f"from registry {registry}: {error}"
        )


def status_line(response) -> str:
    """Format ``<code> <reason>`` for a :class:`requests.Response`."""
    reason = response.reason or ""
    return f"{response.status_code} {reason}".strip()
