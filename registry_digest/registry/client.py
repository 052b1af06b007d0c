"""HTTP client for the Docker Registry V2 manifest API."""

from __future__ import annotations

import base64
import logging

import requests

from registry_digest.registry.auth import (
    AuthPolicy,
    AuthScheme,
    Credentials,
    default_auth_policy,
)
from registry_digest.registry.digest import digest_from_response
from registry_digest.registry.errors import BadCredentials, RegistryError, status_line
from registry_digest.registry.token import (
    fetch_bearer_token,
    is_bearer_challenge,
    parse_auth_challenge,
)
from registry_digest.registry.transport import http_get, new_session

logger = logging.getLogger(__name__)

# Schema 2 manifests and manifest lists, plus their OCI counterparts.
MANIFEST_MEDIA_TYPES = (
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
)

# For registries that do not negotiate schema 2 manifests (e.g. older gcr.io).
LEGACY_MANIFEST_MEDIA_TYPE = "application/vnd.docker.distribution.manifest.v1+prettyjws"


class RegistryClient:
    """Client resolving manifest digests on a Docker Registry V2 API.

    Handles basic and bearer-token authentication. Each client owns its own
    :class:`requests.Session`, so TLS settings never leak between clients.

    Args:
        registry: Registry hostname (e.g. ``registry-1.docker.io``).
        repository: Full repository path (e.g. ``library/nginx``).
        credentials: Credentials for the registry; anonymous by default.
        legacy: Ask for the legacy schema 1 manifest instead of the modern types.
        insecure_skip_verify: Disable TLS certificate verification.
        timeout: HTTP request timeout in seconds.
        auth_policy: Chooses how credentials are presented for a host.
    """

    def __init__(
        self,
        registry: str,
        repository: str,
        *,
        credentials: Credentials | None = None,
        legacy: bool = False,
        insecure_skip_verify: bool = False,
        timeout: float | None = 30,
        auth_policy: AuthPolicy = default_auth_policy,
    ) -> None:
        self.registry = registry
        self.repository = repository
        self.credentials = credentials or Credentials.anonymous()
        self.legacy = legacy
        self.timeout = timeout
        self.auth_policy = auth_policy
        self._session = new_session(insecure_skip_verify=insecure_skip_verify)
        self._base_url = f"https://{registry}/v2"

    def __enter__(self) -> RegistryClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def manifest_url(self, tag: str) -> str:
        return f"{self._base_url}/{self.repository}/manifests/{tag}"

    def fetch_manifest_digest(self, tag: str) -> str:
        """Return the manifest digest for *tag*.

        Args:
            tag: The image tag.

        Returns:
            The digest, ``sha256:<hex>``.

        Raises:
            BadCredentials: If the registry rejects the credentials outright.
            RegistryError: If the registry or token endpoint returns an
                unexpected status.
            TokenParseError: If the token response cannot be decoded.
            NetworkError: On transport failures.
            RequestBuildError: If the request URL is malformed.
            BodyReadError: If the manifest body cannot be read.
        """
        url = self.manifest_url(tag)
        headers = self._headers()

        resp = self._request(url, headers)
        try:
            if resp.status_code == 200:
                return digest_from_response(resp)

            if resp.status_code == 401:
                www_auth = resp.headers.get("WWW-Authenticate", "")
                if is_bearer_challenge(www_auth):
                    return self._fetch_with_token(url, headers, www_auth)
                raise BadCredentials(f"Bad credentials: {status_line(resp)}")

            raise RegistryError(f"Got bad response from registry: {status_line(resp)}")
        finally:
            resp.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        """Content negotiation plus the pre-set authorization header, if any."""
        if self.legacy:
            accept = LEGACY_MANIFEST_MEDIA_TYPE
        else:
            accept = ", ".join(MANIFEST_MEDIA_TYPES)
        headers = {"Accept": accept}

        creds = self.credentials
        if not creds.is_anonymous:
            scheme = self.auth_policy(self.registry)
            if scheme is AuthScheme.BEARER_PASSWORD:
                token = base64.b64encode(creds.password.encode("utf-8")).decode("ascii")
                headers["Authorization"] = f"Bearer {token}"
            else:
                basic = base64.b64encode(
                    f"{creds.username}:{creds.password}".encode("utf-8")
                ).decode("ascii")
                headers["Authorization"] = f"Basic {basic}"
        return headers

    def _request(self, url: str, headers: dict[str, str]) -> requests.Response:
        # Streamed so the body is only read when the digest must be computed.
        return http_get(self._session, url, headers=headers, timeout=self.timeout, stream=True)

    def _fetch_with_token(self, url: str, headers: dict[str, str], www_auth: str) -> str:
        """Answer a bearer challenge and retry the manifest request once."""
        challenge = parse_auth_challenge(www_auth)
        token = fetch_bearer_token(
            self._session, challenge, self.credentials, timeout=self.timeout
        )

        retry_headers = {**headers, "Authorization": f"Bearer {token}"}
        resp = self._request(url, retry_headers)
        try:
            if resp.status_code != 200:
                raise RegistryError(f"Got bad response from registry: {status_line(resp)}")
            return digest_from_response(resp)
        finally:
            resp.close()
