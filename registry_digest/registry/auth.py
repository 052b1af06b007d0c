"""Credential resolution and authentication policy for registries."""

from __future__ import annotations

import base64
import enum
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Protocol
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

# Hostnames Docker tooling uses for Docker Hub, all served by the same registry.
_DOCKER_HUB_ALIASES = {
    "docker.io",
    "index.docker.io",
    "registry.hub.docker.com",
    "registry-1.docker.io",
}
_DOCKER_HUB_HOST = "registry-1.docker.io"

# Registry whose "password" is a pre-issued token sent as a bearer credential.
_GITHUB_CONTAINER_REGISTRY = "ghcr.io"


@dataclass(frozen=True)
class Credentials:
    """Username/password pair. Both empty means anonymous access."""

    username: str = ""
    password: str = ""

    @classmethod
    def anonymous(cls) -> Credentials:
        return cls()

    @property
    def is_anonymous(self) -> bool:
        return not self.username

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password=***)"


class CredentialStore(Protocol):
    """Source of registry credentials keyed by normalized registry host."""

    def lookup(self, host: str) -> Credentials | None:
        """Return credentials for *host*, or ``None`` when none are known."""


class AuthScheme(enum.Enum):
    """How non-anonymous credentials are presented on manifest requests."""

    #: ``Authorization: Basic base64(user:pass)``
    BASIC = "basic"
    #: ``Authorization: Bearer base64(password)``
    BEARER_PASSWORD = "bearer-password"


AuthPolicy = Callable[[str], AuthScheme]


def default_auth_policy(host: str) -> AuthScheme:
    """Pick the auth scheme for *host*.

    GitHub Container Registry expects its personal access token as a bearer
    credential rather than a basic-auth password.
    """
    if host == _GITHUB_CONTAINER_REGISTRY:
        return AuthScheme.BEARER_PASSWORD
    return AuthScheme.BASIC


def normalize_registry_address(address: str) -> str:
    """Reduce a registry address to the host key used by credential stores.

    ``https://index.docker.io/v1/`` and ``docker.io`` both become
    ``registry-1.docker.io``; ``https://Example.com:443/v2/`` becomes
    ``example.com``.
    """
    address = address.strip()
    if "://" not in address:
        address = "https://" + address
    host = urlsplit(address).netloc.lower()
    if host.endswith(":443"):
        host = host[: -len(":443")]
    if host in _DOCKER_HUB_ALIASES:
        return _DOCKER_HUB_HOST
    return host


def resolve_credentials(host: str, store: CredentialStore | None) -> Credentials:
    """Look up credentials for an already-normalized registry *host*.

    Args:
        host: Registry hostname, as produced by reference normalization.
        store: Credential store to query. ``None`` means anonymous access.

    Returns:
        The stored credentials, or anonymous credentials when none match.
    """
    if store is None:
        return Credentials.anonymous()
    creds = store.lookup(host)
    if creds is None:
        logger.debug("No credentials found for %s, using anonymous access", host)
        return Credentials.anonymous()
    logger.debug("Using credentials of user %s for %s", creds.username, host)
    return creds


class StaticCredentialStore:
    """In-memory store; keys and lookups both go through :func:`normalize_registry_address`."""

    def __init__(self, auths: Mapping[str, Credentials] | None = None) -> None:
        self._auths: dict[str, Credentials] = {}
        for address, creds in (auths or {}).items():
            self.add(address, creds)

    def add(self, address: str, creds: Credentials) -> None:
        self._auths[normalize_registry_address(address)] = creds

    def lookup(self, host: str) -> Credentials | None:
        return self._auths.get(normalize_registry_address(host))

    def __len__(self) -> int:
        return len(self._auths)


class EnvCredentialStore:
    """Credentials from environment variables.

    Order of precedence:
    1. Domain-specific vars (e.g. ``REGISTRY_DIGEST_AUTH_GHCR_IO_USERNAME``)
    2. Global vars (``REGISTRY_DIGEST_USERNAME`` / ``REGISTRY_DIGEST_PASSWORD``)
    """

    def __init__(self, prefix: str = "REGISTRY_DIGEST") -> None:
        self.prefix = prefix

    def lookup(self, host: str) -> Credentials | None:
        host = normalize_registry_address(host)
        env_domain = host.upper().replace(".", "_").replace(":", "_").replace("-", "_")
        domain_user = os.environ.get(f"{self.prefix}_AUTH_{env_domain}_USERNAME")
        domain_pass = os.environ.get(f"{self.prefix}_AUTH_{env_domain}_PASSWORD")
        if domain_user and domain_pass:
            logger.debug("Using domain-specific env vars for %s", host)
            return Credentials(domain_user, domain_pass)

        global_user = os.environ.get(f"{self.prefix}_USERNAME")
        global_pass = os.environ.get(f"{self.prefix}_PASSWORD")
        if global_user and global_pass:
            logger.debug("Using global env vars for %s", host)
            return Credentials(global_user, global_pass)
        return None


class DockerConfigCredentialStore:
    """Credentials from the ``auths`` section of a Docker ``config.json``.

    The file is read lazily on the first lookup. A missing or unreadable file
    yields no credentials.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else Path.home() / ".docker" / "config.json"
        self._auths: dict[str, Credentials] | None = None

    def lookup(self, host: str) -> Credentials | None:
        if self._auths is None:
            self._auths = load_docker_config_auths(self.path)
        return self._auths.get(normalize_registry_address(host))


def load_docker_config_auths(path: str | Path) -> dict[str, Credentials]:
    """Read a Docker ``config.json`` into a normalized host -> credentials map."""
    path = Path(path)
    auths: dict[str, Credentials] = {}
    try:
        if not path.exists():
            return auths
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, ValueError) as e:
        logger.debug("Failed to read %s: %s", path, e)
        return auths

    if not isinstance(config, dict) or not isinstance(config.get("auths") or {}, dict):
        logger.debug("Ignoring %s: unexpected layout", path)
        return auths

    for address, entry in (config.get("auths") or {}).items():
        creds = _decode_auth_entry(entry)
        if creds is None:
            logger.debug("Skipping unusable auth entry for %s in %s", address, path)
            continue
        auths[normalize_registry_address(address)] = creds
    return auths


def _decode_auth_entry(entry: object) -> Credentials | None:
    if not isinstance(entry, dict):
        return None
    if entry.get("auth"):
        try:
            auth_str = base64.b64decode(entry["auth"]).decode("utf-8")
        except (ValueError, UnicodeDecodeError) as e:
            logger.debug("Failed to decode auth entry: %s", e)
            return None
        if ":" not in auth_str:
            return None
        user, pwd = auth_str.split(":", 1)
        return Credentials(user, pwd)
    if entry.get("username"):
        return Credentials(entry["username"], entry.get("password", ""))
    return None


class ChainedCredentialStore:
    """Query several stores in order; the first hit wins."""

    def __init__(self, *stores: CredentialStore) -> None:
        self.stores = stores

    def lookup(self, host: str) -> Credentials | None:
        for store in self.stores:
            creds = store.lookup(host)
            if creds is not None:
                return creds
        return None
