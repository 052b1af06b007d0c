"""Provider configuration: registry credentials loaded from YAML or JSON."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from registry_digest.registry.auth import (
    CredentialStore,
    Credentials,
    StaticCredentialStore,
    load_docker_config_auths,
    normalize_registry_address,
)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a configuration document is missing or invalid."""


@dataclass
class ProviderConfig:
    """Settings shared by every data source read.

    Attributes:
        credential_store: Credentials declared under ``registry_auth``.
    """

    credential_store: CredentialStore = field(default_factory=StaticCredentialStore)


def load_schema(schema_file: str) -> dict[str, Any]:
    """Load a JSON Schema file from the ``registry_digest.schemas`` package."""
    schema_ref = resources.files("registry_digest.schemas").joinpath(schema_file)
    schema_text = schema_ref.read_text(encoding="utf-8")
    return json.loads(schema_text)  # type: ignore[no-any-return]


def validate(document: Any, schema_file: str, what: str) -> None:
    """Validate *document* against a bundled schema.

    Raises:
        ConfigError: If the document does not conform.
    """
    try:
        jsonschema.validate(instance=document, schema=load_schema(schema_file))
    except jsonschema.ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigError(f"Invalid {what} at {location}: {exc.message}") from exc


def load_provider_config(path: str | Path) -> ProviderConfig:
    """Load a provider configuration from a YAML or JSON file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration file {path}: {exc}") from exc

    try:
        if path.suffix in (".yaml", ".yml"):
            document = yaml.safe_load(text)
        else:
            document = json.loads(text)
    except (yaml.YAMLError, ValueError) as exc:
        raise ConfigError(f"Cannot parse configuration file {path}: {exc}") from exc

    return provider_config_from_dict(document or {})


def provider_config_from_dict(document: dict[str, Any]) -> ProviderConfig:
    """Build a :class:`ProviderConfig` from an already-parsed document."""
    validate(document, "provider.schema.json", "provider configuration")

    store = StaticCredentialStore()
    for entry in document.get("registry_auth", []):
        address = entry["address"]
        if "config_file" in entry:
            creds = _credentials_from_config_file(address, entry["config_file"])
        else:
            creds = Credentials(entry["username"], entry["password"])
        store.add(address, creds)
        logger.debug("Registered credentials for %s", normalize_registry_address(address))

    return ProviderConfig(credential_store=store)


def _credentials_from_config_file(address: str, config_file: str) -> Credentials:
    auths = load_docker_config_auths(Path(config_file).expanduser())
    creds = auths.get(normalize_registry_address(address))
    if creds is None:
        raise ConfigError(f"No credentials for {address} in {config_file}")
    return creds
