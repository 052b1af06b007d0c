"""CLI entry point for registry-digest."""

from __future__ import annotations

import json
import logging
import sys

import click

from registry_digest.config import ConfigError, ProviderConfig, load_provider_config
from registry_digest.datasource import read_registry_image
from registry_digest.registry.auth import (
    ChainedCredentialStore,
    Credentials,
    DockerConfigCredentialStore,
    EnvCredentialStore,
    StaticCredentialStore,
)
from registry_digest.registry.errors import DigestError
from registry_digest.registry.resolver import RETRY_POLICIES

logger = logging.getLogger(__name__)


def _parse_auth_overrides(auths: tuple[str, ...]) -> StaticCredentialStore:
    """Build a store from ``registry=user:pass`` overrides."""
    store = StaticCredentialStore()
    for auth_override in auths:
        domain, sep, creds = auth_override.partition("=")
        if not sep or ":" not in creds:
            raise click.BadParameter(
                f"expected registry=user:pass, got '{auth_override}'", param_hint="--auth"
            )
        user, pwd = creds.split(":", 1)
        store.add(domain, Credentials(user, pwd))
    return store


@click.group()
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=False,
    help="Enable verbose (DEBUG) logging.",
)
def main(verbose: bool) -> None:
    """registry-digest — resolve image tags to manifest digests."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@main.command()
@click.argument("name")
@click.option(
    "-k",
    "--insecure-skip-verify",
    is_flag=True,
    default=False,
    help="Disable TLS certificate verification of the registry.",
)
@click.option(
    "--auth",
    "auth",
    multiple=True,
    help="Credentials in registry.domain=user:pass format. Can be repeated.",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Provider configuration file (YAML or JSON) with registry_auth entries.",
)
@click.option(
    "--timeout",
    type=float,
    default=30.0,
    show_default=True,
    help="HTTP request timeout in seconds.",
)
@click.option(
    "--legacy-retry",
    type=click.Choice(sorted(RETRY_POLICIES), case_sensitive=False),
    default="any",
    show_default=True,
    help="Which failures trigger the retry with the legacy manifest media type.",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    default=False,
    help="Print the full data source result as JSON.",
)
def digest(
    name: str,
    insecure_skip_verify: bool,
    auth: tuple[str, ...],
    config_path: str | None,
    timeout: float,
    legacy_retry: str,
    as_json: bool,
) -> None:
    """Print the manifest digest of image NAME.

    NAME is a reference such as alpine, consul:1.9 or
    myregistry.example.com/org/image:v1.
    """
    try:
        provider = load_provider_config(config_path) if config_path else ProviderConfig()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    # --auth overrides, then the config file, then env vars, then ~/.docker/config.json.
    store = ChainedCredentialStore(
        _parse_auth_overrides(auth),
        provider.credential_store,
        EnvCredentialStore(),
        DockerConfigCredentialStore(),
    )

    try:
        result = read_registry_image(
            {"name": name, "insecure_skip_verify": insecure_skip_verify},
            ProviderConfig(credential_store=store),
            timeout=timeout,
            retry_policy=RETRY_POLICIES[legacy_retry.lower()],
        )
    except (ConfigError, DigestError) as exc:
        raise click.ClickException(str(exc)) from exc

    if as_json:
        click.echo(json.dumps(result, indent=2))
    else:
        click.echo(result["sha256_digest"])
