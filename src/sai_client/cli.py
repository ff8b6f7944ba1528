from __future__ import annotations

import json

import click

from sai_client.auth.credentials import BearerCredential
from sai_client.auth.identity import Identity
from sai_client.auth.oidc import discover_provider
from sai_client.auth.store import InMemoryCredentialStore
from sai_client.config import get_safe_config_report, get_settings
from sai_client.errors import SaiError
from sai_client.http.client import build_authorized_client
from sai_client.utils.log import set_log_level


def _secret(value) -> str:
    return value.get_secret_value() if value is not None else ""


def _bearer_from_settings(subject: str | None) -> BearerCredential:
    s = get_settings()
    token = _secret(s.access_token)
    if not token:
        raise click.UsageError("SAI_ACCESS_TOKEN is not set")
    client_id = str(s.client_id or s.application_id or "")
    issuer = str(s.oidc_issuer or "")
    refresh_token = _secret(s.refresh_token) or None
    token_endpoint = None
    if refresh_token and issuer:
        token_endpoint = discover_provider(issuer).token_endpoint
    return BearerCredential(
        token=token,
        identity=Identity(subject or client_id, client_id, issuer),
        refresh_token=refresh_token,
        token_endpoint=token_endpoint,
        client_secret=_secret(s.client_secret) or None,
    )


@click.group(name="sai-client", help="Authorized access to Solid resources")
@click.option("--log-level", default=None, help="Override SAI_LOG_LEVEL for this run.")
def cli(log_level: str | None) -> None:
    if log_level:
        set_log_level(log_level)


@cli.command(name="get")
@click.argument("url")
@click.option("--subject", default=None, help="WebID the token was issued for.")
@click.option("--accept", default="text/turtle", show_default=True)
def get_cmd(url: str, subject: str | None, accept: str) -> None:
    """
    GET a resource with the bearer token from SAI_ACCESS_TOKEN (refreshed on 401
    when SAI_REFRESH_TOKEN and SAI_OIDC_ISSUER are set).
    """
    try:
        credential = _bearer_from_settings(subject)
        store = InMemoryCredentialStore()
        store.store(credential)
        client = build_authorized_client(store, credential)
        resp = client.get(url, headers={"Accept": accept})
    except SaiError as ex:
        raise click.ClickException(str(ex)) from ex
    click.echo(f"HTTP {resp.status_code}")
    click.echo(resp.text)
    if not resp.is_success:
        raise SystemExit(1)


@cli.command(name="config")
def config_cmd() -> None:
    """Print the effective configuration (secrets shown as SET/UNSET only)."""
    click.echo(json.dumps(get_safe_config_report(), indent=2, sort_keys=True))


@cli.command(name="identity-id")
@click.argument("subject_id")
@click.argument("client_id")
@click.argument("issuer_id")
@click.option("--algorithm", default="sha256", show_default=True)
def identity_id_cmd(subject_id: str, client_id: str, issuer_id: str, algorithm: str) -> None:
    """Print the stable session identifier for an identity triple."""
    try:
        click.echo(Identity(subject_id, client_id, issuer_id).digest(algorithm))
    except SaiError as ex:
        raise click.ClickException(str(ex)) from ex


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
