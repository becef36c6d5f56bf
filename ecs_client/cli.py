"""CLI commands for the ECS client."""

import json
import logging
import sys
from pathlib import Path

import click
import structlog

from ecs_client.client import EcsClient
from ecs_client.constants import COMPONENT_CLI
from ecs_client.errors import EcsError
from ecs_client.last_error import get_last_error
from ecs_client.models import AuthenticationMethod, Environment, EventType
from ecs_client.observability.logging import configure_logging
from ecs_client.options import EcsClientOptions
from ecs_client.settings import get_settings


logger = structlog.get_logger()

ENVIRONMENT_CHOICES = [env.name.lower() for env in Environment]
AUTH_METHOD_CHOICES = {
    "none": AuthenticationMethod.NONE,
    "certificate": AuthenticationMethod.AZURE_AD_CLIENT_CERTIFICATE_WITH_SNI,
    "system-identity": AuthenticationMethod.SYSTEM_ASSIGNED_MANAGED_IDENTITY,
    "user-identity": AuthenticationMethod.USER_ASSIGNED_MANAGED_IDENTITY,
}


def parse_identifiers(values: tuple[str, ...]) -> dict[str, list[str]]:
    """Group ``name=value`` pairs by name, preserving first-seen order.

    Raises:
        click.BadParameter: If a pair has no ``=`` or an empty name.
    """
    grouped: dict[str, list[str]] = {}
    for raw in values:
        name, sep, value = raw.partition("=")
        if not sep or not name.strip():
            msg = f"Expected name=value, got '{raw}'"
            raise click.BadParameter(msg, param_hint="--identifier")
        grouped.setdefault(name.strip(), []).append(value)
    return grouped


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """ECS configuration client CLI."""


@cli.command("get-config")
@click.option("--client", "client_name", required=True, help="ECS client name.")
@click.option(
    "--agent",
    "agents",
    multiple=True,
    help="Agent (project team) name. Repeat for several agents.",
)
@click.option(
    "--environment",
    type=click.Choice(ENVIRONMENT_CHOICES, case_sensitive=False),
    default="production",
    show_default=True,
    help="ECS environment.",
)
@click.option(
    "--identifier",
    "identifiers",
    multiple=True,
    help="Request identifier as name=value. Repeat a name for several values.",
)
@click.option(
    "--auth-method",
    type=click.Choice(list(AUTH_METHOD_CHOICES), case_sensitive=False),
    default="none",
    show_default=True,
    help="Authentication method.",
)
@click.option(
    "--certificate",
    "certificate_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="PKCS#12 (PFX) file for certificate authentication.",
)
@click.option("--tenant-id", help="Azure AD tenant for certificate authentication.")
@click.option("--client-id", help="Application or managed identity client id.")
@click.option(
    "--default-config",
    "default_config_path",
    type=click.Path(path_type=Path),
    help="JSON document served when the service is unreachable.",
)
@click.option(
    "--groups",
    "default_groups_path",
    type=click.Path(path_type=Path),
    help="JSON file with default request identifiers.",
)
@click.option("--enable-exp", is_flag=True, help="Request experiment assignments.")
@click.option("--pretty", is_flag=True, help="Pretty-print the JSON document.")
@click.option(
    "--json-logs/--no-json-logs",
    default=False,
    help="Use JSON format for logs (default: false).",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)
def get_config(  # noqa: PLR0913
    client_name: str,
    agents: tuple[str, ...],
    environment: str,
    identifiers: tuple[str, ...],
    auth_method: str,
    certificate_path: Path | None,
    tenant_id: str | None,
    client_id: str | None,
    default_config_path: Path | None,
    default_groups_path: Path | None,
    enable_exp: bool,
    pretty: bool,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Resolve the configuration once and print it to stdout.

    Logs go to stderr. Exits with status 1 when no configuration could be
    produced, printing the last error.
    """
    configure_logging(
        level=logging.DEBUG if verbose else logging.WARNING, json_format=json_logs
    )
    log = logger.bind(component=COMPONENT_CLI, command="get-config")
    request_identifiers = parse_identifiers(identifiers)

    events: list[tuple[EventType, str | None]] = []

    def on_event(_client: EcsClient, event_type: EventType, message: str | None) -> None:
        events.append((event_type, message))

    options = EcsClientOptions(
        default_config_path=default_config_path,
        default_groups_path=default_groups_path,
        certificate=certificate_path.read_bytes() if certificate_path else None,
        tenant_id=tenant_id,
        client_id=client_id,
        authentication_method=AUTH_METHOD_CHOICES[auth_method.lower()],
        event_callback=on_event,
        enable_exp=enable_exp,
    )

    try:
        with EcsClient.create(
            Environment[environment.upper()],
            client_name,
            agents,
            options,
            settings=get_settings(),
        ) as client:
            document = client.get_config(request_identifiers)
    except EcsError as e:
        log.error("get_config_failed", **e.to_dict())
        click.echo(f"Error: {get_last_error() or e.message}", err=True)
        sys.exit(1)

    for event_type, message in events:
        log.info("config_event", event_type=event_type.name, message=message)
    if events and events[-1][0] == EventType.CONFIGURATION_CHANGED_FROM_CACHE:
        click.echo("Warning: service unavailable, served cached configuration", err=True)

    if pretty:
        try:
            document = json.dumps(json.loads(document), indent=2, ensure_ascii=False)
        except ValueError:
            log.warning("document_not_json")
    click.echo(document)


@cli.command("show-settings")
def show_settings() -> None:
    """Print the effective process settings as JSON."""
    settings = get_settings()
    click.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    cli()
