"""Ticket validation CLI commands."""

from __future__ import annotations

import json
import secrets

import click

from casauth.cli.config import error_result, json_option, load_app_config
from casauth.core.auth import CasAuthenticator
from casauth.core.errors import AuthenticationFailureError, CasError
from casauth.core.logging import LogLevel, ProtocolLogger
from casauth.core.models import InboundRequest


def _authenticator(
    ctx: click.Context,
    as_json: bool = False,
    protocol_logger: ProtocolLogger | None = None,
) -> CasAuthenticator:
    app_config = load_app_config(ctx, as_json)
    if app_config.cas is None:
        error_result("No CAS server configured. Run 'casauth config init' first.", as_json)
    return CasAuthenticator(app_config.cas, protocol_logger=protocol_logger)


@click.command("validate")
@click.argument("ticket")
@click.option("--path", "request_path", default="/", show_default=True,
              help="Request path the ticket was issued for (appended to service_url)")
@click.option("--host", "request_host", default="localhost", show_default=True,
              help="Inbound host name (used in SAML request IDs)")
@click.option("--show-exchange", is_flag=True,
              help="Print the HTTP exchange with the CAS server (ticket redacted)")
@json_option
@click.pass_context
def validate(
    ctx: click.Context,
    ticket: str,
    request_path: str,
    request_host: str,
    show_exchange: bool,
    output_json: bool,
) -> None:
    """Validate a CAS ticket against the configured CAS server.

    The service URL sent to the server is service_url + PATH, so PATH must
    match the page that was protected when the ticket was issued.

    Examples:

        casauth validate ST-1-abcdef --path /dashboard

        casauth validate ST-1-abcdef --json
    """
    protocol_logger = ProtocolLogger(level=LogLevel.DEBUG)
    authenticator = _authenticator(ctx, output_json, protocol_logger=protocol_logger)
    protocol_logger.start_flow(f"cli_{secrets.token_hex(4)}", f"cas_{authenticator.config.cas_version}_validate")

    request = InboundRequest.from_url(request_host, request_path)
    try:
        result = authenticator.validate_ticket(request, ticket)
    except CasError as e:
        log = protocol_logger.end_flow()
        if show_exchange and log and not output_json:
            for exchange in log.exchanges:
                click.echo(exchange.format_log(LogLevel.DEBUG), err=True)
        if output_json:
            error = {"error": e.message, "kind": e.kind, "status_code": e.status_code}
            if isinstance(e, AuthenticationFailureError):
                error["codes"] = e.codes
            click.echo(json.dumps(error, indent=2), err=True)
            ctx.exit(1)
        raise click.ClickException(f"{e.kind}: {e.message}") from None

    log = protocol_logger.end_flow()

    if output_json:
        data = {"user": result.user, "attributes": result.attributes}
        if show_exchange and log:
            data["exchanges"] = [exchange.to_dict() for exchange in log.exchanges]
        click.echo(json.dumps(data, indent=2, default=str))
        return

    if show_exchange and log:
        for exchange in log.exchanges:
            click.echo(exchange.format_log(LogLevel.DEBUG))
        click.echo("")

    click.echo(f"User: {result.user}")
    if result.attributes is None:
        click.echo("Attributes: (none reported)")
        return
    click.echo("Attributes:")
    for name, value in result.attributes.items():
        shown = ", ".join(value) if isinstance(value, list) else value
        click.echo(f"  {name}: {shown}")


@click.command("login-url")
@click.argument("path", default="/")
@click.pass_context
def login_url(ctx: click.Context, path: str) -> None:
    """Print the CAS login URL for a protected PATH."""
    click.echo(_authenticator(ctx).login_url(path))


@click.command("logout-url")
@click.pass_context
def logout_url(ctx: click.Context) -> None:
    """Print the CAS logout URL."""
    click.echo(_authenticator(ctx).logout_url())
