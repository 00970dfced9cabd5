"""Server CLI commands."""

import click

from casauth.cli.config import load_app_config


@click.command()
@click.option(
    "--host",
    "-h",
    default=None,
    help="Host to bind to (default: from config or 127.0.0.1)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to bind to (default: from config or 5000)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode",
)
@click.option(
    "--dev-user",
    default=None,
    help="Run in dev mode, treating every request as this CAS user",
)
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    debug: bool,
    dev_user: str | None,
) -> None:
    """Start the casauth demo web server.

    The demo app protects / with CAS bounce and exposes /cas/login,
    /cas/logout and /cas/user.

    Examples:

        # Start with settings from config.yaml
        casauth serve

        # Start on a custom port
        casauth serve --port 8080

        # Skip the CAS server while developing
        casauth serve --dev-user alice
    """
    import dataclasses

    from casauth.app import run_server
    from casauth.core.errors import CasConfigError

    config = load_app_config(ctx)

    if debug:
        config.server.debug = True

    if dev_user:
        try:
            cas = config.require_cas()
            config.cas = dataclasses.replace(cas, is_dev_mode=True, dev_mode_user=dev_user)
        except CasConfigError as e:
            raise click.ClickException(e.message) from None

    try:
        run_server(app_config=config, host=host, port=port)
    except CasConfigError as e:
        raise click.ClickException(e.message) from None
