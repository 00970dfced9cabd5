"""CLI entry point for casauth."""

from pathlib import Path

import click

from casauth import __version__
from casauth.cli import config as config_commands
from casauth.cli import serve as serve_commands
from casauth.cli import validate as validate_commands


@click.group()
@click.version_option(version=__version__, prog_name="casauth")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),  # type: ignore[type-var]
    envvar="CASAUTH_CONFIG",
    default=None,
    help="Path to config.yaml (default: ~/.casauth/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """casauth - CAS Single Sign-On Client Tool."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


cli.add_command(config_commands.config)
cli.add_command(validate_commands.validate)
cli.add_command(validate_commands.login_url)
cli.add_command(validate_commands.logout_url)
cli.add_command(serve_commands.serve)
