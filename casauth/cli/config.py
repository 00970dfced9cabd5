"""Configuration management CLI commands."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from casauth.core.config import (
    DEFAULT_CONFIG_FILE,
    AppConfig,
    get_default_config_yaml,
    load_config,
)
from casauth.core.errors import CasConfigError

# Common option for JSON output
json_option = click.option(
    "--json",
    "output_json",
    is_flag=True,
    help="Output results as JSON for scripting",
)


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result as JSON or formatted text.

    Args:
        data: Data to output
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
        return
    for key, value in data.items():
        click.echo(f"{key}: {value}")


def error_result(message: str, as_json: bool = False) -> NoReturn:
    """Output error message and exit.

    This function never returns - it either raises ClickException or calls sys.exit.

    Args:
        message: Error message
        as_json: If True, output as JSON
    """
    if as_json:
        click.echo(json.dumps({"error": message}, indent=2), err=True)
        sys.exit(1)
    raise click.ClickException(message)


def get_config_path(ctx: click.Context) -> Path:
    """Config file path chosen with ``casauth --config`` (or the default)."""
    obj = ctx.find_root().obj or {}
    return obj.get("config_path") or DEFAULT_CONFIG_FILE


def load_app_config(ctx: click.Context, as_json: bool = False) -> AppConfig:
    """Load configuration for a command, reporting errors the CLI way."""
    try:
        return load_config(get_config_path(ctx))
    except CasConfigError as e:
        error_result(e.message, as_json)


@click.group()
def config() -> None:
    """Manage casauth configuration."""
    pass


@config.command("path")
@click.pass_context
def config_path(ctx: click.Context) -> None:
    """Print the configuration file path."""
    click.echo(str(get_config_path(ctx)))


@config.command("init")
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite an existing configuration file.",
)
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a commented default configuration file.

    Examples:

        # Create ~/.casauth/config.yaml
        casauth config init

        # Write somewhere else
        casauth --config ./casauth.yaml config init
    """
    path = get_config_path(ctx)
    if path.exists() and not force:
        click.echo(f"Configuration file already exists: {path}")
        click.echo("Use --force to overwrite it.")
        return

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_default_config_yaml())
    click.echo(f"Configuration written to: {path}")
    click.echo("Edit cas.cas_url and cas.service_url before running 'casauth validate'.")


@config.command("show")
@json_option
@click.pass_context
def config_show(ctx: click.Context, output_json: bool) -> None:
    """Show the effective configuration (file plus environment)."""
    app_config = load_app_config(ctx, output_json)
    data = app_config.to_dict()

    if output_json:
        output_result(data, as_json=True)
        return

    cas = app_config.cas
    click.echo(f"Config file: {app_config.config_path or '(none)'}")
    click.echo("")
    if cas is None:
        click.echo("CAS: not configured")
    else:
        click.echo("CAS:")
        click.echo(f"  Server:        {cas.cas_url}")
        click.echo(f"  Service:       {cas.service_url}")
        click.echo(f"  Protocol:      {cas.cas_version}")
        click.echo(f"  Renew:         {cas.renew}")
        click.echo(f"  Dev mode:      {cas.is_dev_mode}"
                   + (f" (user: {cas.dev_mode_user})" if cas.is_dev_mode else ""))
        click.echo(f"  Session keys:  {cas.session_name}, {cas.session_info}, {cas.session_return_to}")
        click.echo(f"  Timeout:       {cas.timeout}s")
    click.echo("")
    click.echo("Server:")
    click.echo(f"  {app_config.server.host}:{app_config.server.port} (debug: {app_config.server.debug})")
    click.echo("Logging:")
    click.echo(f"  Level: {app_config.logging.level} (trace: {app_config.logging.trace_enabled})")
