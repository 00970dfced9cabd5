"""Flask application factory for the casauth demo app."""

from __future__ import annotations

import os
import secrets
from typing import TYPE_CHECKING, Any

from flask import Flask

from casauth.web.extension import CasFlask

if TYPE_CHECKING:
    from casauth.core.auth import CasAuthenticator
    from casauth.core.config import AppConfig, CasConfig


def create_app(
    config: dict[str, Any] | None = None,
    cas_config: CasConfig | None = None,
    authenticator: CasAuthenticator | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Optional configuration dictionary to override defaults. A
            ``CAS`` mapping is used when neither ``cas_config`` nor
            ``authenticator`` is given.
        cas_config: CAS client settings.
        authenticator: Pre-built authenticator (e.g. with a mock transport).

    Returns:
        Configured Flask application instance.
    """
    app = Flask(__name__)

    app.config.from_mapping(
        SECRET_KEY=os.environ.get("CASAUTH_SECRET_KEY") or secrets.token_hex(32),
        SESSION_COOKIE_HTTPONLY=True,
    )

    if config:
        app.config.from_mapping(config)

    from casauth.web import routes

    routes.init_app(app)
    CasFlask(app, config=cas_config, authenticator=authenticator)

    return app


def run_server(
    app_config: AppConfig | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the Flask development server.

    Args:
        app_config: Application configuration. Loads from file/env if not provided.
        host: Override host from config.
        port: Override port from config.
    """
    from casauth.core.config import load_config
    from casauth.core.logging import configure_logging

    if app_config is None:
        app_config = load_config()

    configure_logging(
        level=app_config.logging.level,
        trace_enabled=app_config.logging.trace_enabled,
        log_file=app_config.logging.log_file,
    )

    cas_config = app_config.require_cas()
    server_host = host or app_config.server.host
    server_port = port or app_config.server.port

    app = create_app(cas_config=cas_config)
    app.debug = app_config.server.debug

    print("Starting casauth demo server...")
    print(f"  URL: http://{server_host}:{server_port}")
    print(f"  CAS server: {cas_config.cas_url} (protocol {cas_config.cas_version})")
    if cas_config.is_dev_mode:
        print(f"  WARNING: dev mode is on, every request is {cas_config.dev_mode_user}")
    print("")

    app.run(host=server_host, port=server_port)
