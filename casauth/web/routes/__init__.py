"""Web routes for the casauth demo application."""

from typing import Any

from flask import Blueprint, Flask, g

from casauth.web.extension import FlaskSessionStore, bounce, get_authenticator

main_bp = Blueprint("main", __name__)


@main_bp.route("/")
@bounce
def index() -> dict[str, Any]:
    """Protected landing page showing the CAS identity."""
    return {
        "user": g.cas_user,
        "attributes": get_authenticator().get_user_info(FlaskSessionStore()),
    }


@main_bp.route("/health")
def health() -> dict[str, str]:
    """Health check endpoint (unauthenticated)."""
    return {"status": "healthy"}


def init_app(app: Flask) -> None:
    """Register blueprints with the Flask app."""
    app.register_blueprint(main_bp)
