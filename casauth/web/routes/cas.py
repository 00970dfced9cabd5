"""CAS login, logout and identity routes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flask import Blueprint, g, redirect

from casauth.web.extension import (
    FlaskSessionStore,
    block,
    bounce_redirect,
    get_authenticator,
    to_response,
)

if TYPE_CHECKING:
    from werkzeug.wrappers import Response as WerkzeugResponse

cas_bp = Blueprint("cas", __name__, url_prefix="/cas")


@cas_bp.route("/login")
@bounce_redirect
def login() -> WerkzeugResponse:
    """Start (or finish) a CAS login and return to the stored URL.

    bounce_redirect answers every request itself; the view only runs if an
    authenticated request somehow passes through.
    """
    return redirect("/")


@cas_bp.route("/logout")
def logout() -> WerkzeugResponse | None:
    """Clear the CAS identity and redirect to the CAS logout page."""
    return to_response(get_authenticator().logout(FlaskSessionStore()))


@cas_bp.route("/user")
@block
def user() -> dict[str, Any]:
    """Return the CAS identity as JSON, or 401 when not logged in."""
    return {
        "user": g.cas_user,
        "attributes": get_authenticator().get_user_info(FlaskSessionStore()),
    }
