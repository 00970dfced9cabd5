"""Flask integration for the CAS authenticator.

Adapts Flask's ``session`` and ``request`` to the authenticator's explicit
interfaces and turns its decisions into Flask responses.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any, cast

from flask import Flask, abort, current_app, g, redirect, request, session

from casauth.core.auth import AuthDecision, CasAuthenticator, DecisionAction
from casauth.core.config import CasConfig
from casauth.core.errors import CasConfigError
from casauth.core.models import InboundRequest

if TYPE_CHECKING:
    from werkzeug.wrappers import Response as WerkzeugResponse

# App config keys
AUTHENTICATOR_KEY = "CAS_AUTHENTICATOR"
CAS_SETTINGS_KEY = "CAS"


class FlaskSessionStore:
    """SessionStore backed by ``flask.session``."""

    def get(self, key: str, default: Any = None) -> Any:
        return session.get(key, default)

    def set(self, key: str, value: Any) -> None:
        session[key] = value

    def delete(self, key: str) -> None:
        session.pop(key, None)

    def destroy(self) -> None:
        session.clear()


def get_authenticator() -> CasAuthenticator:
    """Get the CAS authenticator from the app context."""
    return cast("CasAuthenticator", current_app.config[AUTHENTICATOR_KEY])


def current_request() -> InboundRequest:
    """Describe the current Flask request for the authenticator."""
    path = request.script_root + request.path
    if request.query_string:
        path = f"{path}?{request.query_string.decode('utf-8', 'replace')}"
    return InboundRequest(host=request.host, path=path, query=request.args.to_dict())


def to_response(decision: AuthDecision) -> WerkzeugResponse | None:
    """Turn a decision into a Flask response (None when the request may proceed)."""
    if decision.action is DecisionAction.PASS:
        return None
    if decision.action is DecisionAction.REDIRECT:
        return redirect(decision.location or "/")
    if decision.action is DecisionAction.UNAUTHORIZED:
        abort(401)

    error = decision.error
    current_app.logger.error(
        f"CAS authentication error ({error.kind if error else 'unknown'}): "
        f"{error.message if error else 'no error recorded'}"
    )
    abort(decision.status_code, description=error.public_message if error else None)


def _guard(operation: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Build a view decorator that runs one authenticator operation first."""
    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(f)
        def decorated_function(*args: Any, **kwargs: Any) -> Any:
            authenticator = get_authenticator()
            decision: AuthDecision = getattr(authenticator, operation)(
                current_request(), FlaskSessionStore()
            )
            if not decision.allowed:
                return to_response(decision)

            g.cas_user = decision.user
            return f(*args, **kwargs)

        return decorated_function

    return decorator


# Redirect anonymous users to CAS login; validate tickets
bounce = _guard("bounce")
# Like bounce, but send authenticated users on to their stored return URL
bounce_redirect = _guard("bounce_redirect")
# Answer 401 to anonymous users
block = _guard("block")


class CasFlask:
    """Registers a CAS authenticator and its routes on a Flask app."""

    def __init__(
        self,
        app: Flask | None = None,
        config: CasConfig | None = None,
        authenticator: CasAuthenticator | None = None,
    ) -> None:
        self.config = config
        self.authenticator = authenticator
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Attach the authenticator to the app and register the CAS blueprint.

        The CAS settings come from the constructor, or else from the
        ``CAS`` mapping in the app config.
        """
        authenticator = self.authenticator
        if authenticator is None:
            config = self.config
            if config is None:
                settings = app.config.get(CAS_SETTINGS_KEY)
                if not settings:
                    raise CasConfigError(
                        f"No CAS configuration given and app.config[{CAS_SETTINGS_KEY!r}] is empty."
                    )
                config = CasConfig.from_dict(settings)
            authenticator = CasAuthenticator(config)

        self.authenticator = authenticator
        self.config = authenticator.config
        app.config[AUTHENTICATOR_KEY] = authenticator

        from casauth.web.routes.cas import cas_bp

        app.register_blueprint(cas_bp)
