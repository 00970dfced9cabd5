"""Flask integration for casauth."""

from casauth.web.extension import (
    CasFlask,
    FlaskSessionStore,
    block,
    bounce,
    bounce_redirect,
    current_request,
    get_authenticator,
    to_response,
)

__all__ = [
    "CasFlask",
    "FlaskSessionStore",
    "block",
    "bounce",
    "bounce_redirect",
    "current_request",
    "get_authenticator",
    "to_response",
]
