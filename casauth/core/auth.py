"""CAS authorization decisions.

``CasAuthenticator`` decides what happens to an inbound request given the
client's session: let it through, send the client to the CAS login page,
validate the ticket it carries, or reject it. It never writes to the client
itself; every operation returns an ``AuthDecision`` that the host
integration turns into a response.

Per-request state is derived from the session and the request:

- dev mode on: authenticated as the configured developer identity
- identity slot set: authenticated
- ``ticket`` query parameter present: ticket pending validation
- otherwise: anonymous
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from casauth.core.config import CasConfig
from casauth.core.errors import CasError
from casauth.core.logging import ProtocolLogger
from casauth.core.models import AttributeValue, InboundRequest, UserResult
from casauth.core.parsing import get_parser
from casauth.core.request import Clock, ValidationRequestBuilder, build_query, build_service_url
from casauth.core.session import SessionStore
from casauth.core.transport import ValidationTransport

logger = logging.getLogger(__name__)

# Query parameter a caller may use to choose where to land after login
RETURN_TO_PARAM = "returnTo"

# Landing page when no return URL was stored
DEFAULT_RETURN_TO = "/"


class DecisionAction(StrEnum):
    """What the host integration should do with the request."""

    PASS = "pass"
    REDIRECT = "redirect"
    UNAUTHORIZED = "unauthorized"
    ERROR = "error"


@dataclass(frozen=True)
class AuthDecision:
    """Outcome of an authorization operation."""

    action: DecisionAction
    status_code: int = 200
    location: str | None = None
    error: CasError | None = None
    user: str | None = None

    @classmethod
    def pass_through(cls, user: str | None) -> AuthDecision:
        return cls(action=DecisionAction.PASS, user=user)

    @classmethod
    def redirect(cls, location: str, user: str | None = None) -> AuthDecision:
        return cls(action=DecisionAction.REDIRECT, status_code=302, location=location, user=user)

    @classmethod
    def unauthorized(cls) -> AuthDecision:
        return cls(action=DecisionAction.UNAUTHORIZED, status_code=401)

    @classmethod
    def failure(cls, error: CasError) -> AuthDecision:
        return cls(action=DecisionAction.ERROR, status_code=error.status_code, error=error)

    @property
    def allowed(self) -> bool:
        """Whether the request may proceed to the protected handler."""
        return self.action is DecisionAction.PASS


def _is_local_path(url: str) -> bool:
    return url.startswith("/") and not url.startswith("//")


class CasAuthenticator:
    """Bounce, block, login and logout operations for one CAS configuration."""

    def __init__(
        self,
        config: CasConfig,
        transport: ValidationTransport | None = None,
        clock: Clock | None = None,
        protocol_logger: ProtocolLogger | None = None,
    ) -> None:
        """Initialize the authenticator.

        Args:
            config: CAS client configuration.
            transport: Transport for validation requests. Created from config if not provided.
            clock: Current-time source for SAML request IDs.
            protocol_logger: Protocol logger for the default transport.
        """
        self.config = config
        self.builder = ValidationRequestBuilder(config, clock=clock)
        self.transport = transport or ValidationTransport(config, protocol_logger=protocol_logger)
        self._parse = get_parser(config.variant)

    # Session state

    def is_authenticated(self, session: SessionStore) -> bool:
        """Check whether the session holds a CAS identity.

        In dev mode the developer identity is written to the session on every
        call, replacing whatever was there.
        """
        if self.config.is_dev_mode:
            session.set(self.config.session_name, self.config.dev_mode_user)
            session.set(self.config.session_info, dict(self.config.dev_mode_info or {}))
            return True

        return bool(session.get(self.config.session_name))

    def get_user(self, session: SessionStore) -> str | None:
        """The authenticated CAS user, or None."""
        if self.is_authenticated(session):
            return session.get(self.config.session_name)
        return None

    def get_user_info(self, session: SessionStore) -> dict[str, AttributeValue] | None:
        """The authenticated user's CAS attributes, or None."""
        if self.is_authenticated(session):
            return session.get(self.config.session_info)
        return None

    # Operations

    def bounce(self, request: InboundRequest, session: SessionStore) -> AuthDecision:
        """Let authenticated requests through; validate tickets; send others to login."""
        if self.is_authenticated(session):
            return AuthDecision.pass_through(session.get(self.config.session_name))

        if request.ticket:
            return self.handle_ticket(request, session)

        return self.login(request, session)

    def bounce_redirect(self, request: InboundRequest, session: SessionStore) -> AuthDecision:
        """Like bounce, but authenticated requests go to the stored return URL."""
        if self.is_authenticated(session):
            return AuthDecision.redirect(
                session.get(self.config.session_return_to) or DEFAULT_RETURN_TO,
                user=session.get(self.config.session_name),
            )

        if request.ticket:
            return self.handle_ticket(request, session)

        return self.login(request, session)

    def block(self, request: InboundRequest, session: SessionStore) -> AuthDecision:
        """Let authenticated requests through and reject everything else.

        Never starts a login and never validates a ticket.
        """
        if self.is_authenticated(session):
            return AuthDecision.pass_through(session.get(self.config.session_name))

        logger.debug(f"Blocked unauthenticated request to {request.pathname}")
        return AuthDecision.unauthorized()

    def login_url(self, request_path: str) -> str:
        """CAS login URL whose service points back at ``request_path``."""
        query = {"service": build_service_url(self.config, request_path)}
        # renew is only sent when it is on
        if self.config.renew:
            query["renew"] = "true"
        return f"{self.config.cas_base_url}/login?{build_query(query)}"

    def logout_url(self) -> str:
        """CAS logout URL."""
        return f"{self.config.cas_base_url}/logout"

    def login(
        self,
        request: InboundRequest,
        session: SessionStore,
        return_to: str | None = None,
    ) -> AuthDecision:
        """Remember where to return and redirect to the CAS login page.

        Args:
            request: The inbound request.
            session: The client's session.
            return_to: Explicit landing URL. Defaults to a local ``returnTo``
                query parameter, then to the original request URL.
        """
        if return_to is None:
            requested = request.query.get(RETURN_TO_PARAM)
            return_to = request.path
            if requested and _is_local_path(requested):
                return_to = requested
            elif requested:
                logger.debug(f"Ignoring non-local {RETURN_TO_PARAM} {requested!r} on {request.pathname}")

        session.set(self.config.session_return_to, return_to)
        return AuthDecision.redirect(self.login_url(request.path))

    def logout(self, session: SessionStore) -> AuthDecision:
        """Forget the CAS identity and redirect to the CAS logout page."""
        if self.config.destroy_session:
            session.destroy()
        else:
            session.delete(self.config.session_name)
            session.delete(self.config.session_info)

        return AuthDecision.redirect(self.logout_url())

    # Ticket validation

    def validate_ticket(self, request: InboundRequest, ticket: str) -> UserResult:
        """Validate a ticket with the CAS server.

        Build, send and parse run in that order; the first failure stops the
        pipeline.

        Raises:
            TransportError: The CAS server could not be reached.
            MalformedResponseError: The response could not be understood.
            AuthenticationFailureError: The CAS server rejected the ticket.
        """
        validation_request = self.builder.build(request.host, request.path, ticket)
        body = self.transport.send(validation_request)
        return self._parse(body)

    def handle_ticket(self, request: InboundRequest, session: SessionStore) -> AuthDecision:
        """Validate the request's ticket and record the result in the session."""
        ticket = request.ticket
        if not ticket:
            return self.login(request, session)

        try:
            result = self.validate_ticket(request, ticket)
        except CasError as e:
            logger.warning(f"CAS ticket validation failed ({e.kind}): {e.message}")
            return AuthDecision.failure(e)
        except Exception as e:
            logger.exception("Unexpected error during CAS ticket validation")
            error = CasError(f"Unexpected error during ticket validation: {e}")
            error.__cause__ = e
            return AuthDecision.failure(error)

        session.set(self.config.session_name, result.user)
        if result.attributes is not None:
            session.set(self.config.session_info, result.attributes)
        else:
            session.delete(self.config.session_info)

        return_to = session.get(self.config.session_return_to) or DEFAULT_RETURN_TO
        session.delete(self.config.session_return_to)

        logger.info(f"CAS user {result.user} authenticated via {self.config.variant.value}")
        return AuthDecision.redirect(return_to, user=result.user)
