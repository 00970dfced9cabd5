"""Tests for CAS authorization decisions."""

import logging

import httpx
import pytest

from casauth.core.auth import AuthDecision, CasAuthenticator, DecisionAction
from casauth.core.errors import (
    AuthenticationFailureError,
    CasError,
    MalformedResponseError,
    TransportError,
)
from casauth.core.models import InboundRequest, UserResult
from casauth.core.session import MemorySession

CAS_SUCCESS = """<cas:serviceResponse xmlns:cas="http://www.yale.edu/tp/cas">
  <cas:authenticationSuccess>
    <cas:user>alice</cas:user>
    <cas:attributes>
      <cas:email>alice@example.edu</cas:email>
      <cas:memberOf>staff</cas:memberOf>
      <cas:memberOf>admins</cas:memberOf>
    </cas:attributes>
  </cas:authenticationSuccess>
</cas:serviceResponse>"""

CAS_FAILURE = """<cas:serviceResponse xmlns:cas="http://www.yale.edu/tp/cas">
  <cas:authenticationFailure code="INVALID_TICKET">Ticket ST-1 not recognized</cas:authenticationFailure>
</cas:serviceResponse>"""

LOGIN = "https://cas.example.edu/cas/login?service="


def request_for(path: str, host: str = "app.example.edu") -> InboundRequest:
    return InboundRequest.from_url(host, path)


@pytest.fixture
def authenticator(make_authenticator) -> CasAuthenticator:
    return make_authenticator()


@pytest.fixture
def logged_in() -> MemorySession:
    return MemorySession({"cas_user": "alice", "cas_userinfo": {"email": "alice@example.edu"}})


class TestAuthDecision:
    """Tests for decision values."""

    def test_pass_through(self):
        """Test that pass-through decisions allow the request."""
        decision = AuthDecision.pass_through("alice")
        assert decision.allowed
        assert decision.status_code == 200

    def test_redirect(self):
        """Test redirect decisions."""
        decision = AuthDecision.redirect("/home")
        assert not decision.allowed
        assert decision.status_code == 302
        assert decision.location == "/home"

    @pytest.mark.parametrize(
        ("error", "status"),
        [
            (TransportError("down"), 502),
            (MalformedResponseError("garbage"), 502),
            (AuthenticationFailureError("rejected", code="INVALID_TICKET"), 401),
            (CasError("unexpected"), 500),
        ],
    )
    def test_failure_status(self, error, status):
        """Test the status code of each error kind."""
        decision = AuthDecision.failure(error)
        assert decision.action is DecisionAction.ERROR
        assert decision.status_code == status
        assert decision.error is error


class TestBounce:
    """Tests for the bounce operation."""

    def test_authenticated_passes_through(self, authenticator, logged_in, cas_server):
        """Test that a logged-in session passes without contacting CAS."""
        decision = authenticator.bounce(request_for("/reports"), logged_in)
        assert decision.allowed
        assert decision.user == "alice"
        assert cas_server.requests == []

    def test_ticket_ignored_when_authenticated(self, authenticator, logged_in, cas_server):
        """Test that a ticket on an authenticated request is not validated."""
        decision = authenticator.bounce(request_for("/reports?ticket=ST-2"), logged_in)
        assert decision.allowed
        assert cas_server.requests == []

    def test_anonymous_redirects_to_login(self, authenticator, session, cas_server):
        """Test that anonymous requests go to the CAS login page."""
        decision = authenticator.bounce(request_for("/reports?page=2"), session)

        assert decision.action is DecisionAction.REDIRECT
        assert decision.location == LOGIN + "https%3A%2F%2Fapp.example.edu%2Freports"
        assert session.get("cas_return_to") == "/reports?page=2"
        assert cas_server.requests == []

    def test_valid_ticket(self, authenticator, session, cas_server):
        """Test that a valid ticket logs the user in and returns to the stored URL."""
        session.set("cas_return_to", "/reports?page=2")
        cas_server.respond(CAS_SUCCESS)

        decision = authenticator.bounce(request_for("/reports?ticket=ST-1"), session)

        assert decision.action is DecisionAction.REDIRECT
        assert decision.location == "/reports?page=2"
        assert decision.user == "alice"
        assert session.get("cas_user") == "alice"
        assert session.get("cas_userinfo") == {
            "email": "alice@example.edu",
            "memberOf": ["staff", "admins"],
        }
        assert "cas_return_to" not in session
        assert len(cas_server.requests) == 1
        assert cas_server.requests[0].url.params["ticket"] == "ST-1"
        assert cas_server.requests[0].url.params["service"] == "https://app.example.edu/reports"

    def test_valid_ticket_without_return_url(self, authenticator, session, cas_server):
        """Test that the landing page defaults to the site root."""
        cas_server.respond(CAS_SUCCESS)
        decision = authenticator.bounce(request_for("/reports?ticket=ST-1"), session)
        assert decision.location == "/"

    def test_rejected_ticket(self, authenticator, session, cas_server):
        """Test that a rejected ticket yields 401 and leaves the session anonymous."""
        cas_server.respond(CAS_FAILURE)
        decision = authenticator.bounce(request_for("/?ticket=ST-1"), session)

        assert decision.action is DecisionAction.ERROR
        assert decision.status_code == 401
        assert isinstance(decision.error, AuthenticationFailureError)
        assert decision.error.code == "INVALID_TICKET"
        assert "cas_user" not in session

    def test_malformed_response(self, authenticator, session, cas_server):
        """Test that an unreadable response yields 502."""
        cas_server.respond("<html>Service Unavailable</html>", status_code=503)
        decision = authenticator.bounce(request_for("/?ticket=ST-1"), session)
        assert decision.status_code == 502
        assert isinstance(decision.error, MalformedResponseError)

    def test_unreachable_server(self, authenticator, session, cas_server):
        """Test that a connection failure yields 502."""
        cas_server.fail(httpx.ConnectError("Connection refused"))
        decision = authenticator.bounce(request_for("/?ticket=ST-1"), session)
        assert decision.status_code == 502
        assert isinstance(decision.error, TransportError)

    def test_unexpected_error(self, authenticator, session, monkeypatch):
        """Test that an unclassified failure yields 500 with its cause kept."""
        def explode(body):
            raise RuntimeError("parser bug")

        monkeypatch.setattr(authenticator, "_parse", explode)
        monkeypatch.setattr(authenticator.transport, "send", lambda request: "")

        decision = authenticator.bounce(request_for("/?ticket=ST-1"), session)

        assert decision.status_code == 500
        assert type(decision.error) is CasError
        assert "parser bug" in decision.error.message
        assert isinstance(decision.error.__cause__, RuntimeError)

    def test_text_protocol_clears_attributes(self, make_authenticator, cas_server):
        """Test that a CAS 1.0 login leaves no stale attributes behind."""
        authenticator = make_authenticator(cas_version="1.0")
        session = MemorySession({"cas_userinfo": {"email": "old@example.edu"}})
        cas_server.respond("yes\nbob\n")

        authenticator.bounce(request_for("/?ticket=ST-1"), session)

        assert session.get("cas_user") == "bob"
        assert "cas_userinfo" not in session

    def test_saml_validation(self, make_authenticator, session, cas_server):
        """Test that SAML validation posts the ticket in the SOAP body."""
        authenticator = make_authenticator(cas_version="saml1.1")
        cas_server.respond(
            '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/">'
            "<SOAP-ENV:Body>"
            '<Response xmlns="urn:oasis:names:tc:SAML:1.0:protocol">'
            '<Status><StatusCode Value="samlp:Success"/></Status>'
            '<Assertion xmlns="urn:oasis:names:tc:SAML:1.0:assertion">'
            "<AuthenticationStatement><Subject><NameIdentifier>bob</NameIdentifier></Subject>"
            "</AuthenticationStatement></Assertion>"
            "</Response></SOAP-ENV:Body></SOAP-ENV:Envelope>"
        )

        decision = authenticator.bounce(request_for("/?ticket=ST-9"), session)

        assert decision.user == "bob"
        sent = cas_server.requests[0]
        assert sent.method == "POST"
        assert sent.url.path == "/cas/samlValidate"
        assert sent.url.params["TARGET"] == "https://app.example.edu/"
        assert b"ST-9" in sent.content
        assert b'RequestID="_app.example.edu.1704164645678"' in sent.content
        # No attribute statement, so the attributes slot is cleared
        assert "cas_userinfo" not in session


class TestBounceRedirect:
    """Tests for the bounce_redirect operation."""

    def test_authenticated_redirects_to_return_url(self, authenticator, logged_in, cas_server):
        """Test that logged-in users are sent to the stored URL."""
        logged_in.set("cas_return_to", "/reports")
        decision = authenticator.bounce_redirect(request_for("/cas/login"), logged_in)

        assert decision.action is DecisionAction.REDIRECT
        assert decision.location == "/reports"
        assert decision.user == "alice"
        assert cas_server.requests == []

    def test_authenticated_without_return_url(self, authenticator, logged_in):
        """Test that logged-in users without a stored URL go to the root."""
        decision = authenticator.bounce_redirect(request_for("/cas/login"), logged_in)
        assert decision.location == "/"

    def test_anonymous_redirects_to_login(self, authenticator, session):
        """Test that anonymous users are sent to CAS."""
        decision = authenticator.bounce_redirect(request_for("/cas/login"), session)
        assert decision.location.startswith(LOGIN)

    def test_ticket_is_validated(self, authenticator, session, cas_server):
        """Test that a pending ticket is validated."""
        cas_server.respond(CAS_SUCCESS)
        decision = authenticator.bounce_redirect(request_for("/cas/login?ticket=ST-1"), session)
        assert decision.user == "alice"
        assert session.get("cas_user") == "alice"


class TestBlock:
    """Tests for the block operation."""

    def test_authenticated_passes_through(self, authenticator, logged_in):
        """Test that logged-in users pass."""
        decision = authenticator.block(request_for("/api"), logged_in)
        assert decision.allowed
        assert decision.user == "alice"

    def test_anonymous_is_unauthorized(self, authenticator, session, cas_server):
        """Test that anonymous users get 401 without a login redirect."""
        decision = authenticator.block(request_for("/api"), session)
        assert decision.action is DecisionAction.UNAUTHORIZED
        assert decision.status_code == 401
        assert "cas_return_to" not in session
        assert cas_server.requests == []

    def test_ticket_is_never_validated(self, authenticator, session, cas_server):
        """Test that block ignores tickets."""
        cas_server.respond(CAS_SUCCESS)
        decision = authenticator.block(request_for("/api?ticket=ST-1"), session)
        assert decision.status_code == 401
        assert cas_server.requests == []
        assert "cas_user" not in session


class TestLogin:
    """Tests for login redirects."""

    def test_login_url(self, authenticator):
        """Test the login URL without renew."""
        assert authenticator.login_url("/a b") == LOGIN + "https%3A%2F%2Fapp.example.edu%2Fa%20b"

    def test_login_url_with_renew(self, make_authenticator):
        """Test that renew=true is added when renew is on."""
        authenticator = make_authenticator(renew=True)
        assert authenticator.login_url("/").endswith("&renew=true")

    def test_login_url_trailing_slash(self, make_authenticator):
        """Test that a trailing slash on cas_url is not doubled."""
        authenticator = make_authenticator(cas_url="https://cas.example.edu/cas/")
        assert authenticator.login_url("/").startswith(LOGIN)

    def test_explicit_return_to(self, authenticator, session):
        """Test that an explicit return target is stored."""
        authenticator.login(request_for("/cas/login"), session, return_to="/after")
        assert session.get("cas_return_to") == "/after"

    def test_return_to_query_parameter(self, authenticator, session):
        """Test that a local returnTo parameter is honoured."""
        authenticator.login(request_for("/cas/login?returnTo=/reports"), session)
        assert session.get("cas_return_to") == "/reports"

    @pytest.mark.parametrize("target", ["https://evil.example.com/", "//evil.example.com/"])
    def test_external_return_to_is_ignored(self, authenticator, session, target):
        """Test that returnTo cannot point off-site."""
        request = InboundRequest(host="app", path="/cas/login", query={"returnTo": target})
        authenticator.login(request, session)
        assert session.get("cas_return_to") == "/cas/login"

    def test_external_return_to_is_logged(self, authenticator, session, caplog):
        """Test that a dropped returnTo leaves a debug trace."""
        caplog.set_level(logging.DEBUG, logger="casauth.core.auth")
        request = InboundRequest(host="app", path="/cas/login", query={"returnTo": "//evil.example.com/"})
        authenticator.login(request, session)
        assert "Ignoring non-local returnTo '//evil.example.com/' on /cas/login" in caplog.text

    def test_custom_session_keys(self, make_authenticator, session):
        """Test that configured session keys are used."""
        authenticator = make_authenticator(session_return_to="next")
        authenticator.login(request_for("/x"), session)
        assert session.get("next") == "/x"


class TestLogout:
    """Tests for the logout operation."""

    def test_clears_identity(self, authenticator, logged_in):
        """Test that logout removes only the CAS slots."""
        logged_in.set("theme", "dark")
        decision = authenticator.logout(logged_in)

        assert decision.location == "https://cas.example.edu/cas/logout"
        assert logged_in.data == {"theme": "dark"}
        assert not logged_in.destroyed

    def test_destroy_session(self, make_authenticator, logged_in):
        """Test that destroy_session discards the whole session."""
        authenticator = make_authenticator(destroy_session=True)
        logged_in.set("theme", "dark")
        decision = authenticator.logout(logged_in)

        assert decision.location == "https://cas.example.edu/cas/logout"
        assert logged_in.destroyed
        assert logged_in.data == {}

    def test_anonymous_logout_still_redirects(self, authenticator, session):
        """Test that logout redirects even when nothing was deleted."""
        decision = authenticator.logout(session)
        assert decision.status_code == 302
        assert decision.location == "https://cas.example.edu/cas/logout"


class TestDevMode:
    """Tests for the developer-mode override."""

    @pytest.fixture
    def dev_authenticator(self, make_authenticator) -> CasAuthenticator:
        return make_authenticator(
            is_dev_mode=True,
            dev_mode_user="developer",
            dev_mode_info={"email": "dev@example.edu"},
        )

    def test_overrides_anonymous(self, dev_authenticator, session, cas_server):
        """Test that anonymous requests become the developer."""
        decision = dev_authenticator.bounce(request_for("/?ticket=ST-1"), session)
        assert decision.allowed
        assert decision.user == "developer"
        assert session.get("cas_userinfo") == {"email": "dev@example.edu"}
        assert cas_server.requests == []

    def test_overrides_existing_identity(self, dev_authenticator, logged_in):
        """Test that the developer identity replaces the session contents on every call."""
        dev_authenticator.block(request_for("/"), logged_in)
        assert logged_in.get("cas_user") == "developer"

        logged_in.set("cas_user", "someone-else")
        assert dev_authenticator.get_user(logged_in) == "developer"
        assert dev_authenticator.get_user_info(logged_in) == {"email": "dev@example.edu"}

    def test_without_info(self, make_authenticator, session):
        """Test that dev mode without info stores empty attributes."""
        authenticator = make_authenticator(is_dev_mode=True, dev_mode_user="developer")
        assert authenticator.is_authenticated(session)
        assert session.get("cas_userinfo") == {}


class TestValidateTicket:
    """Tests for direct ticket validation."""

    def test_returns_user_result(self, authenticator, cas_server):
        """Test that a successful validation returns the parsed result."""
        cas_server.respond(CAS_SUCCESS)
        result = authenticator.validate_ticket(request_for("/"), "ST-1")
        assert isinstance(result, UserResult)
        assert result.user == "alice"

    def test_raises_classified_errors(self, authenticator, cas_server):
        """Test that failures are raised, not converted to decisions."""
        cas_server.respond(CAS_FAILURE)
        with pytest.raises(AuthenticationFailureError):
            authenticator.validate_ticket(request_for("/"), "ST-1")

    def test_anonymous_user_accessors(self, authenticator, session):
        """Test the user accessors on an anonymous session."""
        assert authenticator.get_user(session) is None
        assert authenticator.get_user_info(session) is None
