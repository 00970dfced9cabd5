"""Builds the outbound ticket validation request for each protocol variant."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import quote, urlencode, urlsplit
from xml.sax.saxutils import escape

from casauth.core.config import CasConfig
from casauth.core.models import ValidationRequest
from casauth.core.protocol import ProtocolVariant, get_protocol_spec

Clock = Callable[[], datetime]

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def build_service_url(config: CasConfig, request_path: str) -> str:
    """Service URL for a request: the configured base plus the request path.

    The query string is dropped so that the login redirect and the later
    validation call present the same service to the CAS server.
    """
    return config.service_url + urlsplit(request_path).path


def build_query(params: dict[str, str]) -> str:
    """Percent-encode query parameters (spaces become ``%20``)."""
    return urlencode(params, quote_via=quote)


@dataclass
class SamlValidateRequest:
    """SAML 1.1 ``samlp:Request`` carrying a CAS ticket as an artifact."""

    request_id: str
    issue_instant: str
    ticket: str

    @classmethod
    def create(cls, request_host: str, ticket: str, now: datetime) -> SamlValidateRequest:
        """Create a request whose ID is derived from the host and the time."""
        epoch_ms = (now - EPOCH) // timedelta(milliseconds=1)
        issue_instant = now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return cls(
            request_id=f"_{request_host}.{epoch_ms}",
            issue_instant=issue_instant,
            ticket=ticket,
        )

    def to_soap_xml(self) -> str:
        """Generate the SOAP envelope posted to ``/samlValidate``."""
        request_id = escape(self.request_id, {'"': "&quot;"})
        return (
            '<?xml version="1.0" encoding="utf-8"?>\n'
            '<SOAP-ENV:Envelope xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/">\n'
            "  <SOAP-ENV:Header/>\n"
            "  <SOAP-ENV:Body>\n"
            '    <samlp:Request xmlns:samlp="urn:oasis:names:tc:SAML:1.0:protocol" MajorVersion="1"\n'
            f'      MinorVersion="1" RequestID="{request_id}"\n'
            f'      IssueInstant="{self.issue_instant}">\n'
            "      <samlp:AssertionArtifact>\n"
            # Only <, > and & are rewritten; ordinary tickets appear byte for byte.
            f"        {escape(self.ticket)}\n"
            "      </samlp:AssertionArtifact>\n"
            "    </samlp:Request>\n"
            "  </SOAP-ENV:Body>\n"
            "</SOAP-ENV:Envelope>"
        )


class ValidationRequestBuilder:
    """Builds validation requests for one CAS configuration.

    The protocol variant is fixed by the configuration; a fresh request is
    built for every ticket.
    """

    def __init__(self, config: CasConfig, clock: Clock | None = None) -> None:
        """Initialize the builder.

        Args:
            config: CAS client configuration.
            clock: Returns the current UTC time; used for SAML request IDs.
        """
        self.config = config
        self.spec = get_protocol_spec(config.variant)
        self._clock = clock or _utcnow

    @property
    def validate_path(self) -> str:
        """Path of the validation endpoint on the CAS server."""
        return f"{self.config.cas_path}{self.spec.validate_endpoint}"

    def build(self, request_host: str, request_path: str, ticket: str) -> ValidationRequest:
        """Build the validation request for a ticket.

        Args:
            request_host: Host header of the inbound request.
            request_path: Original URL (path and query) of the inbound request.
            ticket: The ticket taken from the inbound query string.

        Returns:
            The request to send to the CAS server.
        """
        service = build_service_url(self.config, request_path)
        headers: dict[str, str] = {}
        body = None

        if self.spec.variant is ProtocolVariant.SAML:
            query = build_query({"TARGET": service, "ticket": ""})
            saml_request = SamlValidateRequest.create(request_host, ticket, self._clock())
            body = saml_request.to_soap_xml()
            headers = {
                "Content-Type": "text/xml",
                "Content-Length": str(len(body.encode("utf-8"))),
            }
        else:
            query = build_query({"service": service, "ticket": ticket})

        return ValidationRequest(
            scheme=self.config.cas_scheme,
            host=self.config.cas_host,
            port=self.config.cas_port,
            method=self.spec.method,
            path=f"{self.validate_path}?{query}",
            headers=headers,
            body=body,
            options=dict(self.config.additional_request_options),
        )
