"""CAS protocol validation engine."""

from casauth.core.auth import AuthDecision, CasAuthenticator, DecisionAction
from casauth.core.config import AppConfig, CasConfig, load_config
from casauth.core.errors import (
    AuthenticationFailureError,
    CasConfigError,
    CasError,
    MalformedResponseError,
    TransportError,
)
from casauth.core.logging import (
    HTTPExchange,
    LoggingTransport,
    LogLevel,
    ProtocolLog,
    ProtocolLogger,
    configure_logging,
    get_protocol_logger,
    redact_sensitive,
    set_protocol_logger,
)
from casauth.core.models import InboundRequest, UserResult, ValidationRequest
from casauth.core.parsing import (
    parse_saml_response,
    parse_text_response,
    parse_validation_response,
    parse_xml_response,
)
from casauth.core.protocol import PROTOCOL_CATALOG, ProtocolVariant
from casauth.core.request import ValidationRequestBuilder
from casauth.core.session import MemorySession, SessionStore
from casauth.core.transport import ValidationTransport

__all__ = [
    # Authorization
    "AuthDecision",
    "CasAuthenticator",
    "DecisionAction",
    # Configuration
    "AppConfig",
    "CasConfig",
    "load_config",
    # Errors
    "AuthenticationFailureError",
    "CasConfigError",
    "CasError",
    "MalformedResponseError",
    "TransportError",
    # Logging
    "HTTPExchange",
    "LoggingTransport",
    "LogLevel",
    "ProtocolLog",
    "ProtocolLogger",
    "configure_logging",
    "get_protocol_logger",
    "redact_sensitive",
    "set_protocol_logger",
    # Pipeline
    "InboundRequest",
    "PROTOCOL_CATALOG",
    "ProtocolVariant",
    "UserResult",
    "ValidationRequest",
    "ValidationRequestBuilder",
    "ValidationTransport",
    "parse_saml_response",
    "parse_text_response",
    "parse_validation_response",
    "parse_xml_response",
    # Sessions
    "MemorySession",
    "SessionStore",
]
