"""CAS protocol variants and their validation endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ProtocolVariant(StrEnum):
    """Supported CAS wire-protocol dialects, keyed by their ``cas_version``."""

    TEXT = "1.0"
    XML2 = "2.0"
    XML3 = "3.0"
    SAML = "saml1.1"


class ResponseFormat(StrEnum):
    """Shape of the body returned by a validation endpoint."""

    TEXT = "text"
    CAS_XML = "cas_xml"
    SAML = "saml"


@dataclass(frozen=True)
class ProtocolSpec:
    """Static description of one protocol variant."""

    variant: ProtocolVariant
    validate_endpoint: str
    method: str
    response_format: ResponseFormat


PROTOCOL_CATALOG: dict[ProtocolVariant, ProtocolSpec] = {
    ProtocolVariant.TEXT: ProtocolSpec(
        variant=ProtocolVariant.TEXT,
        validate_endpoint="/validate",
        method="GET",
        response_format=ResponseFormat.TEXT,
    ),
    ProtocolVariant.XML2: ProtocolSpec(
        variant=ProtocolVariant.XML2,
        validate_endpoint="/serviceValidate",
        method="GET",
        response_format=ResponseFormat.CAS_XML,
    ),
    ProtocolVariant.XML3: ProtocolSpec(
        variant=ProtocolVariant.XML3,
        validate_endpoint="/p3/serviceValidate",
        method="GET",
        response_format=ResponseFormat.CAS_XML,
    ),
    ProtocolVariant.SAML: ProtocolSpec(
        variant=ProtocolVariant.SAML,
        validate_endpoint="/samlValidate",
        method="POST",
        response_format=ResponseFormat.SAML,
    ),
}


def get_protocol_spec(variant: ProtocolVariant | str) -> ProtocolSpec:
    """Look up the catalog entry for a variant.

    Raises:
        ValueError: If the variant is not one of the supported values.
    """
    return PROTOCOL_CATALOG[ProtocolVariant(variant)]
