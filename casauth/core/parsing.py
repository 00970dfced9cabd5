"""Parsers for CAS validation responses.

One pure function per response format turns the raw body returned by the
CAS server into a ``UserResult``, or raises ``AuthenticationFailureError``
when the server rejected the ticket and ``MalformedResponseError`` when the
body cannot be understood. No other exception escapes a parser.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps

from lxml import etree

from casauth.core.errors import (
    AuthenticationFailureError,
    CasError,
    MalformedResponseError,
)
from casauth.core.models import AttributeValue, UserResult
from casauth.core.protocol import ProtocolVariant, ResponseFormat, get_protocol_spec

Parser = Callable[[str], UserResult]


def _classify_errors(parser: Parser) -> Parser:
    """Report any unexpected parser failure as a malformed response."""
    @wraps(parser)
    def wrapper(body: str) -> UserResult:
        try:
            return parser(body)
        except CasError:
            raise
        except Exception as e:
            raise MalformedResponseError(f"Invalid response from CAS server. ({e})") from e

    return wrapper


def _load_xml(body: str) -> etree._Element:
    """Parse an XML body with entity expansion and network access disabled."""
    parser = etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
        remove_pis=True,
    )
    try:
        return etree.fromstring(body.encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError as e:
        raise MalformedResponseError(f"Invalid response from CAS server. ({e})") from e


def _local_name(element: etree._Element) -> str:
    """Tag name with any namespace stripped."""
    return etree.QName(element).localname


def _is(element: etree._Element, name: str) -> bool:
    return _local_name(element).lower() == name.lower()


def _elements(element: etree._Element) -> list[etree._Element]:
    """Child elements, skipping entity references and other node types."""
    return [child for child in element if isinstance(child.tag, str)]


def _children(element: etree._Element | None, name: str) -> list[etree._Element]:
    if element is None:
        return []
    return [child for child in _elements(element) if _is(child, name)]


def _child(element: etree._Element | None, name: str) -> etree._Element | None:
    matches = _children(element, name)
    return matches[0] if matches else None


def _descend(element: etree._Element | None, *path: str) -> etree._Element | None:
    for name in path:
        element = _child(element, name)
        if element is None:
            return None
    return element


def _text(element: etree._Element) -> str:
    """Whitespace-normalized text directly inside an element."""
    parts = [element.text or ""]
    parts.extend(child.tail or "" for child in element)
    return " ".join("".join(parts).split())


@_classify_errors
def parse_text_response(body: str) -> UserResult:
    """Parse a CAS 1.0 ``/validate`` response.

    The body is ``yes\\n<user>\\n`` on success and ``no\\n\\n`` on failure.
    """
    lines = [line.rstrip("\r") for line in body.split("\n")]

    if lines[0] == "no":
        raise AuthenticationFailureError("Ticket validation failure.")

    if lines[0] != "yes" or len(lines) < 2 or not lines[1]:
        raise MalformedResponseError("Invalid response from CAS server.")

    return UserResult(user=lines[1], attributes=None)


def _collect_cas_attributes(attributes_element: etree._Element) -> dict[str, AttributeValue]:
    """Turn the children of ``<cas:attributes>`` into an attribute map.

    A tag occurring once maps to its text, a repeated tag maps to the list of
    its texts in document order.
    """
    grouped: dict[str, list[etree._Element]] = {}
    for child in _elements(attributes_element):
        grouped.setdefault(_local_name(child), []).append(child)

    attributes: dict[str, AttributeValue] = {}
    for key, elements in grouped.items():
        if len(elements) > 1:
            attributes[key] = [_text(element) for element in elements]
            continue
        value = _text(elements[0])
        if value:
            attributes[key] = value
    return attributes


@_classify_errors
def parse_xml_response(body: str) -> UserResult:
    """Parse a CAS 2.0/3.0 ``serviceValidate`` response."""
    root = _load_xml(body)
    if not _is(root, "serviceResponse"):
        raise MalformedResponseError("Invalid response from CAS server. Missing serviceResponse tag.")

    failure = _child(root, "authenticationFailure")
    if failure is not None:
        code = failure.get("code")
        detail = _text(failure)
        raise AuthenticationFailureError(
            f"Ticket validation failure. ({code}: {detail})",
            code=code,
            detail=detail,
        )

    success = _child(root, "authenticationSuccess")
    if success is None:
        raise MalformedResponseError("Invalid response from CAS server. No valid status tag.")

    user_element = _child(success, "user")
    user = _text(user_element) if user_element is not None else ""
    if not user:
        raise MalformedResponseError("Invalid response from CAS server. No valid user tag.")

    # Only CAS 3.0 servers (and 2.0 servers with extensions) send attributes
    attributes_element = _child(success, "attributes")
    attributes = None
    if attributes_element is not None:
        attributes = _collect_cas_attributes(attributes_element)

    return UserResult(user=user, attributes=attributes)


@_classify_errors
def parse_saml_response(body: str) -> UserResult:
    """Parse a SAML 1.1 ``samlValidate`` SOAP response."""
    root = _load_xml(body)
    response = _descend(root, "Body", "Response") if _is(root, "Envelope") else None
    if response is None:
        raise MalformedResponseError("Invalid response from CAS server. No SAML Response tag.")

    status_codes = _children(_child(response, "Status"), "StatusCode")
    if not status_codes:
        raise MalformedResponseError("Invalid response from CAS server. No valid StatusCode tag.")

    codes = []
    for status_code in status_codes:
        value = status_code.get("Value")
        if not value:
            raise MalformedResponseError("Invalid response from CAS server. StatusCode has no Value.")
        codes.append(value.rpartition(":")[2])

    if codes[0] != "Success":
        raise AuthenticationFailureError(
            f"Ticket validation failure. ({', '.join(codes)})",
            code=codes[0],
            codes=codes,
        )

    name_identifier = _descend(
        response, "Assertion", "AuthenticationStatement", "Subject", "NameIdentifier"
    )
    user = _text(name_identifier) if name_identifier is not None else ""
    if not user:
        raise MalformedResponseError("Invalid response from CAS server. No valid NameIdentifier tag.")

    saml_attributes = _children(_descend(response, "Assertion", "AttributeStatement"), "Attribute")
    attributes: dict[str, AttributeValue] | None = None
    if saml_attributes:
        attributes = {}
        for attribute in saml_attributes:
            name = attribute.get("AttributeName")
            values = [_text(value) for value in _children(attribute, "AttributeValue")]
            if not name or not values:
                continue
            if len(values) == 1:
                if values[0]:
                    attributes[name] = values[0]
                continue
            attributes[name] = values

    return UserResult(user=user, attributes=attributes)


PARSERS: dict[ResponseFormat, Parser] = {
    ResponseFormat.TEXT: parse_text_response,
    ResponseFormat.CAS_XML: parse_xml_response,
    ResponseFormat.SAML: parse_saml_response,
}


def get_parser(variant: ProtocolVariant | str) -> Parser:
    """Return the parser for a protocol variant."""
    return PARSERS[get_protocol_spec(variant).response_format]


def parse_validation_response(variant: ProtocolVariant | str, body: str) -> UserResult:
    """Parse a validation response body for the given protocol variant."""
    return get_parser(variant)(body)
