"""Value types passed between the validation pipeline stages."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlsplit

# Attribute values are a single string or a list of strings
AttributeValue = str | list[str]


@dataclass(frozen=True)
class UserResult:
    """A successfully validated CAS identity.

    ``attributes`` is None when the server does not report attributes at all
    (CAS 1.0, or an XML/SAML response without an attributes block). An empty
    dict means the block was present but empty.
    """

    user: str
    attributes: dict[str, AttributeValue] | None = None


@dataclass(frozen=True)
class InboundRequest:
    """The parts of an inbound HTTP request the authorization logic needs."""

    host: str
    path: str
    query: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_url(cls, host: str, original_url: str) -> InboundRequest:
        """Build a request from its host and original URL (path plus query).

        Repeated query parameters keep their first value.
        """
        query: dict[str, str] = {}
        for key, value in parse_qsl(urlsplit(original_url).query, keep_blank_values=True):
            query.setdefault(key, value)
        return cls(host=host, path=original_url, query=query)

    @property
    def pathname(self) -> str:
        """The request path without its query string."""
        return urlsplit(self.path).path

    @property
    def ticket(self) -> str | None:
        """The CAS ticket carried in the query string, if any."""
        return self.query.get("ticket") or None


@dataclass(frozen=True)
class ValidationRequest:
    """A fully specified outbound request to the CAS server."""

    scheme: str
    host: str
    port: int
    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def url(self) -> str:
        """Absolute URL of the request."""
        return f"{self.scheme}://{self.host}:{self.port}{self.path}"
