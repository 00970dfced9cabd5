"""Error taxonomy for CAS ticket validation.

Every failure in the validation pipeline is reported as one of three kinds,
each mapped to the HTTP status the host integration should answer with:

- TransportError: the CAS server could not be reached (502)
- MalformedResponseError: the CAS server answered with something unreadable (502)
- AuthenticationFailureError: the CAS server rejected the ticket (401)
"""

from __future__ import annotations


class CasError(Exception):
    """Base class for all CAS client errors."""

    status_code: int = 500
    kind: str = "error"
    public_message: str = "Internal error during CAS authentication."

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class CasConfigError(CasError):
    """Raised when a CAS configuration violates its invariants."""

    kind = "config_error"


class TransportError(CasError):
    """The validation request could not be completed."""

    status_code = 502
    kind = "transport_error"
    public_message = "The CAS server could not be reached."


class MalformedResponseError(CasError):
    """The CAS server response does not match the expected shape."""

    status_code = 502
    kind = "malformed_response"
    public_message = "The CAS server returned an invalid response."


class AuthenticationFailureError(CasError):
    """The CAS server answered well-formed and rejected the ticket."""

    status_code = 401
    kind = "authentication_failure"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        detail: str | None = None,
        codes: list[str] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            message: Human readable description.
            code: Failure code supplied by the server (e.g. INVALID_TICKET).
            detail: Failure message supplied by the server.
            codes: All status codes reported by a SAML response.
        """
        super().__init__(message)
        self.code = code
        self.detail = detail
        self.codes = codes or ([code] if code else [])

    @property
    def public_message(self) -> str:  # type: ignore[override]
        """Short message safe to show to the client."""
        if self.code:
            return f"CAS ticket validation failed ({self.code})."
        return "CAS ticket validation failed."
