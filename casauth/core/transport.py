"""Sends validation requests to the CAS server."""

from __future__ import annotations

import logging

import httpx

from casauth.core.config import CasConfig
from casauth.core.errors import TransportError
from casauth.core.logging import ProtocolLogger, get_protocol_logger
from casauth.core.models import ValidationRequest

logger = logging.getLogger(__name__)

# Options httpx only honours on the transport once a transport is given explicitly.
TRANSPORT_OPTIONS = ("verify", "cert", "http1", "http2", "limits", "retries", "trust_env")


class ValidationTransport:
    """Executes one validation request per call.

    Each call opens its own ``httpx.Client`` (closed before returning) and
    buffers the whole response body. Connects are only retried when a
    ``retries`` option is configured. Connection failures, timeouts and stream
    errors are raised as ``TransportError``.
    """

    def __init__(
        self,
        config: CasConfig,
        protocol_logger: ProtocolLogger | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: CAS client configuration (supplies the timeout).
            protocol_logger: Logger for HTTP exchanges. Uses the global one if not provided.
            transport: Underlying httpx transport, e.g. ``httpx.MockTransport`` in tests.
        """
        self.config = config
        self._protocol_logger = protocol_logger
        self._transport = transport

    @property
    def protocol_logger(self) -> ProtocolLogger:
        """The protocol logger exchanges are reported to."""
        return self._protocol_logger or get_protocol_logger()

    def send(self, request: ValidationRequest) -> str:
        """Send the request and return the raw response body.

        Args:
            request: The validation request to execute.

        Returns:
            The response body text.

        Raises:
            TransportError: If the CAS server could not be reached or the
                response could not be read.
        """
        client_options = dict(request.options)
        transport_options = {
            key: client_options.pop(key) for key in TRANSPORT_OPTIONS if key in client_options
        }
        if "trust_env" in transport_options:
            client_options["trust_env"] = transport_options["trust_env"]
        client_options.setdefault("timeout", self.config.timeout)
        client_options["transport"] = self.protocol_logger.create_transport(
            self._transport, **transport_options
        )
        client_options["follow_redirects"] = False

        content = request.body.encode("utf-8") if request.body is not None else None

        try:
            with httpx.Client(**client_options) as client:
                response = client.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    content=content,
                )
                body = response.text
        except httpx.TimeoutException as e:
            raise TransportError(
                f"Timed out after {client_options['timeout']}s contacting CAS server at "
                f"{request.host}:{request.port}"
            ) from e
        except (httpx.RequestError, httpx.StreamError) as e:
            raise TransportError(
                f"Failed to contact CAS server at {request.host}:{request.port}: {e}"
            ) from e

        if response.status_code >= 400:
            logger.warning(
                f"CAS server answered {response.status_code} to {request.method} validation request"
            )

        return body
