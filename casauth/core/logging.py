"""Protocol logging for CAS ticket validation.

Records every exchange with the CAS server so failed validations can be
debugged, while keeping tickets and session cookies out of the logs unless
TRACE logging is explicitly enabled.

Log levels:
- ERROR: Only log transport errors
- INFO: One line per validation exchange (method, URL, status, duration)
- DEBUG: Add request and response headers
- TRACE: Add full request/response bodies (requires explicit enable)
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

import httpx

# Custom log level for TRACE (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

logger = logging.getLogger("casauth.protocol")

# Bodies longer than this are truncated in log output
MAX_LOGGED_BODY = 2000


class LogLevel(IntEnum):
    """Protocol logging levels."""

    ERROR = logging.ERROR
    INFO = logging.INFO
    DEBUG = logging.DEBUG
    TRACE = TRACE


# Patterns for sensitive data redaction
SENSITIVE_PATTERNS = [
    # CAS tickets in query strings (ST-, PT-, TGT- ...)
    (re.compile(r"([?&]ticket=)[^&\s#]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(^ticket=)[^&\s#]+", re.IGNORECASE), r"\1[REDACTED]"),
    # SAML 1.1 artifact carrying the ticket
    (
        re.compile(r"(<(?:\w+:)?AssertionArtifact>)\s*[^<]*?\s*(</(?:\w+:)?AssertionArtifact>)"),
        r"\1[REDACTED]\2",
    ),
    # CAS ticket-granting cookie and other cookies
    (re.compile(r"(Cookie:\s*)[^\r\n]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(Set-Cookie:\s*)[^\r\n]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(TGC=)[^;\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    # Authorization header values
    (re.compile(r"^(Bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"^(Basic\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    # Proxy-granting tickets in CAS XML responses
    (
        re.compile(r"(<(?:\w+:)?proxyGrantingTicket>)[^<]*(</(?:\w+:)?proxyGrantingTicket>)"),
        r"\1[REDACTED]\2",
    ),
]

# Header names whose values are always redacted
SENSITIVE_HEADERS = frozenset({"cookie", "set-cookie", "authorization", "proxy-authorization"})


def redact_sensitive(text: str) -> str:
    """Redact tickets, cookies and credentials from text.

    Args:
        text: Text that may contain sensitive data.

    Returns:
        Text with sensitive data redacted.
    """
    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive header values."""
    return {
        name: "[REDACTED]" if name.lower() in SENSITIVE_HEADERS else redact_sensitive(value)
        for name, value in headers.items()
    }


def _truncate(body: str) -> str:
    if len(body) > MAX_LOGGED_BODY:
        return f"{body[:MAX_LOGGED_BODY]}..."
    return body


@dataclass
class HTTPExchange:
    """A single request/response exchange with the CAS server."""

    id: str
    timestamp: datetime
    method: str
    url: str
    request_headers: dict[str, str]
    request_body: str | None = None
    response_status: int | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    response_body: str | None = None
    duration_ms: float | None = None
    error: str | None = None

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization.

        Args:
            include_sensitive: If True, include raw tickets and cookies.

        Returns:
            Dictionary representation of the exchange.
        """
        def process(value: str | None) -> str | None:
            if value is None or include_sensitive:
                return value
            return redact_sensitive(value)

        def process_headers(headers: dict[str, str]) -> dict[str, str]:
            return dict(headers) if include_sensitive else redact_headers(headers)

        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "url": process(self.url),
            "request_headers": process_headers(self.request_headers),
            "request_body": process(self.request_body),
            "response_status": self.response_status,
            "response_headers": process_headers(self.response_headers),
            "response_body": process(self.response_body),
            "duration_ms": self.duration_ms,
            "error": self.error,
        }

    def format_log(self, level: LogLevel, include_sensitive: bool = False) -> str:
        """Format the exchange for logging.

        Args:
            level: Log level determines how much detail to include.
            include_sensitive: If True, include raw tickets and cookies.

        Returns:
            Formatted log string.
        """
        data = self.to_dict(include_sensitive=include_sensitive)
        status = self.response_status or "ERROR"
        lines = [f"CAS {data['method']} {data['url']} -> {status}"]

        if self.duration_ms is not None:
            lines.append(f"  Duration: {self.duration_ms:.1f}ms")
        if self.error:
            lines.append(f"  Error: {self.error}")

        if level <= LogLevel.DEBUG:
            lines.append("  Request Headers:")
            lines.extend(f"    {k}: {v}" for k, v in data["request_headers"].items())
            if data["response_headers"]:
                lines.append("  Response Headers:")
                lines.extend(f"    {k}: {v}" for k, v in data["response_headers"].items())

        if level <= LogLevel.TRACE:
            if data["request_body"]:
                lines.append("  Request Body:")
                lines.append(f"    {_truncate(data['request_body'])}")
            if data["response_body"]:
                lines.append("  Response Body:")
                lines.append(f"    {_truncate(data['response_body'])}")

        return "\n".join(lines)


@dataclass
class ProtocolLog:
    """Collects the exchanges made while validating one ticket."""

    flow_id: str
    flow_type: str
    exchanges: list[HTTPExchange] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    def add_exchange(self, exchange: HTTPExchange) -> None:
        """Add an HTTP exchange to the log."""
        self.exchanges.append(exchange)

    def complete(self) -> None:
        """Mark the log as complete."""
        self.completed_at = datetime.now(UTC)

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "flow_id": self.flow_id,
            "flow_type": self.flow_type,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "exchanges": [e.to_dict(include_sensitive) for e in self.exchanges],
            "exchange_count": len(self.exchanges),
        }


class ProtocolLogger:
    """Configurable protocol logger for CAS validation exchanges.

    Holds the log level settings and creates httpx transports that report
    every exchange back to it.
    """

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        trace_enabled: bool = False,
    ) -> None:
        """Initialize the protocol logger.

        Args:
            level: Minimum log level.
            trace_enabled: Whether TRACE level is enabled (logs raw tickets).
        """
        self.level = level
        self.trace_enabled = trace_enabled
        self._current_log: ProtocolLog | None = None

    @property
    def effective_level(self) -> LogLevel:
        """Get effective log level (TRACE only if explicitly enabled)."""
        if self.level == LogLevel.TRACE and not self.trace_enabled:
            return LogLevel.DEBUG
        return self.level

    @property
    def current_log(self) -> ProtocolLog | None:
        """The log of the flow in progress, if any."""
        return self._current_log

    def start_flow(self, flow_id: str, flow_type: str) -> ProtocolLog:
        """Start collecting exchanges for a new flow.

        Args:
            flow_id: Unique identifier for the flow.
            flow_type: Type of flow (e.g. "cas_3.0_validate").

        Returns:
            ProtocolLog for the flow.
        """
        self._current_log = ProtocolLog(flow_id=flow_id, flow_type=flow_type)
        logger.debug(f"Started protocol logging for {flow_type} flow: {flow_id}")
        return self._current_log

    def end_flow(self) -> ProtocolLog | None:
        """End the current flow and return its log."""
        log = self._current_log
        if log is None:
            return None
        log.complete()
        self._current_log = None
        logger.debug(
            f"Completed protocol logging for {log.flow_type} flow: {log.flow_id} "
            f"({len(log.exchanges)} exchanges)"
        )
        return log

    def log_exchange(self, exchange: HTTPExchange) -> None:
        """Record an HTTP exchange and write it to the Python logger."""
        if self._current_log:
            self._current_log.add_exchange(exchange)

        effective = self.effective_level
        include_sensitive = self.trace_enabled and self.level <= LogLevel.TRACE

        if effective <= LogLevel.DEBUG:
            logger.debug(exchange.format_log(effective, include_sensitive))
        elif effective <= LogLevel.INFO:
            logger.info(exchange.format_log(effective, include_sensitive))

        if exchange.error:
            url = exchange.url if include_sensitive else redact_sensitive(exchange.url)
            logger.error(f"HTTP error: {exchange.method} {url}: {exchange.error}")

    def create_transport(
        self, inner: httpx.BaseTransport | None = None, **transport_options: Any
    ) -> LoggingTransport:
        """Create an httpx transport that reports exchanges to this logger.

        Args:
            inner: Transport to wrap. Defaults to ``httpx.HTTPTransport(**transport_options)``.
            **transport_options: Connection options such as ``verify`` or ``cert``
                for the default transport. Ignored when ``inner`` is given.
        """
        return LoggingTransport(self, inner, **transport_options)


class LoggingTransport(httpx.BaseTransport):
    """HTTPX transport that logs every exchange it carries."""

    def __init__(
        self,
        protocol_logger: ProtocolLogger,
        inner: httpx.BaseTransport | None = None,
        **transport_options: Any,
    ) -> None:
        self._logger = protocol_logger
        self._transport = inner or httpx.HTTPTransport(**transport_options)
        self._owns_transport = inner is None
        self._exchange_counter = 0

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Forward the request to the wrapped transport and log the exchange."""
        self._exchange_counter += 1
        start_time = time.perf_counter()

        request_body = None
        if request.content:
            try:
                request_body = request.content.decode("utf-8")
            except UnicodeDecodeError:
                request_body = "<binary content>"

        exchange = HTTPExchange(
            id=f"cas_{self._exchange_counter:04d}",
            timestamp=datetime.now(UTC),
            method=request.method,
            url=str(request.url),
            request_headers=dict(request.headers),
            request_body=request_body,
        )

        try:
            response = self._transport.handle_request(request)
            # The validation body is always buffered, so reading here is safe
            response.read()
        except Exception as e:
            exchange.duration_ms = (time.perf_counter() - start_time) * 1000
            exchange.error = str(e) or type(e).__name__
            self._logger.log_exchange(exchange)
            raise

        exchange.duration_ms = (time.perf_counter() - start_time) * 1000
        exchange.response_status = response.status_code
        exchange.response_headers = dict(response.headers)
        exchange.response_body = response.text
        self._logger.log_exchange(exchange)
        return response

    def close(self) -> None:
        """Close the underlying transport if this instance created it."""
        if self._owns_transport:
            self._transport.close()


# Global protocol logger instance
_global_logger: ProtocolLogger | None = None


def get_protocol_logger() -> ProtocolLogger:
    """Get the global protocol logger, creating a default one if needed."""
    global _global_logger
    if _global_logger is None:
        _global_logger = ProtocolLogger()
    return _global_logger


def set_protocol_logger(logger_instance: ProtocolLogger | None) -> None:
    """Replace the global protocol logger (None resets to the default)."""
    global _global_logger
    _global_logger = logger_instance


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    trace_enabled: bool = False,
    log_file: str | None = None,
) -> ProtocolLogger:
    """Configure protocol logging.

    Args:
        level: Log level (ERROR, INFO, DEBUG, TRACE) or string name.
        trace_enabled: Whether to enable TRACE level (includes raw tickets).
        log_file: Optional file path to write logs to.

    Returns:
        Configured ProtocolLogger.
    """
    if isinstance(level, str):
        level = LogLevel.__members__.get(level.upper(), LogLevel.INFO)

    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    protocol_logger = ProtocolLogger(level=level, trace_enabled=trace_enabled)
    set_protocol_logger(protocol_logger)

    if trace_enabled:
        logger.warning("TRACE logging enabled - CAS tickets will be written to the log!")

    return protocol_logger
