"""Pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest
from flask import Flask
from flask.testing import FlaskClient

from casauth.app import create_app
from casauth.core.auth import CasAuthenticator
from casauth.core.config import CasConfig
from casauth.core.logging import ProtocolLogger
from casauth.core.session import MemorySession
from casauth.core.transport import ValidationTransport

CAS_URL = "https://cas.example.edu/cas"
SERVICE_URL = "https://app.example.edu"

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=UTC)


class FakeCasServer:
    """Stands in for the CAS server behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.body = ""
        self.status_code = 200
        self.error: Exception | None = None

    def respond(self, body: str, status_code: int = 200) -> None:
        self.body = body
        self.status_code = status_code
        self.error = None

    def fail(self, error: Exception) -> None:
        self.error = error

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, text=self.body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def cas_server() -> FakeCasServer:
    """A fake CAS server that records every request it receives."""
    return FakeCasServer()


@pytest.fixture
def make_config() -> Callable[..., CasConfig]:
    """Factory for CAS configurations pointing at the test CAS server."""
    def factory(**overrides: Any) -> CasConfig:
        settings: dict[str, Any] = {"cas_url": CAS_URL, "service_url": SERVICE_URL}
        settings.update(overrides)
        return CasConfig(**settings)

    return factory


@pytest.fixture
def make_authenticator(
    cas_server: FakeCasServer,
    make_config: Callable[..., CasConfig],
) -> Callable[..., CasAuthenticator]:
    """Factory for authenticators wired to the fake CAS server."""
    def factory(**overrides: Any) -> CasAuthenticator:
        config = make_config(**overrides)
        transport = ValidationTransport(
            config,
            protocol_logger=ProtocolLogger(),
            transport=cas_server.transport,
        )
        return CasAuthenticator(config, transport=transport, clock=lambda: FIXED_NOW)

    return factory


@pytest.fixture
def session() -> MemorySession:
    """An empty in-memory session."""
    return MemorySession()


@pytest.fixture
def app(make_authenticator: Callable[..., CasAuthenticator]) -> Generator[Flask, None, None]:
    """Create the demo application wired to the fake CAS server."""
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key",
        },
        authenticator=make_authenticator(),
    )
    yield app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()
