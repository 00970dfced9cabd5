"""Application configuration management.

Loads configuration from config.yaml files and environment variables.
Environment variables take precedence over config file settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from casauth.core.errors import CasConfigError
from casauth.core.protocol import ProtocolVariant

# Default config locations
DEFAULT_CONFIG_DIR = Path.home() / ".casauth"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

# Environment variable prefix
ENV_PREFIX = "CASAUTH_"

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class CasConfig:
    """CAS client settings.

    Immutable once constructed. The CAS server URL is split into scheme,
    host, port and path prefix at construction time.
    """

    cas_url: str
    service_url: str
    cas_version: str = ProtocolVariant.XML3.value
    renew: bool = False
    is_dev_mode: bool = False
    dev_mode_user: str | None = None
    dev_mode_info: dict[str, Any] | None = None
    session_name: str = "cas_user"
    session_info: str = "cas_userinfo"
    session_return_to: str = "cas_return_to"
    destroy_session: bool = False
    additional_request_options: dict[str, Any] = field(default_factory=dict)
    timeout: float = DEFAULT_TIMEOUT

    cas_scheme: str = field(init=False, repr=False)
    cas_host: str = field(init=False, repr=False)
    cas_port: int = field(init=False, repr=False)
    cas_path: str = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.cas_url:
            raise CasConfigError("No `cas_url` was provided. It is required.")
        if not self.service_url:
            raise CasConfigError("No `service_url` was provided. It is required.")
        try:
            ProtocolVariant(self.cas_version)
        except ValueError:
            raise CasConfigError(
                f'An invalid `cas_version` was provided ("{self.cas_version}").'
            ) from None
        if self.is_dev_mode and not self.dev_mode_user:
            raise CasConfigError(
                "No `dev_mode_user` was provided. It is required when `is_dev_mode` is true."
            )
        if self.timeout <= 0:
            raise CasConfigError(f"`timeout` must be positive (got {self.timeout}).")

        parsed = urlsplit(self.cas_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise CasConfigError(f'`cas_url` must be an absolute http(s) URL ("{self.cas_url}").')
        try:
            port = parsed.port
        except ValueError:
            raise CasConfigError(f'`cas_url` has an invalid port ("{self.cas_url}").') from None

        # Frozen dataclass: derived fields are set through object.__setattr__
        object.__setattr__(self, "cas_scheme", parsed.scheme)
        object.__setattr__(self, "cas_host", parsed.hostname)
        object.__setattr__(self, "cas_port", port or (80 if parsed.scheme == "http" else 443))
        object.__setattr__(self, "cas_path", parsed.path.rstrip("/"))

    @property
    def variant(self) -> ProtocolVariant:
        """The protocol variant selected by ``cas_version``."""
        return ProtocolVariant(self.cas_version)

    @property
    def cas_base_url(self) -> str:
        """The CAS server URL without a trailing slash."""
        return self.cas_url.rstrip("/")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CasConfig:
        """Create CasConfig from a dictionary."""
        return cls(
            cas_url=data.get("cas_url", ""),
            service_url=data.get("service_url", ""),
            cas_version=str(data.get("cas_version", ProtocolVariant.XML3.value)),
            renew=bool(data.get("renew", False)),
            is_dev_mode=bool(data.get("is_dev_mode", False)),
            dev_mode_user=data.get("dev_mode_user"),
            dev_mode_info=data.get("dev_mode_info"),
            session_name=data.get("session_name", "cas_user"),
            session_info=data.get("session_info", "cas_userinfo"),
            session_return_to=data.get("session_return_to", "cas_return_to"),
            destroy_session=bool(data.get("destroy_session", False)),
            additional_request_options=dict(data.get("additional_request_options") or {}),
            timeout=float(data.get("timeout", DEFAULT_TIMEOUT)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "cas_url": self.cas_url,
            "service_url": self.service_url,
            "cas_version": self.cas_version,
            "renew": self.renew,
            "is_dev_mode": self.is_dev_mode,
            "dev_mode_user": self.dev_mode_user,
            "dev_mode_info": self.dev_mode_info,
            "session_name": self.session_name,
            "session_info": self.session_info,
            "session_return_to": self.session_return_to,
            "destroy_session": self.destroy_session,
            "additional_request_options": dict(self.additional_request_options),
            "timeout": self.timeout,
        }


@dataclass
class ServerSettings:
    """Demo server configuration settings."""

    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerSettings:
        """Create ServerSettings from a dictionary."""
        return cls(
            host=data.get("host", "127.0.0.1"),
            port=data.get("port", 5000),
            debug=data.get("debug", False),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
        }


@dataclass
class LoggingSettings:
    """Protocol logging settings."""

    level: str = "INFO"
    trace_enabled: bool = False
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        """Create LoggingSettings from a dictionary."""
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            trace_enabled=data.get("trace_enabled", False),
            log_file=data.get("log_file"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "level": self.level,
            "trace_enabled": self.trace_enabled,
            "log_file": self.log_file,
        }


@dataclass
class AppConfig:
    """Main application configuration.

    ``cas`` is None until a CAS server has been configured.
    """

    cas: CasConfig | None = None
    server: ServerSettings = field(default_factory=ServerSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path | None = None) -> AppConfig:
        """Create AppConfig from a dictionary.

        Raises:
            CasConfigError: If the ``cas`` section is present but invalid.
        """
        cas_data = data.get("cas") or {}
        server_data = data.get("server") or {}
        logging_data = data.get("logging") or {}
        return cls(
            cas=CasConfig.from_dict(cas_data) if cas_data else None,
            server=ServerSettings.from_dict(server_data) if server_data else ServerSettings(),
            logging=LoggingSettings.from_dict(logging_data) if logging_data else LoggingSettings(),
            config_path=config_path,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "server": self.server.to_dict(),
            "logging": self.logging.to_dict(),
        }
        if self.cas is not None:
            result["cas"] = self.cas.to_dict()
        return result

    def require_cas(self) -> CasConfig:
        """Return the CAS settings or fail if none are configured."""
        if self.cas is None:
            raise CasConfigError(
                "No CAS server configured. Set `cas.cas_url` and `cas.service_url` "
                f"in the config file or the {ENV_PREFIX}CAS_URL and "
                f"{ENV_PREFIX}SERVICE_URL environment variables."
            )
        return self.cas

    def save(self, path: Path | None = None) -> None:
        """Save configuration to a YAML file.

        Args:
            path: Path to save to. Uses config_path or default if not specified.
        """
        save_path = path or self.config_path or DEFAULT_CONFIG_FILE
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)


def _get_env_bool(key: str, default: bool) -> bool:
    """Get a boolean from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_env_int(key: str, default: int) -> int:
    """Get an integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _apply_cas_env(cas_data: dict[str, Any]) -> dict[str, Any]:
    """Overlay CASAUTH_* environment variables on the ``cas`` section."""
    merged = dict(cas_data)

    for key in ("cas_url", "service_url", "cas_version", "dev_mode_user", "session_name", "session_info"):
        env_value = os.environ.get(f"{ENV_PREFIX}{key.upper()}")
        if env_value:
            merged[key] = env_value

    for key in ("renew", "destroy_session"):
        merged[key] = _get_env_bool(f"{ENV_PREFIX}{key.upper()}", bool(merged.get(key, False)))

    merged["is_dev_mode"] = _get_env_bool(
        f"{ENV_PREFIX}DEV_MODE", bool(merged.get("is_dev_mode", False))
    )

    timeout = os.environ.get(f"{ENV_PREFIX}TIMEOUT")
    if timeout:
        try:
            merged["timeout"] = float(timeout)
        except ValueError:
            raise CasConfigError(f"{ENV_PREFIX}TIMEOUT must be a number (got {timeout!r}).") from None

    return merged


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load application configuration.

    Configuration is loaded in this order (later values override earlier):
    1. Default values
    2. config.yaml file (if exists)
    3. Environment variables

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        AppConfig with merged settings.

    Raises:
        CasConfigError: If the config file cannot be parsed or the resulting
            CAS settings are invalid.
    """
    data: dict[str, Any] = {}

    file_path = config_path or DEFAULT_CONFIG_FILE
    if file_path.exists():
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CasConfigError(f"Invalid config file {file_path}: {e}") from e
        if not isinstance(data, dict):
            raise CasConfigError(f"Invalid config file {file_path}: expected a mapping")

    cas_data = _apply_cas_env(data.get("cas") or {})
    if cas_data.get("cas_url") or cas_data.get("service_url"):
        data["cas"] = cas_data

    config = AppConfig.from_dict(data, config_path=file_path if file_path.exists() else None)

    # Server settings
    if os.environ.get(f"{ENV_PREFIX}HOST"):
        config.server.host = os.environ[f"{ENV_PREFIX}HOST"]

    if os.environ.get(f"{ENV_PREFIX}PORT"):
        config.server.port = _get_env_int(f"{ENV_PREFIX}PORT", config.server.port)

    config.server.debug = _get_env_bool(f"{ENV_PREFIX}DEBUG", config.server.debug)

    # Logging settings
    if os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        config.logging.level = os.environ[f"{ENV_PREFIX}LOG_LEVEL"].upper()

    config.logging.trace_enabled = _get_env_bool(
        f"{ENV_PREFIX}LOG_TRACE", config.logging.trace_enabled
    )

    if os.environ.get(f"{ENV_PREFIX}LOG_FILE"):
        config.logging.log_file = os.environ[f"{ENV_PREFIX}LOG_FILE"]

    return config


def get_default_config_yaml() -> str:
    """Get the default config.yaml content as a string.

    Useful for generating example configuration files.
    """
    return """\
# casauth Configuration File
# Environment variables override these settings (prefix: CASAUTH_)

cas:
  # Base URL of the CAS server, including any path prefix
  cas_url: "https://cas.example.edu/cas"

  # Base URL of this application; the request path is appended to it
  service_url: "http://127.0.0.1:5000"

  # Protocol variant: "1.0", "2.0", "3.0" or "saml1.1"
  cas_version: "3.0"

  # Force the user to re-enter credentials at the CAS login page
  renew: false

  # Skip CAS entirely and treat every request as dev_mode_user
  is_dev_mode: false
  # dev_mode_user: "developer"
  # dev_mode_info:
  #   email: "developer@example.edu"

  # Session keys for the CAS identity, its attributes and the return URL
  session_name: "cas_user"
  session_info: "cas_userinfo"
  session_return_to: "cas_return_to"

  # Destroy the whole session on logout instead of only the CAS keys
  destroy_session: false

  # Validation request timeout in seconds
  timeout: 10

  # Extra options for the HTTP client and its connections (e.g. verify, cert, timeout)
  additional_request_options: {}

server:
  # Demo server bind address
  host: "127.0.0.1"

  # Demo server port
  port: 5000

  # Enable debug mode (not recommended for production)
  debug: false

logging:
  # Protocol log level: ERROR, INFO, DEBUG or TRACE
  level: "INFO"

  # TRACE logs full request/response bodies, including tickets
  trace_enabled: false

  # Optional file to write protocol logs to
  # log_file: ~/.casauth/protocol.log
"""
