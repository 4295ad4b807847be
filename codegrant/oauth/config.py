"""
OAuth2 client configuration and registry.

Loads settings and client registrations from environment variables.
Each client (Google, GitHub, or any custom provider) is configured
independently; well-known providers only need credentials.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import lru_cache

from codegrant.clients.repository import InMemoryClientConfigurationRepository
from codegrant.core.domain import ClientConfiguration
from codegrant.core.grant import DEFAULT_CALLBACK_BASE_URI
from codegrant.core.redirect import (
    DEFAULT_AUTHORIZATION_BASE_URI,
    DEFAULT_STATE_TTL_SECONDS,
)
from codegrant.infrastructure.token_exchange import DEFAULT_TIMEOUT_SECONDS


logger = logging.getLogger(__name__)


# Endpoint defaults for well-known providers
KNOWN_PROVIDERS: dict[str, dict[str, str]] = {
    "google": {
        "client_name": "Google",
        "authorization_uri": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_uri": "https://oauth2.googleapis.com/token",
        "scopes": "openid email profile",
    },
    "github": {
        "client_name": "GitHub",
        "authorization_uri": "https://github.com/login/oauth/authorize",
        "token_uri": "https://github.com/login/oauth/access_token",
        "scopes": "read:user user:email",
    },
}

# Implementations selectable with OAUTH2_CLIENT_LIBRARY
CLIENT_LIBRARIES = ("default", "authlib")


@dataclass
class OAuth2Settings:
    """
    OAuth2 relying party settings.

    Loaded from environment variables. Validates required settings at startup.
    """

    base_url: str
    session_secret_key: str | None = None
    authorization_base_uri: str = DEFAULT_AUTHORIZATION_BASE_URI
    callback_base_uri: str = DEFAULT_CALLBACK_BASE_URI
    success_url: str = "/"
    state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
    token_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    client_library: str = "default"
    client_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "OAuth2Settings":
        """Load settings from environment variables."""
        clients = os.getenv("OAUTH2_CLIENTS", "")
        return cls(
            base_url=os.getenv("BASE_URL", "").rstrip("/"),
            session_secret_key=os.getenv("SESSION_SECRET_KEY"),
            authorization_base_uri=os.getenv(
                "OAUTH2_AUTHORIZATION_BASE_URI", DEFAULT_AUTHORIZATION_BASE_URI
            ),
            callback_base_uri=os.getenv(
                "OAUTH2_CALLBACK_BASE_URI", DEFAULT_CALLBACK_BASE_URI
            ),
            success_url=os.getenv("OAUTH2_SUCCESS_URL", "/"),
            state_ttl_seconds=int(
                os.getenv("OAUTH2_STATE_TTL_SECONDS", str(DEFAULT_STATE_TTL_SECONDS))
            ),
            token_timeout_seconds=float(
                os.getenv("OAUTH2_TOKEN_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS))
            ),
            client_library=os.getenv("OAUTH2_CLIENT_LIBRARY", "default").lower(),
            client_ids=[c.strip() for c in clients.split(",") if c.strip()],
        )

    def get_callback_url(self, configuration_id: str) -> str:
        """Generate the default redirect URI for a client."""
        return f"{self.base_url}{self.callback_base_uri.rstrip('/')}/{configuration_id}"

    def get_authorization_path(self, configuration_id: str) -> str:
        """Path that starts the flow for a client."""
        return f"{self.authorization_base_uri.rstrip('/')}/{configuration_id}"

    def validate(self) -> None:
        """Validate required configuration. Call at startup to fail fast."""
        if not self.session_secret_key:
            raise ValueError("SESSION_SECRET_KEY environment variable is required")
        if not self.client_ids:
            raise ValueError("OAUTH2_CLIENTS must name at least one client")
        if self.state_ttl_seconds <= 0:
            raise ValueError("OAUTH2_STATE_TTL_SECONDS must be positive")
        if self.token_timeout_seconds <= 0:
            raise ValueError("OAUTH2_TOKEN_TIMEOUT_SECONDS must be positive")
        if self.client_library not in CLIENT_LIBRARIES:
            raise ValueError(
                f"OAUTH2_CLIENT_LIBRARY must be one of {CLIENT_LIBRARIES}, "
                f"got '{self.client_library}'"
            )


@lru_cache()
def get_oauth2_settings() -> OAuth2Settings:
    """Get OAuth2 settings singleton."""
    return OAuth2Settings.from_env()


def _env_prefix(configuration_id: str) -> str:
    return f"OAUTH2_CLIENT_{configuration_id.upper().replace('-', '_')}_"


def load_client_configuration(
    configuration_id: str,
    settings: OAuth2Settings,
    environ: Mapping[str, str] | None = None,
) -> ClientConfiguration | None:
    """
    Load one client registration from ``OAUTH2_CLIENT_<ID>_*`` variables.

    Args:
        configuration_id: Registration identifier (e.g. google)
        settings: Relying party settings (for the default redirect URI)
        environ: Variables to read (defaults to os.environ)

    Returns:
        ClientConfiguration, or None if credentials are missing

    Raises:
        ValueError: If an unknown provider has no endpoints configured
    """
    if environ is None:
        environ = os.environ
    prefix = _env_prefix(configuration_id)
    defaults = KNOWN_PROVIDERS.get(configuration_id, {})

    def setting(name: str) -> str | None:
        return environ.get(f"{prefix}{name.upper()}") or defaults.get(name)

    client_id = setting("client_id")
    client_secret = setting("client_secret")
    if not (client_id and client_secret):
        logger.warning(
            f"OAuth2 client '{configuration_id}' not configured (missing credentials)"
        )
        return None

    authorization_uri = setting("authorization_uri")
    token_uri = setting("token_uri")
    if not (authorization_uri and token_uri):
        raise ValueError(
            f"OAuth2 client '{configuration_id}' needs {prefix}AUTHORIZATION_URI "
            f"and {prefix}TOKEN_URI"
        )

    scopes = setting("scopes") or ""
    return ClientConfiguration(
        id=configuration_id,
        client_id=client_id,
        client_secret=client_secret,
        authorization_uri=authorization_uri,
        token_uri=token_uri,
        redirect_uri=setting("redirect_uri") or settings.get_callback_url(configuration_id),
        scopes=scopes.replace(",", " "),
        client_name=setting("client_name"),
    )


def load_client_configurations(
    settings: OAuth2Settings | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[ClientConfiguration]:
    """Load every client named in OAUTH2_CLIENTS, skipping unconfigured ones."""
    if settings is None:
        settings = get_oauth2_settings()

    configurations = []
    for configuration_id in settings.client_ids:
        configuration = load_client_configuration(configuration_id, settings, environ)
        if configuration is not None:
            configurations.append(configuration)
            logger.info(f"Registered OAuth2 client: {configuration_id}")
    return configurations


def create_client_configuration_repository(
    settings: OAuth2Settings | None = None,
    environ: Mapping[str, str] | None = None,
) -> InMemoryClientConfigurationRepository:
    """
    Create the client configuration repository.

    Raises:
        ValueError: If no client is usable (the application cannot start)
    """
    return InMemoryClientConfigurationRepository(
        load_client_configurations(settings, environ)
    )
