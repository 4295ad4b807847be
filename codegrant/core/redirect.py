"""
Authorization request redirect stage.

Turns "this caller needs to authenticate with provider X" into a redirect
to the provider's authorization endpoint, recording the anti-forgery state
the callback will be checked against.
"""

import logging
import secrets
from dataclasses import dataclass

from codegrant.clients.repository import ClientConfigurationRepository
from codegrant.core.domain import AuthorizationRequestState
from codegrant.core.exceptions import UnknownConfigurationError
from codegrant.core.ports import AuthorizationRequestStateStore, AuthorizationRequestUriBuilder


logger = logging.getLogger(__name__)

DEFAULT_AUTHORIZATION_BASE_URI = "/oauth2/authorization"
DEFAULT_STATE_TTL_SECONDS = 300

# 32 random bytes -> 43 URL-safe characters (256 bits)
STATE_NUM_BYTES = 32


def generate_state() -> str:
    """Generate an unguessable, URL-safe state value."""
    return secrets.token_urlsafe(STATE_NUM_BYTES)


@dataclass(frozen=True)
class AuthorizationRedirect:
    """Where to send the browser, and the state that was recorded for it."""

    uri: str
    state: str
    configuration_id: str


class AuthorizationRequestRedirectStage:
    """
    Starts authorization code flows.

    Side-effect light: one state record per successful call, no network I/O.
    """

    def __init__(
        self,
        repository: ClientConfigurationRepository,
        uri_builder: AuthorizationRequestUriBuilder,
        state_store: AuthorizationRequestStateStore,
        base_uri: str = DEFAULT_AUTHORIZATION_BASE_URI,
        state_ttl_seconds: float = DEFAULT_STATE_TTL_SECONDS,
    ):
        self.repository = repository
        self.uri_builder = uri_builder
        self.state_store = state_store
        self.base_uri = base_uri.rstrip("/")
        self.state_ttl_seconds = state_ttl_seconds

    def configuration_id_from_path(self, path: str) -> str | None:
        """
        Recognize ``{base_uri}/{configuration_id}``.

        Returns:
            The configuration id, or None if ``path`` is not an initiate path
        """
        prefix = f"{self.base_uri}/"
        if not path.startswith(prefix):
            return None
        configuration_id = path[len(prefix):].strip("/")
        if not configuration_id or "/" in configuration_id:
            return None
        return configuration_id

    def initiate(self, configuration_id: str, flow_key: str) -> AuthorizationRedirect:
        """
        Start a flow for a registered client.

        Args:
            configuration_id: Registration identifier (e.g. google)
            flow_key: Opaque key identifying the browser session

        Returns:
            AuthorizationRedirect with the authorization endpoint URI

        Raises:
            UnknownConfigurationError: If the client is not registered
        """
        configuration = self.repository.find_by_id(configuration_id)
        if configuration is None:
            logger.warning(
                f"Authorization requested for unknown client: {configuration_id}",
                extra={"configuration_id": configuration_id},
            )
            raise UnknownConfigurationError(configuration_id)

        state = generate_state()
        self.state_store.save(
            flow_key,
            AuthorizationRequestState.create(
                state=state,
                configuration_id=configuration.id,
                ttl_seconds=self.state_ttl_seconds,
            ),
        )

        uri = self.uri_builder.build(configuration, state)

        logger.info(
            f"Redirecting to authorization endpoint for: {configuration.id}",
            extra={"configuration_id": configuration.id},
        )
        return AuthorizationRedirect(
            uri=uri, state=state, configuration_id=configuration.id
        )
