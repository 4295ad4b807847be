"""
Authorization code grant stage.

Completes a flow when the authorization server redirects the browser back:
consumes the stored state, validates the callback, exchanges the code and
builds the AuthenticatedSession.

Per flow instance:

    AWAITING_CALLBACK -> VALIDATING_STATE -> EXCHANGING_TOKEN -> AUTHENTICATED
                                 |                  |
                                 +-----> FAILED <---+

The stored state is removed before validation starts, so every terminal
outcome (success or failure) leaves nothing that a second callback could use.
"""

import hmac
import logging
from collections.abc import Mapping
from enum import Enum

from codegrant.clients.repository import ClientConfigurationRepository
from codegrant.core.domain import (
    AuthenticatedSession,
    AuthorizationResponseAttributes,
    ClientConfiguration,
)
from codegrant.core.exceptions import (
    AuthorizationDeniedError,
    MalformedCallbackError,
    OAuth2Error,
    PrincipalResolutionError,
    StateMismatchError,
    TokenExchangeError,
    UnknownConfigurationError,
)
from codegrant.core.ports import (
    AuthorizationCodeGrantHandler,
    AuthorizationRequestStateStore,
    PrincipalResolver,
)


logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_BASE_URI = "/oauth2/callback"


class FlowState(str, Enum):
    """States of a single authorization code flow."""

    AWAITING_CALLBACK = "awaiting_callback"
    VALIDATING_STATE = "validating_state"
    EXCHANGING_TOKEN = "exchanging_token"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class AuthorizationCodeGrantStage:
    """
    Finishes authorization code flows on callback.

    Performs at most one token endpoint call per stored state record and
    holds no lock while that call is in flight.
    """

    def __init__(
        self,
        repository: ClientConfigurationRepository,
        grant_handler: AuthorizationCodeGrantHandler,
        state_store: AuthorizationRequestStateStore,
        base_uri: str = DEFAULT_CALLBACK_BASE_URI,
        principal_resolver: PrincipalResolver | None = None,
    ):
        self.repository = repository
        self.grant_handler = grant_handler
        self.state_store = state_store
        self.base_uri = base_uri.rstrip("/")
        self.principal_resolver = principal_resolver

    def configuration_id_from_path(self, path: str) -> str | None:
        """Recognize ``{base_uri}/{configuration_id}``, None for any other path."""
        prefix = f"{self.base_uri}/"
        if not path.startswith(prefix):
            return None
        configuration_id = path[len(prefix):].strip("/")
        if not configuration_id or "/" in configuration_id:
            return None
        return configuration_id

    @staticmethod
    def is_callback(query_params: Mapping[str, str]) -> bool:
        """True for ``code``+``state`` or ``error``+``state`` query strings."""
        attributes = AuthorizationResponseAttributes.from_query_params(query_params)
        return attributes.state is not None and (
            attributes.code is not None or attributes.error is not None
        )

    async def complete(
        self,
        configuration_id: str | None,
        query_params: Mapping[str, str],
        flow_key: str | None,
    ) -> AuthenticatedSession:
        """
        Complete the flow for a callback request.

        Args:
            configuration_id: Client id taken from the callback path, if any
            query_params: Callback query parameters
            flow_key: Opaque key of the browser session, None if it has none

        Returns:
            AuthenticatedSession (authenticated only if a principal resolver
            attached a principal)

        Raises:
            StateMismatchError: Stored state absent, expired or different
            MalformedCallbackError: Callback lacks state, or both code and error
            AuthorizationDeniedError: Authorization server reported an error
            TokenExchangeError: Code could not be exchanged
            PrincipalResolutionError: Principal resolver failed
        """
        try:
            session = await self._complete(configuration_id, query_params, flow_key)
        except OAuth2Error as e:
            logger.warning(
                f"Authorization code flow failed: {e.kind}",
                extra={
                    "configuration_id": configuration_id,
                    "flow_state": FlowState.FAILED.value,
                    "failure_kind": e.kind,
                    "error": e.error_code,
                },
            )
            raise

        logger.info(
            f"Authorization code flow completed for: {session.configuration.id}",
            extra={
                "configuration_id": session.configuration.id,
                "flow_state": FlowState.AUTHENTICATED.value,
                "authenticated": session.authenticated,
            },
        )
        return session

    async def _complete(
        self,
        configuration_id: str | None,
        query_params: Mapping[str, str],
        flow_key: str | None,
    ) -> AuthenticatedSession:
        stored = self.state_store.pop(flow_key) if flow_key else None
        self._log_transition(FlowState.VALIDATING_STATE, configuration_id)

        if stored is None or stored.is_expired():
            raise StateMismatchError("No authorization request in progress")

        attributes = AuthorizationResponseAttributes.from_query_params(query_params)
        if attributes.state is None:
            raise MalformedCallbackError("Callback is missing the state parameter")

        if not hmac.compare_digest(
            stored.state.encode("utf-8"), attributes.state.encode("utf-8")
        ):
            raise StateMismatchError("Callback state does not match")

        if configuration_id is not None and configuration_id != stored.configuration_id:
            raise StateMismatchError("Callback does not belong to this authorization request")

        if attributes.is_error:
            raise AuthorizationDeniedError(
                attributes.error,
                description=attributes.error_description,
                error_uri=attributes.error_uri,
            )

        if attributes.code is None:
            raise MalformedCallbackError("Callback carries neither code nor error")

        configuration = self.repository.find_by_id(stored.configuration_id)
        if configuration is None:
            raise UnknownConfigurationError(stored.configuration_id)

        self._log_transition(FlowState.EXCHANGING_TOKEN, configuration.id)
        try:
            token_response = await self.grant_handler.exchange(configuration, attributes)
        except TokenExchangeError:
            raise
        except Exception as e:
            raise TokenExchangeError(f"Unexpected token exchange failure: {e}") from e

        session = AuthenticatedSession.from_token_response(configuration, token_response)
        if self.principal_resolver is not None:
            session = await self._resolve_principal(session, configuration)
        return session

    async def _resolve_principal(
        self, session: AuthenticatedSession, configuration: ClientConfiguration
    ) -> AuthenticatedSession:
        try:
            principal, authorities = await self.principal_resolver.resolve(
                session.access_token, configuration
            )
        except PrincipalResolutionError:
            raise
        except Exception as e:
            raise PrincipalResolutionError(f"Principal resolution failed: {e}") from e
        return session.with_principal(principal, authorities)

    @staticmethod
    def _log_transition(state: FlowState, configuration_id: str | None) -> None:
        logger.debug(
            f"Authorization code flow -> {state.value}",
            extra={"configuration_id": configuration_id, "flow_state": state.value},
        )
