"""
Port definitions (interfaces) for the core domain.

Ports define the contracts between the flow stages and their collaborators.
Infrastructure adapters implement these ports; the stages depend only on
the interfaces and receive implementations through their constructors.
"""

from typing import Protocol

from codegrant.core.domain import (
    AccessToken,
    AuthenticatedSession,
    AuthorizationRequestState,
    AuthorizationResponseAttributes,
    ClientConfiguration,
    Principal,
    TokenResponseAttributes,
)


class AuthorizationRequestUriBuilder(Protocol):
    """Builds the authorization endpoint URI the browser is redirected to."""

    def build(self, configuration: ClientConfiguration, state: str) -> str:
        """
        Build the authorization request URI.

        Must be deterministic for identical inputs; the builder never
        generates state itself.
        """
        ...


class AuthorizationCodeGrantHandler(Protocol):
    """Exchanges an authorization code for tokens at the token endpoint."""

    async def exchange(
        self,
        configuration: ClientConfiguration,
        attributes: AuthorizationResponseAttributes,
    ) -> TokenResponseAttributes:
        """
        Perform a single token request.

        Raises:
            TokenExchangeError: On transport, protocol or parse failures
        """
        ...


class AuthorizationRequestStateStore(Protocol):
    """
    Server-side storage for in-flight authorization requests.

    ``pop`` must be an atomic get-and-delete so a state value can be
    consumed at most once.
    """

    def save(self, key: str, state: AuthorizationRequestState) -> None: ...

    def pop(self, key: str) -> AuthorizationRequestState | None:
        """Remove and return the record for ``key``; expired records return None."""
        ...


class PrincipalResolver(Protocol):
    """Establishes the user identity behind a freshly issued access token."""

    async def resolve(
        self, access_token: AccessToken, configuration: ClientConfiguration
    ) -> tuple[Principal, frozenset[str]]:
        """
        Resolve the principal and granted authorities.

        Raises:
            PrincipalResolutionError: If no identity can be established
        """
        ...


class SecurityContextRepository(Protocol):
    """Holds the AuthenticatedSession of each browser session."""

    def save(self, key: str, session: AuthenticatedSession) -> None: ...

    def load(self, key: str) -> AuthenticatedSession | None: ...

    def clear(self, key: str) -> bool: ...
