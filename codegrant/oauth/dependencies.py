"""
FastAPI dependencies for the OAuth2 endpoints.

Wires the flow stages with their collaborators. Every provider can be
replaced through ``app.dependency_overrides``.
"""

import logging
import secrets
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from codegrant.clients.repository import ClientConfigurationRepository
from codegrant.core.grant import AuthorizationCodeGrantStage
from codegrant.core.ports import (
    AuthorizationCodeGrantHandler,
    AuthorizationRequestStateStore,
    AuthorizationRequestUriBuilder,
    PrincipalResolver,
    SecurityContextRepository,
)
from codegrant.core.redirect import AuthorizationRequestRedirectStage
from codegrant.infrastructure.state_store import (
    InMemoryAuthorizationRequestStateStore,
    InMemorySecurityContextRepository,
)
from codegrant.infrastructure.token_exchange import (
    AuthlibAuthorizationCodeGrantHandler,
    HttpxAuthorizationCodeGrantHandler,
)
from codegrant.infrastructure.uri_builders import (
    AuthlibAuthorizationRequestUriBuilder,
    DefaultAuthorizationRequestUriBuilder,
)
from codegrant.oauth.config import (
    OAuth2Settings,
    create_client_configuration_repository,
    get_oauth2_settings,
)


logger = logging.getLogger(__name__)

# Session cookie entry correlating the two legs of a flow
FLOW_KEY_SESSION_NAME = "oauth2_flow_key"


@lru_cache()
def get_client_repository() -> ClientConfigurationRepository:
    """Provide the client configuration repository (singleton)."""
    return create_client_configuration_repository(get_oauth2_settings())


@lru_cache()
def get_state_store() -> AuthorizationRequestStateStore:
    """Provide the authorization request state store (singleton)."""
    return InMemoryAuthorizationRequestStateStore()


@lru_cache()
def get_security_context() -> SecurityContextRepository:
    """Provide the security context repository (singleton)."""
    return InMemorySecurityContextRepository()


def get_uri_builder(
    settings: Annotated[OAuth2Settings, Depends(get_oauth2_settings)],
) -> AuthorizationRequestUriBuilder:
    """Provide the authorization URI builder selected by OAUTH2_CLIENT_LIBRARY."""
    if settings.client_library == "authlib":
        return AuthlibAuthorizationRequestUriBuilder()
    return DefaultAuthorizationRequestUriBuilder()


def get_grant_handler(
    settings: Annotated[OAuth2Settings, Depends(get_oauth2_settings)],
) -> AuthorizationCodeGrantHandler:
    """Provide the token exchange handler selected by OAUTH2_CLIENT_LIBRARY."""
    if settings.client_library == "authlib":
        return AuthlibAuthorizationCodeGrantHandler(timeout=settings.token_timeout_seconds)
    return HttpxAuthorizationCodeGrantHandler(timeout=settings.token_timeout_seconds)


def get_principal_resolver() -> PrincipalResolver | None:
    """
    Provide the principal resolver.

    None by default: sessions stay unauthenticated until the host overrides
    this dependency with a resolver for its identity source.
    """
    return None


def get_redirect_stage(
    settings: Annotated[OAuth2Settings, Depends(get_oauth2_settings)],
    repository: Annotated[ClientConfigurationRepository, Depends(get_client_repository)],
    uri_builder: Annotated[AuthorizationRequestUriBuilder, Depends(get_uri_builder)],
    state_store: Annotated[AuthorizationRequestStateStore, Depends(get_state_store)],
) -> AuthorizationRequestRedirectStage:
    """Provide the redirect stage wired with its collaborators."""
    return AuthorizationRequestRedirectStage(
        repository=repository,
        uri_builder=uri_builder,
        state_store=state_store,
        base_uri=settings.authorization_base_uri,
        state_ttl_seconds=settings.state_ttl_seconds,
    )


def get_grant_stage(
    settings: Annotated[OAuth2Settings, Depends(get_oauth2_settings)],
    repository: Annotated[ClientConfigurationRepository, Depends(get_client_repository)],
    grant_handler: Annotated[AuthorizationCodeGrantHandler, Depends(get_grant_handler)],
    state_store: Annotated[AuthorizationRequestStateStore, Depends(get_state_store)],
    principal_resolver: Annotated[PrincipalResolver | None, Depends(get_principal_resolver)],
) -> AuthorizationCodeGrantStage:
    """Provide the grant stage wired with its collaborators."""
    return AuthorizationCodeGrantStage(
        repository=repository,
        grant_handler=grant_handler,
        state_store=state_store,
        base_uri=settings.callback_base_uri,
        principal_resolver=principal_resolver,
    )


def get_flow_key(request: Request) -> str:
    """Return the browser session's flow key, creating one if needed."""
    flow_key = request.session.get(FLOW_KEY_SESSION_NAME)
    if not flow_key:
        flow_key = secrets.token_urlsafe(16)
        request.session[FLOW_KEY_SESSION_NAME] = flow_key
    return str(flow_key)


def get_existing_flow_key(request: Request) -> str | None:
    """Return the browser session's flow key without creating one."""
    flow_key = request.session.get(FLOW_KEY_SESSION_NAME)
    return str(flow_key) if flow_key else None


# Type aliases for cleaner dependency injection
Settings = Annotated[OAuth2Settings, Depends(get_oauth2_settings)]
Repository = Annotated[ClientConfigurationRepository, Depends(get_client_repository)]
SecurityContext = Annotated[SecurityContextRepository, Depends(get_security_context)]
RedirectStage = Annotated[AuthorizationRequestRedirectStage, Depends(get_redirect_stage)]
GrantStage = Annotated[AuthorizationCodeGrantStage, Depends(get_grant_stage)]
FlowKey = Annotated[str, Depends(get_flow_key)]
ExistingFlowKey = Annotated[str | None, Depends(get_existing_flow_key)]
