"""
OAuth2 relying party endpoints.

Provides the API surface for the authorization code flow:
- GET {authorization_base_uri}/{configuration_id} - Start the flow
- GET {callback_base_uri}/{configuration_id} - Handle callback, exchange code
- GET /oauth2/session - Describe the current authenticated session
- POST /oauth2/logout - Drop the current authenticated session
- GET /oauth2/clients - List registered clients

Flow failures are raised as domain exceptions and converted to responses
by the exception handlers in main.py.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from codegrant.core.exceptions import MalformedCallbackError
from codegrant.oauth.config import OAuth2Settings
from codegrant.oauth.dependencies import (
    ExistingFlowKey,
    FlowKey,
    GrantStage,
    RedirectStage,
    Repository,
    SecurityContext,
    Settings,
)
from codegrant.oauth.models import ClientSummary, SessionSummary


logger = logging.getLogger(__name__)


def create_router(settings: OAuth2Settings) -> APIRouter:
    """
    Create the OAuth2 router.

    The initiate and callback paths come from settings, so the router is
    built once the settings are known. Both routes accept any sub-path and
    leave recognition of ``{base_uri}/{configuration_id}`` to the stages.

    Args:
        settings: Relying party settings

    Returns:
        Configured APIRouter
    """
    router = APIRouter(tags=["oauth2"])
    authorization_path = settings.authorization_base_uri.rstrip("/")
    callback_path = settings.callback_base_uri.rstrip("/")

    @router.get(f"{authorization_path}/{{configuration_path:path}}")
    async def authorize(
        request: Request,
        flow_key: FlowKey,
        stage: RedirectStage,
    ):
        """
        Start the authorization code flow.

        Records the anti-forgery state and redirects the browser to the
        client's authorization endpoint.

        Args:
            request: Starlette request (path and session)
            flow_key: Browser session flow key
            stage: Redirect stage

        Returns:
            302 redirect to the authorization endpoint

        Raises:
            HTTPException: 404 if the path is not an initiate path
            UnknownConfigurationError: Mapped to 404
        """
        configuration_id = stage.configuration_id_from_path(request.url.path)
        if configuration_id is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Not Found"
            )

        redirect = stage.initiate(configuration_id, flow_key)
        return RedirectResponse(url=redirect.uri, status_code=status.HTTP_302_FOUND)

    @router.get(f"{callback_path}/{{configuration_path:path}}")
    async def callback(
        request: Request,
        flow_key: ExistingFlowKey,
        stage: GrantStage,
        security_context: SecurityContext,
        oauth2_settings: Settings,
    ):
        """
        Handle the authorization server callback.

        Validates the state, exchanges the code for tokens and stores the
        resulting session in the security context. A request that does not
        carry ``code``+``state`` or ``error``+``state`` is not a callback and
        leaves the flow in progress.

        Args:
            request: Starlette request (path, query parameters and session)
            flow_key: Browser session flow key, None for a fresh browser
            stage: Grant stage
            security_context: Holder of authenticated sessions
            oauth2_settings: Relying party settings

        Returns:
            302 redirect to the success URL

        Raises:
            HTTPException: 404 if the path is not a callback path
            MalformedCallbackError: Mapped to 401, flow left in progress
            StateMismatchError: Mapped to 401
            AuthorizationDeniedError: Mapped to 403
            TokenExchangeError: Mapped to 401
        """
        configuration_id = stage.configuration_id_from_path(request.url.path)
        if configuration_id is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Not Found"
            )

        if not stage.is_callback(request.query_params):
            logger.warning(
                "Request on callback path is not an authorization response",
                extra={
                    "configuration_id": configuration_id,
                    "failure_kind": MalformedCallbackError.kind,
                },
            )
            raise MalformedCallbackError(
                "Callback needs state and either code or error"
            )

        session = await stage.complete(configuration_id, request.query_params, flow_key)

        # A session exists only if a state record was consumed for this flow key
        security_context.save(flow_key, session)

        return RedirectResponse(
            url=oauth2_settings.success_url, status_code=status.HTTP_302_FOUND
        )


    @router.get("/oauth2/session", response_model=SessionSummary)
    async def current_session(
        flow_key: ExistingFlowKey,
        security_context: SecurityContext,
    ):
        """
        Describe the current authenticated session.

        Raises:
            HTTPException: 401 if no flow has completed in this browser session
        """
        session = security_context.load(flow_key) if flow_key else None
        if session is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated - no OAuth2 session",
            )
        return SessionSummary.from_session(session)

    @router.post("/oauth2/logout")
    async def logout(
        flow_key: ExistingFlowKey,
        security_context: SecurityContext,
    ):
        """Drop the current authenticated session."""
        cleared = security_context.clear(flow_key) if flow_key else False

        if cleared:
            logger.info("OAuth2 session cleared")

        return {"status": "success", "cleared": cleared}

    @router.get("/oauth2/clients", response_model=list[ClientSummary])
    async def list_clients(repository: Repository, oauth2_settings: Settings):
        """List registered clients with the path that starts their flow."""
        return [
            ClientSummary(
                id=configuration.id,
                name=configuration.client_name,
                authorization_url=oauth2_settings.get_authorization_path(configuration.id),
            )
            for configuration in repository
        ]

    return router
