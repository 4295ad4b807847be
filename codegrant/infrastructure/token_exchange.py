"""
Token endpoint adapters.

Both handlers perform exactly one POST to the token endpoint and normalize
the answer through parse_token_response. Nothing is retried here; a
retryable TokenExchangeError tells the caller a new flow may succeed.
"""

import logging
from typing import Any

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from codegrant.core.domain import (
    AccessTokenType,
    AuthorizationGrantType,
    AuthorizationResponseAttributes,
    ClientConfiguration,
    TokenResponseAttributes,
)
from codegrant.core.exceptions import TokenExchangeError, TokenResponseParseError
from codegrant.core.ports import AuthorizationCodeGrantHandler


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


class TokenEndpointResponse(BaseModel):
    """Wire model for a successful token endpoint body (RFC 6749 section 5.1)."""

    access_token: str = Field(min_length=1)
    # Any value is accepted; non-string or unknown types map to UNRECOGNIZED
    token_type: Any = None
    expires_in: int | None = None
    scope: str | list[str] | None = None
    refresh_token: str | None = None

    model_config = ConfigDict(extra="allow")


def parse_token_response(payload: Any) -> TokenResponseAttributes:
    """
    Normalize a decoded token endpoint body.

    Args:
        payload: Decoded JSON body

    Returns:
        TokenResponseAttributes

    Raises:
        TokenExchangeError: If the body is an OAuth error response
        TokenResponseParseError: If the body is not a token response
    """
    if not isinstance(payload, dict):
        raise TokenResponseParseError(
            f"Token response must be a JSON object, got {type(payload).__name__}"
        )

    if "error" in payload:
        raise _oauth_error(payload)

    try:
        body = TokenEndpointResponse.model_validate(payload)
    except ValidationError as e:
        raise TokenResponseParseError(f"Invalid token response: {e}") from e

    return TokenResponseAttributes(
        access_token=body.access_token,
        token_type=AccessTokenType.from_value(
            str(body.token_type) if body.token_type is not None else None
        ),
        expires_in=max(body.expires_in or 0, 0),
        scopes=body.scope,
        refresh_token=body.refresh_token or None,
        additional_parameters=dict(body.model_extra or {}),
    )


def _oauth_error(payload: dict[str, Any]) -> TokenExchangeError:
    error_code = str(payload.get("error"))
    description = payload.get("error_description")
    return TokenExchangeError(
        f"Token endpoint rejected the authorization code: {error_code}",
        error_code=error_code,
        description=str(description) if description is not None else None,
    )


def _require_code(attributes: AuthorizationResponseAttributes) -> str:
    if not attributes.code:
        raise TokenExchangeError("Authorization code is missing from the callback")
    return attributes.code


class HttpxAuthorizationCodeGrantHandler(AuthorizationCodeGrantHandler):
    """
    Default token exchange over httpx.

    Sends client credentials in the form body (``client_secret_post``) and
    asks for JSON.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    async def exchange(
        self,
        configuration: ClientConfiguration,
        attributes: AuthorizationResponseAttributes,
    ) -> TokenResponseAttributes:
        code = _require_code(attributes)

        data = {
            "grant_type": AuthorizationGrantType.AUTHORIZATION_CODE.value,
            "client_id": configuration.client_id,
            "client_secret": configuration.client_secret,
            "redirect_uri": configuration.redirect_uri,
            "code": code,
        }
        if configuration.scopes:
            data["scope"] = " ".join(configuration.scopes)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    configuration.token_uri,
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as e:
            logger.error(
                f"Token request timed out after {self.timeout}s",
                extra={"configuration_id": configuration.id},
            )
            raise TokenExchangeError(
                f"Token request timed out: {e}", retryable=True
            ) from e
        except httpx.RequestError as e:
            logger.error(
                f"Network error during token exchange: {e}",
                extra={"configuration_id": configuration.id},
            )
            raise TokenExchangeError(f"Network error: {e}", retryable=True) from e

        return self._parse(configuration, response)

    def _parse(
        self, configuration: ClientConfiguration, response: httpx.Response
    ) -> TokenResponseAttributes:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.is_success:
            logger.error(
                f"Token endpoint returned HTTP {response.status_code}",
                extra={
                    "configuration_id": configuration.id,
                    "status_code": response.status_code,
                },
            )
            if isinstance(payload, dict) and "error" in payload:
                raise _oauth_error(payload)
            raise TokenExchangeError(
                f"Token endpoint returned HTTP {response.status_code}",
                retryable=response.status_code >= 500,
            )

        if payload is None:
            raise TokenResponseParseError("Token endpoint returned a non-JSON body")

        return parse_token_response(payload)


class AuthlibAuthorizationCodeGrantHandler(AuthorizationCodeGrantHandler):
    """Token exchange through authlib's AsyncOAuth2Client."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    async def exchange(
        self,
        configuration: ClientConfiguration,
        attributes: AuthorizationResponseAttributes,
    ) -> TokenResponseAttributes:
        code = _require_code(attributes)

        try:
            async with AsyncOAuth2Client(
                client_id=configuration.client_id,
                client_secret=configuration.client_secret,
                redirect_uri=configuration.redirect_uri,
                token_endpoint_auth_method="client_secret_post",
                timeout=self.timeout,
            ) as client:
                token = await client.fetch_token(
                    configuration.token_uri,
                    grant_type=AuthorizationGrantType.AUTHORIZATION_CODE.value,
                    code=code,
                    scope=" ".join(configuration.scopes) or None,
                )
        except OAuthError as e:
            logger.error(
                f"Token endpoint rejected the authorization code: {e.error}",
                extra={"configuration_id": configuration.id, "error": e.error},
            )
            raise TokenExchangeError(
                f"Token endpoint rejected the authorization code: {e.error}",
                error_code=e.error,
                description=e.description,
            ) from e
        except httpx.TimeoutException as e:
            raise TokenExchangeError(
                f"Token request timed out: {e}", retryable=True
            ) from e
        except httpx.RequestError as e:
            raise TokenExchangeError(f"Network error: {e}", retryable=True) from e
        except httpx.HTTPStatusError as e:
            raise TokenExchangeError(
                f"Token endpoint returned HTTP {e.response.status_code}",
                retryable=True,
            ) from e
        except ValueError as e:
            raise TokenResponseParseError(
                f"Token endpoint returned a non-JSON body: {e}"
            ) from e

        return parse_token_response(dict(token))
