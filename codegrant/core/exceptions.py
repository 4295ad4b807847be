"""
Domain exceptions for the authorization code flow.

These exceptions represent the closed set of ways a flow can fail and are
caught by centralized exception handlers in main.py.
"""


class OAuth2Error(Exception):
    """
    Base exception for every flow failure.

    Carries the remote error code/description when the authorization server
    supplied one, and a ``kind`` used as a structured logging field.
    """

    kind = "oauth2_error"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        description: str | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.description = description


class UnknownConfigurationError(OAuth2Error):
    """
    Raised when an initiate request names a configuration that is not registered.

    This is a client-side error and should result in a 404 response.
    """

    kind = "unknown_configuration"

    def __init__(self, configuration_id: str):
        super().__init__(f"Unknown client configuration: {configuration_id}")
        self.configuration_id = configuration_id


class StateMismatchError(OAuth2Error):
    """
    Raised when the callback state is absent, expired or not the stored value.

    Never reveals whether the authorization code itself was valid.
    """

    kind = "state_mismatch"


class MalformedCallbackError(StateMismatchError):
    """
    Raised when the callback lacks ``state`` or carries neither ``code`` nor ``error``.

    Indistinguishable from StateMismatchError at the HTTP boundary.
    """

    kind = "malformed_callback"


class AuthorizationDeniedError(OAuth2Error):
    """Raised when the authorization server redirects back with an ``error`` parameter."""

    kind = "authorization_denied"

    def __init__(
        self,
        error_code: str,
        description: str | None = None,
        error_uri: str | None = None,
    ):
        message = f"Authorization denied: {error_code}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message, error_code=error_code, description=description)
        self.error_uri = error_uri


class TokenExchangeError(OAuth2Error):
    """
    Raised when the authorization code could not be exchanged for tokens.

    ``retryable`` is True for transport failures (the caller may start a new
    flow); protocol-level rejections from the token endpoint are final.
    """

    kind = "exchange_error"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        description: str | None = None,
        retryable: bool = False,
    ):
        super().__init__(message, error_code=error_code, description=description)
        self.retryable = retryable


class TokenResponseParseError(TokenExchangeError):
    """Raised when the token endpoint answered 2xx with a body that is not a token response."""

    pass


class PrincipalResolutionError(OAuth2Error):
    """Raised by principal resolvers when no identity can be established for a token."""

    kind = "principal_resolution"
