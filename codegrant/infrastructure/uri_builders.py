"""
Authorization request URI builders.

Two interchangeable implementations of AuthorizationRequestUriBuilder:
- DefaultAuthorizationRequestUriBuilder: standard library URL encoding
- AuthlibAuthorizationRequestUriBuilder: delegates to authlib's RFC 6749 helpers
"""

from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from codegrant.core.domain import ClientConfiguration
from codegrant.core.ports import AuthorizationRequestUriBuilder


RESPONSE_TYPE_CODE = "code"


class DefaultAuthorizationRequestUriBuilder(AuthorizationRequestUriBuilder):
    """
    Builds ``{authorization_uri}?response_type=code&client_id=..&redirect_uri=..&scope=..&state=..``.

    Values are percent-encoded as URI components (spaces become ``%20``).
    Query parameters already present on the authorization endpoint are kept
    in front of the protocol parameters.

    Built with urllib rather than authlib so that values are encoded as URI
    components (authlib's ``prepare_grant_uri`` form-encodes spaces as
    ``+``). AuthlibAuthorizationRequestUriBuilder is the authlib variant,
    selected with ``OAUTH2_CLIENT_LIBRARY=authlib``.
    """

    def build(self, configuration: ClientConfiguration, state: str) -> str:
        params = [
            ("response_type", RESPONSE_TYPE_CODE),
            ("client_id", configuration.client_id),
            ("redirect_uri", configuration.redirect_uri),
        ]
        if configuration.scopes:
            params.append(("scope", " ".join(configuration.scopes)))
        params.append(("state", state))

        parts = urlsplit(configuration.authorization_uri)
        existing = parse_qsl(parts.query, keep_blank_values=True)
        query = urlencode(existing + params, quote_via=quote)
        return urlunsplit(parts._replace(query=query))


class AuthlibAuthorizationRequestUriBuilder(AuthorizationRequestUriBuilder):
    """Builds the same request with authlib (form encoding, spaces become ``+``)."""

    def build(self, configuration: ClientConfiguration, state: str) -> str:
        return str(
            prepare_grant_uri(
                configuration.authorization_uri,
                configuration.client_id,
                RESPONSE_TYPE_CODE,
                redirect_uri=configuration.redirect_uri,
                scope=list(configuration.scopes) or None,
                state=state,
            )
        )
