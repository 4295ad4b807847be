"""
Unit tests for the token exchange handlers.
"""

from urllib.parse import parse_qs

import httpx
import pytest
from respx import MockRouter

from codegrant.core.domain import AccessTokenType, AuthorizationResponseAttributes
from codegrant.core.exceptions import TokenExchangeError, TokenResponseParseError
from codegrant.infrastructure.token_exchange import (
    AuthlibAuthorizationCodeGrantHandler,
    HttpxAuthorizationCodeGrantHandler,
    parse_token_response,
)
from tests.conftest import GOOGLE_TOKEN_URI


CALLBACK = AuthorizationResponseAttributes(code="abc123", state="state-1")


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestParseTokenResponse:
    """Tests for parse_token_response normalization."""

    def test_round_trip(self, token_response_body):
        """Test every standard field is normalized."""
        attributes = parse_token_response(token_response_body)

        assert attributes.access_token == "abc"
        assert attributes.token_type is AccessTokenType.BEARER
        assert attributes.expires_in == 3600
        assert attributes.scopes == ("read", "write")
        assert attributes.refresh_token == "r1"

    def test_missing_scope_is_empty(self):
        """Test a missing scope is the empty sequence, not the requested scope."""
        attributes = parse_token_response({"access_token": "abc", "token_type": "bearer"})

        assert attributes.scopes == ()

    def test_optional_fields_absent(self):
        """Test only access_token is required."""
        attributes = parse_token_response({"access_token": "abc"})

        assert attributes.token_type is AccessTokenType.UNRECOGNIZED
        assert attributes.expires_in == 0
        assert attributes.refresh_token is None

    def test_unknown_token_type_does_not_fail(self):
        """Test an unknown token type maps to UNRECOGNIZED."""
        attributes = parse_token_response({"access_token": "abc", "token_type": "DPoP"})

        assert attributes.token_type is AccessTokenType.UNRECOGNIZED

    @pytest.mark.parametrize("token_type", [5, True, ["bearer"], {"kind": "bearer"}])
    def test_non_string_token_type_does_not_fail(self, token_type):
        """Test a non-string token type maps to UNRECOGNIZED."""
        attributes = parse_token_response({"access_token": "abc", "token_type": token_type})

        assert attributes.access_token == "abc"
        assert attributes.token_type is AccessTokenType.UNRECOGNIZED

    def test_expires_in_as_string(self):
        """Test numeric strings are accepted for expires_in."""
        attributes = parse_token_response({"access_token": "abc", "expires_in": "120"})

        assert attributes.expires_in == 120

    def test_additional_parameters_kept(self):
        """Test non-standard fields are kept for diagnostics."""
        attributes = parse_token_response({"access_token": "abc", "id_token": "jwt"})

        assert attributes.additional_parameters == {"id_token": "jwt"}

    def test_error_body(self):
        """Test an OAuth error body becomes TokenExchangeError."""
        with pytest.raises(TokenExchangeError) as exc_info:
            parse_token_response(
                {"error": "bad_verification_code", "error_description": "expired"}
            )

        assert exc_info.value.error_code == "bad_verification_code"
        assert exc_info.value.description == "expired"
        assert exc_info.value.retryable is False

    def test_missing_access_token(self):
        """Test a body without access_token is a parse error."""
        with pytest.raises(TokenResponseParseError):
            parse_token_response({"token_type": "bearer"})

    def test_not_an_object(self):
        """Test a JSON array is a parse error."""
        with pytest.raises(TokenResponseParseError):
            parse_token_response(["abc"])


class TestHttpxAuthorizationCodeGrantHandler:
    """Tests for the default httpx handler."""

    @pytest.mark.asyncio
    async def test_exchange_success(
        self, respx_mock: MockRouter, google_configuration, token_response_body
    ):
        """Test a successful exchange and the request it sends."""
        route = respx_mock.post(GOOGLE_TOKEN_URI).mock(
            return_value=httpx.Response(200, json=token_response_body)
        )

        attributes = await HttpxAuthorizationCodeGrantHandler().exchange(
            google_configuration, CALLBACK
        )

        assert attributes.access_token == "abc"
        assert attributes.refresh_token == "r1"
        assert route.call_count == 1

        request = route.calls.last.request
        assert request.headers["accept"] == "application/json"
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        assert _form(request) == {
            "grant_type": "authorization_code",
            "client_id": "google-client-id",
            "client_secret": "google-client-secret",
            "redirect_uri": "http://testserver/oauth2/callback/google",
            "code": "abc123",
            "scope": "openid email profile",
        }

    @pytest.mark.asyncio
    async def test_oauth_error_body(self, respx_mock: MockRouter, google_configuration):
        """Test invalid_grant is surfaced with code and description, not retryable."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            return_value=httpx.Response(
                400,
                json={"error": "invalid_grant", "error_description": "Code expired"},
            )
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await HttpxAuthorizationCodeGrantHandler().exchange(
                google_configuration, CALLBACK
            )

        assert exc_info.value.error_code == "invalid_grant"
        assert exc_info.value.description == "Code expired"
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_error_body_with_200(self, respx_mock: MockRouter, google_configuration):
        """Test servers answering 200 with an error body are still rejected."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            return_value=httpx.Response(200, json={"error": "bad_verification_code"})
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await HttpxAuthorizationCodeGrantHandler().exchange(
                google_configuration, CALLBACK
            )

        assert exc_info.value.error_code == "bad_verification_code"

    @pytest.mark.asyncio
    async def test_numeric_token_type(self, respx_mock: MockRouter, google_configuration):
        """Test a numeric token type does not fail the exchange."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            return_value=httpx.Response(200, json={"access_token": "a", "token_type": 5})
        )

        attributes = await HttpxAuthorizationCodeGrantHandler().exchange(
            google_configuration, CALLBACK
        )

        assert attributes.access_token == "a"
        assert attributes.token_type is AccessTokenType.UNRECOGNIZED

    @pytest.mark.asyncio
    async def test_non_json_success_body(self, respx_mock: MockRouter, google_configuration):
        """Test a 200 body that is not JSON is a parse error."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            return_value=httpx.Response(200, text="access_token=abc&token_type=bearer")
        )

        with pytest.raises(TokenResponseParseError):
            await HttpxAuthorizationCodeGrantHandler().exchange(
                google_configuration, CALLBACK
            )

    @pytest.mark.asyncio
    async def test_server_error(self, respx_mock: MockRouter, google_configuration):
        """Test a 5xx without an OAuth body is a retryable exchange error."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            return_value=httpx.Response(503, text="<html>Unavailable</html>")
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await HttpxAuthorizationCodeGrantHandler().exchange(
                google_configuration, CALLBACK
            )

        assert exc_info.value.error_code is None
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_network_error(self, respx_mock: MockRouter, google_configuration):
        """Test transport failures are retryable exchange errors."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            side_effect=httpx.ConnectError("Connection failed")
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await HttpxAuthorizationCodeGrantHandler().exchange(
                google_configuration, CALLBACK
            )

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_timeout(self, respx_mock: MockRouter, google_configuration):
        """Test a timeout fails the exchange instead of hanging."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            side_effect=httpx.ReadTimeout("Timed out")
        )

        with pytest.raises(TokenExchangeError, match="timed out") as exc_info:
            await HttpxAuthorizationCodeGrantHandler(timeout=0.5).exchange(
                google_configuration, CALLBACK
            )

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_missing_code(self, respx_mock: MockRouter, google_configuration):
        """Test no request is made without an authorization code."""
        with pytest.raises(TokenExchangeError, match="missing"):
            await HttpxAuthorizationCodeGrantHandler().exchange(
                google_configuration,
                AuthorizationResponseAttributes(state="state-1"),
            )

        assert respx_mock.calls.call_count == 0


class TestAuthlibAuthorizationCodeGrantHandler:
    """Tests for the authlib-backed handler."""

    @pytest.mark.asyncio
    async def test_exchange_success(
        self, respx_mock: MockRouter, google_configuration, token_response_body
    ):
        """Test a successful exchange posts client credentials in the body."""
        route = respx_mock.post(GOOGLE_TOKEN_URI).mock(
            return_value=httpx.Response(200, json=token_response_body)
        )

        attributes = await AuthlibAuthorizationCodeGrantHandler().exchange(
            google_configuration, CALLBACK
        )

        assert attributes.access_token == "abc"
        assert attributes.token_type is AccessTokenType.BEARER
        assert attributes.scopes == ("read", "write")
        assert attributes.refresh_token == "r1"

        form = _form(route.calls.last.request)
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "abc123"
        assert form["client_id"] == "google-client-id"
        assert form["client_secret"] == "google-client-secret"
        assert form["redirect_uri"] == "http://testserver/oauth2/callback/google"

    @pytest.mark.asyncio
    async def test_oauth_error_body(self, respx_mock: MockRouter, google_configuration):
        """Test remote errors are mapped onto TokenExchangeError."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            return_value=httpx.Response(
                400,
                json={"error": "invalid_grant", "error_description": "Code expired"},
            )
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await AuthlibAuthorizationCodeGrantHandler().exchange(
                google_configuration, CALLBACK
            )

        assert exc_info.value.error_code == "invalid_grant"
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_network_error(self, respx_mock: MockRouter, google_configuration):
        """Test transport failures are retryable exchange errors."""
        respx_mock.post(GOOGLE_TOKEN_URI).mock(
            side_effect=httpx.ConnectError("Connection failed")
        )

        with pytest.raises(TokenExchangeError) as exc_info:
            await AuthlibAuthorizationCodeGrantHandler().exchange(
                google_configuration, CALLBACK
            )

        assert exc_info.value.retryable is True
