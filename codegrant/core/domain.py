"""
Core domain models for the OAuth2 authorization code flow.

These models represent client registrations, the per-flow correlation
record, token endpoint results and the resulting authenticated session.
They are independent of any web framework or HTTP client.
"""

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AuthorizationGrantType(str, Enum):
    """OAuth2 grant types (RFC 6749). Only the authorization code grant is supported."""

    AUTHORIZATION_CODE = "authorization_code"
    IMPLICIT = "implicit"
    PASSWORD = "password"
    CLIENT_CREDENTIALS = "client_credentials"
    REFRESH_TOKEN = "refresh_token"


class AccessTokenType(str, Enum):
    """Closed set of access token types understood by this client."""

    BEARER = "bearer"
    MAC = "mac"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def from_value(cls, value: str | None) -> "AccessTokenType":
        """Map a ``token_type`` value case-insensitively, unknown or absent -> UNRECOGNIZED."""
        if value:
            normalized = value.strip().lower()
            if normalized == cls.BEARER.value:
                return cls.BEARER
            if normalized == cls.MAC.value:
                return cls.MAC
        return cls.UNRECOGNIZED


def _to_scope_tuple(value: Any) -> tuple[str, ...]:
    """Accept a space-delimited string or a sequence of scopes."""
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(value.split())
    return tuple(str(scope) for scope in value if str(scope))


class ClientConfiguration(BaseModel):
    """
    A registered OAuth2 client.

    Created at startup from external configuration and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Registration identifier (e.g. google)")
    client_id: str = Field(min_length=1, description="Client identifier at the provider")
    client_secret: str = Field(repr=False, description="Client secret")
    authorization_uri: str = Field(min_length=1, description="Authorization endpoint")
    token_uri: str = Field(min_length=1, description="Token endpoint")
    redirect_uri: str = Field(min_length=1, description="Callback URI registered with the provider")
    scopes: tuple[str, ...] = Field(default=(), description="Requested scopes, in order")
    grant_type: AuthorizationGrantType = AuthorizationGrantType.AUTHORIZATION_CODE
    client_name: str | None = Field(default=None, description="Human readable name")

    @field_validator("scopes", mode="before")
    @classmethod
    def validate_scopes(cls, v):
        return _to_scope_tuple(v)

    @field_validator("grant_type")
    @classmethod
    def validate_grant_type(cls, v):
        """Only the authorization code grant is implemented."""
        if v != AuthorizationGrantType.AUTHORIZATION_CODE:
            raise ValueError(f"Unsupported grant type: {v.value}")
        return v


class AuthorizationRequestState(BaseModel):
    """
    Correlation record written when a flow starts and consumed by its callback.

    Lives server-side for at most one browser round trip.
    """

    model_config = ConfigDict(frozen=True)

    state: str = Field(repr=False)
    configuration_id: str
    created_at: datetime
    expires_at: datetime

    @classmethod
    def create(
        cls,
        state: str,
        configuration_id: str,
        ttl_seconds: float,
        now: datetime | None = None,
    ) -> "AuthorizationRequestState":
        created_at = now or datetime.now(UTC)
        return cls(
            state=state,
            configuration_id=configuration_id,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at


class AuthorizationResponseAttributes(BaseModel):
    """
    Parsed authorization callback.

    Carries either a ``code`` (success) or an ``error`` (denial), plus the
    echoed ``state``. Empty query values are treated as absent.
    """

    model_config = ConfigDict(frozen=True)

    code: str | None = Field(default=None, repr=False)
    state: str | None = Field(default=None, repr=False)
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @classmethod
    def from_query_params(cls, params: Mapping[str, str]) -> "AuthorizationResponseAttributes":
        def value(name: str) -> str | None:
            raw = params.get(name)
            return raw if raw else None

        return cls(
            code=value("code"),
            state=value("state"),
            error=value("error"),
            error_description=value("error_description"),
            error_uri=value("error_uri"),
        )

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_success(self) -> bool:
        return self.code is not None and self.error is None


class TokenResponseAttributes(BaseModel):
    """Normalized result of a successful token endpoint call."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    token_type: AccessTokenType = AccessTokenType.UNRECOGNIZED
    expires_in: int = Field(default=0, ge=0, description="Seconds; 0 means no expiry declared")
    scopes: tuple[str, ...] = ()
    refresh_token: str | None = Field(default=None, repr=False)
    additional_parameters: dict[str, Any] = Field(default_factory=dict, repr=False)

    @field_validator("scopes", mode="before")
    @classmethod
    def validate_scopes(cls, v):
        return _to_scope_tuple(v)


class AccessToken(BaseModel):
    """Credential for calling protected resources."""

    model_config = ConfigDict(frozen=True)

    token_type: AccessTokenType
    token_value: str = Field(repr=False)
    issued_at: datetime
    expires_at: datetime | None = None
    scopes: tuple[str, ...] = ()

    def is_expired(self, now: datetime | None = None) -> bool:
        """Tokens without a declared lifetime never report as expired."""
        if self.expires_at is None:
            return False
        return (now or datetime.now(UTC)) >= self.expires_at


class RefreshToken(BaseModel):
    """Refresh credential. Kept with the session, never used by this client."""

    model_config = ConfigDict(frozen=True)

    token_value: str = Field(repr=False)
    issued_at: datetime


class Principal(BaseModel):
    """Identity established by a principal resolver after the token exchange."""

    model_config = ConfigDict(frozen=True)

    name: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class AuthenticatedSession(BaseModel):
    """
    Outcome of a completed flow.

    ``authenticated`` is True only once a principal has been attached; the
    tokens alone do not establish identity.
    """

    model_config = ConfigDict(frozen=True)

    principal: Principal | None = None
    authorities: frozenset[str] = frozenset()
    configuration: ClientConfiguration
    access_token: AccessToken
    refresh_token: RefreshToken | None = None

    @property
    def authenticated(self) -> bool:
        return self.principal is not None

    @classmethod
    def from_token_response(
        cls,
        configuration: ClientConfiguration,
        attributes: TokenResponseAttributes,
        issued_at: datetime | None = None,
    ) -> "AuthenticatedSession":
        """
        Build the unauthenticated session for a successful exchange.

        Args:
            configuration: Client the flow ran against
            attributes: Normalized token endpoint result
            issued_at: Issue time (defaults to now, UTC)

        Returns:
            AuthenticatedSession without principal or authorities
        """
        issued_at = issued_at or datetime.now(UTC)
        expires_at = None
        if attributes.expires_in > 0:
            expires_at = issued_at + timedelta(seconds=attributes.expires_in)

        access_token = AccessToken(
            token_type=attributes.token_type,
            token_value=attributes.access_token,
            issued_at=issued_at,
            expires_at=expires_at,
            scopes=attributes.scopes,
        )
        refresh_token = None
        if attributes.refresh_token:
            refresh_token = RefreshToken(
                token_value=attributes.refresh_token, issued_at=issued_at
            )

        return cls(
            configuration=configuration,
            access_token=access_token,
            refresh_token=refresh_token,
        )

    def with_principal(
        self, principal: Principal, authorities: frozenset[str] | set[str] = frozenset()
    ) -> "AuthenticatedSession":
        """Return a copy carrying ``principal``; this session is left untouched."""
        return self.model_copy(
            update={"principal": principal, "authorities": frozenset(authorities)}
        )
