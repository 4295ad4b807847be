"""
OAuth2 API response models.

Pydantic models for the relying party endpoints. Token values are never
part of any response.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from codegrant.core.domain import AuthenticatedSession


class SessionSummary(BaseModel):
    """Response model describing the current authenticated session."""

    configuration_id: str = Field(description="Client the session was obtained from")
    authenticated: bool = Field(description="True once a principal is attached")
    principal: str | None = Field(default=None, description="Principal name")
    authorities: list[str] = Field(default_factory=list, description="Granted authorities")
    scopes: list[str] = Field(default_factory=list, description="Scopes granted by the server")
    token_type: str = Field(description="Access token type")
    expires_at: datetime | None = Field(default=None, description="Access token expiry")
    has_refresh_token: bool = Field(description="Whether a refresh token was issued")

    @classmethod
    def from_session(cls, session: AuthenticatedSession) -> "SessionSummary":
        return cls(
            configuration_id=session.configuration.id,
            authenticated=session.authenticated,
            principal=session.principal.name if session.principal else None,
            authorities=sorted(session.authorities),
            scopes=list(session.access_token.scopes),
            token_type=session.access_token.token_type.value,
            expires_at=session.access_token.expires_at,
            has_refresh_token=session.refresh_token is not None,
        )


class ClientSummary(BaseModel):
    """Response model for a registered client."""

    id: str = Field(description="Registration identifier")
    name: str | None = Field(default=None, description="Display name")
    authorization_url: str = Field(description="Path that starts the flow")
