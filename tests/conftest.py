"""
Shared test configuration and fixtures.
"""

import os
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from codegrant.clients.repository import InMemoryClientConfigurationRepository
from codegrant.core.domain import ClientConfiguration
from codegrant.infrastructure.state_store import (
    InMemoryAuthorizationRequestStateStore,
    InMemorySecurityContextRepository,
)

# Settings are read once, at import time of the app
with patch.dict(
    os.environ,
    {
        "SESSION_SECRET_KEY": "test-secret",
        "BASE_URL": "http://testserver",
        "OAUTH2_CLIENTS": "google,github",
        "OAUTH2_SUCCESS_URL": "/dashboard",
    },
):
    from codegrant.main import app
    from codegrant.oauth.dependencies import (
        get_client_repository,
        get_security_context,
        get_state_store,
    )


GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GITHUB_TOKEN_URI = "https://github.com/login/oauth/access_token"


@pytest.fixture
def google_configuration():
    """Google client registration."""
    return ClientConfiguration(
        id="google",
        client_id="google-client-id",
        client_secret="google-client-secret",
        authorization_uri="https://accounts.google.com/o/oauth2/v2/auth",
        token_uri=GOOGLE_TOKEN_URI,
        redirect_uri="http://testserver/oauth2/callback/google",
        scopes=("openid", "email", "profile"),
        client_name="Google",
    )


@pytest.fixture
def github_configuration():
    """GitHub client registration."""
    return ClientConfiguration(
        id="github",
        client_id="github-client-id",
        client_secret="github-client-secret",
        authorization_uri="https://github.com/login/oauth/authorize",
        token_uri=GITHUB_TOKEN_URI,
        redirect_uri="http://testserver/oauth2/callback/github",
        scopes=("read:user",),
        client_name="GitHub",
    )


@pytest.fixture
def client_repository(google_configuration, github_configuration):
    """Repository holding the Google and GitHub registrations."""
    return InMemoryClientConfigurationRepository(
        [google_configuration, github_configuration]
    )


@pytest.fixture
def state_store():
    """Fresh authorization request state store."""
    return InMemoryAuthorizationRequestStateStore()


@pytest.fixture
def security_context():
    """Fresh security context repository."""
    return InMemorySecurityContextRepository()


@pytest.fixture
def token_response_body():
    """Token endpoint success body."""
    return {
        "access_token": "abc",
        "token_type": "bearer",
        "expires_in": 3600,
        "scope": "read write",
        "refresh_token": "r1",
    }


@pytest.fixture
def client(client_repository, state_store, security_context):
    """
    Test client with isolated stores.

    Each test gets its own cookie jar, state store and security context.
    """
    app.dependency_overrides[get_client_repository] = lambda: client_repository
    app.dependency_overrides[get_state_store] = lambda: state_store
    app.dependency_overrides[get_security_context] = lambda: security_context

    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.pop(get_client_repository, None)
    app.dependency_overrides.pop(get_state_store, None)
    app.dependency_overrides.pop(get_security_context, None)
