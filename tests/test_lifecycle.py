"""
Tests for application lifecycle events.
"""

import os
from dataclasses import replace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from codegrant.oauth.config import get_oauth2_settings
from tests.conftest import app, get_client_repository


@pytest.fixture
def fresh_repository():
    """Rebuild the client repository from the environment for each test."""
    get_client_repository.cache_clear()
    yield
    get_client_repository.cache_clear()


class TestApplicationLifecycle:
    """Test application lifecycle events."""

    def test_startup_registers_configured_clients(self, fresh_repository):
        """Test startup builds the registry from OAUTH2_CLIENT_* variables."""
        env = {
            "OAUTH2_CLIENT_GOOGLE_CLIENT_ID": "google-id",
            "OAUTH2_CLIENT_GOOGLE_CLIENT_SECRET": "google-secret",
        }

        with patch.dict(os.environ, env):
            with TestClient(app) as test_client:
                response = test_client.get("/oauth2/clients")

        assert response.status_code == 200
        assert [c["id"] for c in response.json()] == ["google"]

    def test_startup_fails_without_clients(self, fresh_repository):
        """Test the application refuses to start with no usable client."""
        env = {
            "OAUTH2_CLIENT_GOOGLE_CLIENT_ID": "",
            "OAUTH2_CLIENT_GITHUB_CLIENT_ID": "",
        }

        with patch.dict(os.environ, env):
            with pytest.raises(ValueError, match="At least one client configuration"):
                with TestClient(app):
                    pass

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"client_library": "autlib"}, "OAUTH2_CLIENT_LIBRARY"),
            ({"state_ttl_seconds": -5}, "OAUTH2_STATE_TTL_SECONDS"),
            ({"state_ttl_seconds": 0}, "OAUTH2_STATE_TTL_SECONDS"),
            ({"token_timeout_seconds": 0}, "OAUTH2_TOKEN_TIMEOUT_SECONDS"),
        ],
    )
    def test_startup_fails_on_invalid_settings(self, fresh_repository, overrides, message):
        """Test invalid settings stop startup before the registry is built."""
        invalid = replace(get_oauth2_settings(), **overrides)

        with patch("codegrant.main.get_oauth2_settings", return_value=invalid):
            with pytest.raises(ValueError, match=message):
                with TestClient(app):
                    pass

        assert get_client_repository.cache_info().currsize == 0
