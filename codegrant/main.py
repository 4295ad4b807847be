"""
FastAPI application acting as an OAuth2 relying party.

This module wires dependencies and configures the application.
Flow logic is in codegrant/core, adapters in codegrant/infrastructure.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime

# Configure logging FIRST, before other local imports
from codegrant.logging_config import setup_global_logging

setup_global_logging()

from dotenv import load_dotenv  # noqa: E402
from fastapi import FastAPI, Request, status  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from starlette.middleware.sessions import SessionMiddleware  # noqa: E402

from codegrant.core.exceptions import (  # noqa: E402
    AuthorizationDeniedError,
    PrincipalResolutionError,
    StateMismatchError,
    TokenExchangeError,
    UnknownConfigurationError,
)
from codegrant.oauth.config import get_oauth2_settings  # noqa: E402
from codegrant.oauth.dependencies import get_client_repository  # noqa: E402
from codegrant.oauth.router import create_router  # noqa: E402

load_dotenv()

logger = logging.getLogger(__name__)


# ============================================================================
# Application Lifecycle
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Validates settings and builds the client registry at startup so a
    missing or invalid configuration stops the process instead of failing
    requests.
    """
    logger.info("Application starting up...")
    get_oauth2_settings().validate()
    repository = get_client_repository()
    logger.info(f"OAuth2 clients available: {repository.ids()}")
    yield
    logger.info("Shutting down application...")


settings = get_oauth2_settings()

app = FastAPI(
    title="codegrant",
    description="OAuth2 authorization code grant relying party",
    version="1.0.0",
    lifespan=lifespan,
)

# Session middleware carries the flow key between the two legs of a flow
if not settings.session_secret_key:
    raise ValueError("SESSION_SECRET_KEY is not set in the environment.")
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret_key,
    max_age=int(os.getenv("SESSION_MAX_AGE_SECONDS", str(60 * 60 * 24 * 14))),
    same_site="lax",
    https_only=settings.base_url.startswith("https://"),
)


# ============================================================================
# Centralized Exception Handlers
# ============================================================================


def _error_response(status_code: int, message: str, **fields) -> JSONResponse:
    content = {"status": "error", "message": message}
    content.update({k: v for k, v in fields.items() if v is not None})
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(UnknownConfigurationError)
async def unknown_configuration_handler(
    request: Request, exc: UnknownConfigurationError
):
    """Unknown client id on the initiate path. Returns 404, no flow is started."""
    return _error_response(
        status.HTTP_404_NOT_FOUND,
        f"Unknown OAuth2 client: {exc.configuration_id}",
    )


@app.exception_handler(StateMismatchError)
async def state_mismatch_handler(request: Request, exc: StateMismatchError):
    """
    Forged, replayed, expired or malformed callbacks.

    Returns 401 with one message for every variant so the response never
    reveals which check failed.
    """
    return _error_response(
        status.HTTP_401_UNAUTHORIZED,
        "Authorization response could not be verified",
    )


@app.exception_handler(AuthorizationDeniedError)
async def authorization_denied_handler(
    request: Request, exc: AuthorizationDeniedError
):
    """Authorization server reported an error. Returns 403 with the remote code."""
    return _error_response(
        status.HTTP_403_FORBIDDEN,
        "Authorization was denied",
        error=exc.error_code,
        error_description=exc.description,
    )


@app.exception_handler(TokenExchangeError)
async def token_exchange_handler(request: Request, exc: TokenExchangeError):
    """Code could not be exchanged for tokens. Returns 401 with the remote code."""
    logger.error(
        f"Token exchange failed: {exc}",
        extra={"error": exc.error_code, "retryable": exc.retryable},
    )
    return _error_response(
        status.HTTP_401_UNAUTHORIZED,
        "OAuth authorization failed",
        error=exc.error_code,
        error_description=exc.description,
        retryable=exc.retryable,
    )


@app.exception_handler(PrincipalResolutionError)
async def principal_resolution_handler(
    request: Request, exc: PrincipalResolutionError
):
    """Tokens were issued but no identity could be established. Returns 401."""
    logger.error(f"Principal resolution failed: {exc}")
    return _error_response(
        status.HTTP_401_UNAUTHORIZED,
        "OAuth authorization failed",
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors. Returns 422 Unprocessable Entity."""
    logger.error(f"Validation error: {str(exc)}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "message": "Invalid request",
            "details": exc.errors(),
        },
    )


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "codegrant",
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(create_router(settings))


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8080))
    uvicorn.run(app, host="0.0.0.0", port=port)
