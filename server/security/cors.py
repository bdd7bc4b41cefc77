"""CORS and security headers for the SupportBot API.

The chat widget is embedded on customer sites, so the widget endpoints are
reachable from any origin unless SUPPORTBOT_ALLOWED_ORIGINS narrows them.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)


def get_allowed_origins() -> List[str]:
    """Allowed origins from SUPPORTBOT_ALLOWED_ORIGINS (comma separated), default any."""
    env_origins = os.getenv("SUPPORTBOT_ALLOWED_ORIGINS", "")
    origins = [origin.strip() for origin in env_origins.split(",") if origin.strip()]
    if origins:
        logger.info(f"Using configured CORS origins: {origins}")
        return origins
    return ["*"]


def get_cors_config(origins: Optional[List[str]] = None) -> dict:
    origins = origins or get_allowed_origins()
    return {
        "allow_origins": origins,
        # Browsers reject credentials with a wildcard origin.
        "allow_credentials": "*" not in origins,
        "allow_methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        "allow_headers": ["Accept", "Content-Type", "Authorization", "X-Requested-With"],
        "max_age": 600,
    }


class SecurityHeadersMiddleware:
    """Add security headers to all responses."""

    HEADERS = [
        (b"x-content-type-options", b"nosniff"),
        (b"referrer-policy", b"strict-origin-when-cross-origin"),
    ]

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                present = {name.lower() for name, _ in headers}
                headers.extend(h for h in self.HEADERS if h[0] not in present)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


def setup_api_security(app: FastAPI, custom_origins: Optional[List[str]] = None) -> None:
    """Install CORS and security headers middleware."""
    config = get_cors_config(custom_origins)
    app.add_middleware(CORSMiddleware, **config)
    app.add_middleware(SecurityHeadersMiddleware)
    logger.info(f"CORS configured with origins: {config['allow_origins']}")
