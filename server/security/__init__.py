"""CORS and response headers for the SupportBot API."""

from .cors import SecurityHeadersMiddleware, get_allowed_origins, get_cors_config, setup_api_security

__all__ = ["SecurityHeadersMiddleware", "get_allowed_origins", "get_cors_config", "setup_api_security"]
