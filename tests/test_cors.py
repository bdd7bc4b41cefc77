"""Tests for CORS configuration and the response header middleware."""

from fastapi import FastAPI, Response
from fastapi.testclient import TestClient

from server.security import get_allowed_origins, get_cors_config, setup_api_security


def make_app(origins=None):
    app = FastAPI()
    setup_api_security(app, origins)

    @app.get("/login")
    def login(response: Response):
        response.set_cookie("session", "abc")
        response.set_cookie("theme", "dark")
        return {"ok": True}

    return app


def test_repeated_headers_survive_security_headers():
    response = TestClient(make_app()).get("/login")

    cookies = [value for name, value in response.headers.multi_items() if name == "set-cookie"]
    assert len(cookies) == 2
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"


def test_origins_from_environment(monkeypatch):
    monkeypatch.setenv("SUPPORTBOT_ALLOWED_ORIGINS", "https://shop.example.com, https://admin.example.com")
    assert get_allowed_origins() == ["https://shop.example.com", "https://admin.example.com"]

    monkeypatch.delenv("SUPPORTBOT_ALLOWED_ORIGINS")
    assert get_allowed_origins() == ["*"]


def test_credentials_only_with_explicit_origins():
    assert get_cors_config(["*"])["allow_credentials"] is False
    assert get_cors_config(["https://shop.example.com"])["allow_credentials"] is True
