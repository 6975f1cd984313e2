"""Tests for Spotify OAuth PKCE flow (app/auth.py)."""

from __future__ import annotations

import json
import time
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.auth import _generate_code_challenge, _generate_code_verifier, get_valid_token
from app.db import close_db, init_db
from app.main import app


@pytest.fixture(autouse=True)
def _use_tmp_db(monkeypatch, tmp_path):
    """Use a temp database for every test."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "test_client_id")
    monkeypatch.setenv("SECRET_KEY", "test_secret")
    from app.config import get_settings
    get_settings.cache_clear()


@pytest.fixture
async def db_with_user():
    """Init DB with one user whose token blob is set per test."""
    db = await init_db()

    async def insert(token_data: dict):
        await db.execute(
            "INSERT INTO users (spotify_user_id, display_name, token_data) VALUES (?, ?, ?)",
            ("test_user", "Test User", json.dumps(token_data)),
        )
        await db.commit()

    yield insert
    await close_db()


client = TestClient(app)


# ---------------------------------------------------------------------------
# PKCE helper tests
# ---------------------------------------------------------------------------

def test_code_verifier_length():
    v = _generate_code_verifier(64)
    assert len(v) == 64


def test_code_verifier_is_url_safe():
    v = _generate_code_verifier()
    # URL-safe base64 chars only
    for ch in v:
        assert ch.isalnum() or ch in "-_"


def test_code_challenge_deterministic():
    v = "test_verifier_value"
    c1 = _generate_code_challenge(v)
    c2 = _generate_code_challenge(v)
    assert c1 == c2
    assert len(c1) > 0


def test_code_challenge_is_base64url():
    c = _generate_code_challenge("hello_world")
    for ch in c:
        assert ch.isalnum() or ch in "-_"
    # No padding
    assert "=" not in c


# ---------------------------------------------------------------------------
# /login and /authenticate
# ---------------------------------------------------------------------------

def test_login_page_renders():
    resp = client.get("/login")
    assert resp.status_code == 200
    assert "Login with Spotify" in resp.text
    assert "/authenticate" in resp.text


def test_authenticate_redirects_to_spotify():
    resp = client.get("/authenticate", follow_redirects=False)
    assert resp.status_code == 307
    location = urlparse(resp.headers["location"])
    params = parse_qs(location.query)
    assert location.netloc == "accounts.spotify.com"
    assert params["client_id"] == ["test_client_id"]
    assert params["code_challenge_method"] == ["S256"]
    assert params["state"][0]
    assert "user-modify-playback-state" in params["scope"][0]


def test_authenticate_fails_without_client_id(monkeypatch):
    monkeypatch.setenv("SPOTIFY_CLIENT_ID", "")
    from app.config import get_settings
    get_settings.cache_clear()

    resp = client.get("/authenticate")
    assert resp.status_code == 500
    assert "SPOTIFY_CLIENT_ID" in resp.json()["detail"]


# ---------------------------------------------------------------------------
# /callback endpoint
# ---------------------------------------------------------------------------

def test_callback_error_param():
    resp = client.get("/callback?error=access_denied")
    assert resp.status_code == 400
    assert "access_denied" in resp.json()["detail"]


def test_callback_missing_code():
    resp = client.get("/callback")
    assert resp.status_code == 400


def test_callback_without_login_has_no_verifier():
    with TestClient(app) as fresh:
        resp = fresh.get("/callback?code=abc&state=xyz")
    assert resp.status_code == 400
    assert "code_verifier" in resp.json()["detail"]


def test_callback_rejects_wrong_state():
    with TestClient(app) as c:
        c.get("/authenticate", follow_redirects=False)
        resp = c.get("/callback?code=abc&state=not-the-state")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid state"


# ---------------------------------------------------------------------------
# /logout endpoint
# ---------------------------------------------------------------------------

def test_logout_redirects():
    resp = client.get("/logout", follow_redirects=False)
    assert resp.status_code == 307
    assert resp.headers["location"] == "/"


# ---------------------------------------------------------------------------
# get_valid_token
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_valid_token_returns_fresh_token(db_with_user):
    await db_with_user({"access_token": "tok", "expires_at": int(time.time()) + 3600})
    assert await get_valid_token("test_user") == "tok"


@pytest.mark.asyncio
async def test_get_valid_token_unknown_user(db_with_user):
    with pytest.raises(HTTPException) as exc_info:
        await get_valid_token("nobody")
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_get_valid_token_refreshes_when_expiring(db_with_user):
    await db_with_user(
        {"access_token": "old", "refresh_token": "r", "expires_at": int(time.time()) + 10}
    )
    with patch(
        "app.auth._refresh_token",
        new_callable=AsyncMock,
        return_value={"access_token": "new", "refresh_token": "r"},
    ) as mock_refresh:
        assert await get_valid_token("test_user") == "new"
    mock_refresh.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_valid_token_expired_without_refresh_token(db_with_user):
    await db_with_user({"access_token": "old", "expires_at": 0})
    with pytest.raises(HTTPException) as exc_info:
        await get_valid_token("test_user")
    assert exc_info.value.status_code == 401
