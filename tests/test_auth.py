"""Test suite for sign-up, login and token verification."""

import time

import pytest
from jose import jwt

from aley_chat.domain.errors import InvalidToken, Unauthenticated
from aley_chat.domain.models import Identity
from aley_chat.services.auth import TokenService

from conftest import bearer


@pytest.mark.asyncio
async def test_signup_then_login_yields_same_user(client, signup):
    """Test that a fresh account can log in and its token verifies to the same id."""
    _, user = await signup(email="Grace@Example.com", name="Grace Hopper", password="cobol1959")
    assert user["email"] == "grace@example.com"
    assert "password" not in user and "passwordHash" not in user

    response = await client.post(
        "/auth/login", json={"email": "grace@example.com", "password": "cobol1959"}
    )
    assert response.status_code == 200
    token = response.json()["token"]

    response = await client.get("/auth/verify", headers=bearer(token))
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["user"]["id"] == user["id"]
    assert data["user"]["email"] == "grace@example.com"


@pytest.mark.asyncio
async def test_signup_validation(client, signup):
    """Test signup rejections: short password, missing fields, duplicate email."""
    response = await client.post(
        "/auth/signup", json={"name": "Ada", "email": "ada@example.com", "password": "12345"}
    )
    assert response.status_code == 400
    assert "at least 6" in response.json()["error"]

    response = await client.post("/auth/signup", json={"email": "ada@example.com"})
    assert response.status_code == 400

    response = await client.post(
        "/auth/signup", json={"name": "Ada", "email": "not-an-email", "password": "secret123"}
    )
    assert response.status_code == 400

    await signup(email="ada@example.com")
    response = await client.post(
        "/auth/signup", json={"name": "Ada Two", "email": "ADA@example.com", "password": "secret123"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "User with this email already exists"


@pytest.mark.asyncio
async def test_login_with_wrong_password(client, signup):
    """Test that bad credentials are rejected with 401."""
    await signup()
    response = await client.post(
        "/auth/login", json={"email": "ada@example.com", "password": "wrong-password"}
    )
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid email or password"

    response = await client.post(
        "/auth/login", json={"email": "nobody@example.com", "password": "secret123"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_protected_endpoints_require_token(client):
    """Test missing, malformed and forged bearer tokens."""
    response = await client.get("/chat/conversations")
    assert response.status_code == 401
    assert response.json()["error"] == "No token provided"

    response = await client.get("/chat/conversations", headers={"Authorization": "Token abc"})
    assert response.status_code == 401
    assert response.json()["error"] == "No token provided"

    forged = TokenService("another-secret").issue(
        Identity(user_id="u1", email="a@b.co", name="Eve")
    )
    response = await client.get("/user/profile", headers=bearer(forged))
    assert response.status_code == 401
    assert response.json()["error"] == "Invalid or expired token"

    response = await client.get("/auth/verify", headers=bearer("not.a.token"))
    assert response.status_code == 401


def test_token_round_trip_and_expiry():
    """Test token claims, the seven-day lifetime and expiry rejection."""
    tokens = TokenService("secret")
    identity = Identity(user_id="user-1", email="ada@example.com", name="Ada")
    token = tokens.issue(identity)

    assert tokens.verify(token) == identity
    claims = jwt.get_unverified_claims(token)
    assert claims["userId"] == "user-1"
    assert abs(claims["exp"] - (time.time() + 7 * 24 * 3600)) < 60

    expired = jwt.encode(
        {"userId": "user-1", "email": "ada@example.com", "name": "Ada", "exp": int(time.time()) - 10},
        "secret",
        algorithm="HS256",
    )
    with pytest.raises(InvalidToken):
        tokens.verify(expired)

    missing_claims = jwt.encode({"exp": int(time.time()) + 60}, "secret", algorithm="HS256")
    with pytest.raises(InvalidToken):
        tokens.verify(missing_claims)

    with pytest.raises(Unauthenticated):
        tokens.verify_header(None)
    with pytest.raises(Unauthenticated):
        tokens.verify_header("Basic Zm9vOmJhcg==")
