"""Test suite for the profile endpoints."""

import pytest

from conftest import bearer


@pytest.mark.asyncio
async def test_get_profile_with_statistics(client, signup, send):
    """Test the profile payload and usage statistics."""
    token, user = await signup()
    _, events = await send(token, "First")
    await send(token, "Second", events[1]["data"])
    await send(token, "Another thread")

    response = await client.get("/user/profile", headers=bearer(token))
    assert response.status_code == 200
    data = response.json()

    profile = data["user"]
    assert profile["id"] == user["id"]
    assert profile["email"] == "ada@example.com"
    assert profile["preferences"] == {"darkMode": False, "notifications": True}
    assert profile["plan"] == "Free"
    assert profile["status"] == "active"
    assert profile["memberSince"] is not None
    assert "password" not in profile and "passwordHash" not in profile

    statistics = data["statistics"]
    assert statistics["totalConversations"] == 2
    assert statistics["totalMessages"] == 6
    assert statistics["lastActiveAt"] is not None


@pytest.mark.asyncio
async def test_update_profile(client, signup):
    """Test field updates, bio truncation and preference merging."""
    token, _ = await signup()

    response = await client.put(
        "/user/profile",
        json={
            "firstName": "  Augusta ",
            "lastName": "King",
            "avatarUrl": " https://example.com/a.png ",
            "bio": "b" * 450,
            "email": "  Augusta@Example.COM ",
            "preferences": {"darkMode": True},
        },
        headers=bearer(token),
    )
    assert response.status_code == 200
    profile = response.json()["user"]
    assert profile["firstName"] == "Augusta"
    assert profile["name"] == "Augusta King"
    assert profile["avatarUrl"] == "https://example.com/a.png"
    assert len(profile["bio"]) == 400
    assert profile["email"] == "augusta@example.com"
    assert profile["preferences"] == {"darkMode": True, "notifications": True}

    response = await client.put(
        "/user/profile", json={"preferences": {"notifications": False}}, headers=bearer(token)
    )
    assert response.json()["user"]["preferences"] == {"darkMode": True, "notifications": False}

    response = await client.post(
        "/auth/login", json={"email": "augusta@example.com", "password": "secret123"}
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_update_profile_rejects_taken_email(client, signup):
    """Test that another user's email is refused and the original kept."""
    await signup(email="taken@example.com")
    token, _ = await signup(email="mine@example.com")

    response = await client.put(
        "/user/profile", json={"email": "TAKEN@example.com"}, headers=bearer(token)
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Email is already in use"

    response = await client.get("/user/profile", headers=bearer(token))
    assert response.json()["user"]["email"] == "mine@example.com"

    response = await client.put(
        "/user/profile", json={"email": "not an email"}, headers=bearer(token)
    )
    assert response.status_code == 400

    response = await client.put("/user/profile", json={"plan": "Pro"}, headers=bearer(token))
    assert response.status_code == 400
