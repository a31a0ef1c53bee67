"""
Tests for request authentication and the public endpoints.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest


URL = "/api/billing/subscription"


class TestPublicEndpoints:

    async def test_health(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "billflow"}

    async def test_root(self, async_client):
        response = await async_client.get("/")

        assert response.status_code == 200
        assert response.json()["message"] == "Billflow API"


class TestTokenSources:

    async def test_bearer_header(self, async_client, user, auth_headers):
        response = await async_client.get(URL, headers=auth_headers)
        assert response.status_code == 200

    async def test_auth_cookie(self, async_client, user, make_token):
        async_client.cookies.set("auth-token", make_token(user.id))

        response = await async_client.get(URL)

        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(user.id)

    async def test_user_id_claim_accepted(self, async_client, user):
        token = jwt.encode({"userId": str(user.id)}, "test-jwt-secret", algorithm="HS256")

        response = await async_client.get(URL, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(user.id)


class TestRejectedTokens:

    async def test_missing_token(self, async_client, database):
        response = await async_client.get(URL)

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["error"] == "AuthError"

    async def test_garbage_token(self, async_client, database):
        response = await async_client.get(URL, headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    async def test_wrong_secret(self, async_client, user, make_token):
        token = make_token(user.id, secret="another-secret")

        response = await async_client.get(URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_expired_token(self, async_client, user, make_token):
        expired = datetime.now(timezone.utc) - timedelta(minutes=5)
        token = make_token(user.id, exp=int(expired.timestamp()))

        response = await async_client.get(URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    @pytest.mark.parametrize("subject", ["user-123", ""])
    async def test_unusable_subject(self, async_client, database, make_token, subject):
        response = await async_client.get(URL, headers={"Authorization": f"Bearer {make_token(subject)}"})
        assert response.status_code == 401
