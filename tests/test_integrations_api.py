from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient

from app.api.v1.integrations.service import encode_state
from app.core.models import Integration
from app.db.session import utcnow

BASE = "/api/v1/integrations/google-classroom"


async def _connected(factory, user):
    factory.db.add(
        Integration(
            user_id=user.id,
            platform="google_classroom",
            access_token="stored-access",
            refresh_token="refresh-1",
            token_expiry=utcnow() + timedelta(hours=1),
            is_active=True,
        )
    )
    await factory.db.commit()


@pytest.mark.asyncio
async def test_auth_url_carries_user_state(client: AsyncClient, factory, auth_headers) -> None:
    user = await factory.user()

    response = await client.get(f"{BASE}/auth", headers=auth_headers(user))

    assert response.status_code == 200
    query = parse_qs(urlparse(response.json()["authUrl"]).query)
    assert query["state"][0]
    assert query["access_type"] == ["offline"]


@pytest.mark.asyncio
async def test_callback_connects_and_redirects(client: AsyncClient, factory, auth_headers) -> None:
    user = await factory.user()

    response = await client.get(f"{BASE}/callback", params={"code": "abc", "state": encode_state(user.id)})

    assert response.status_code == 307
    assert response.headers["location"] == "http://localhost:5173/student?feature=integrations&status=connected"
    status = (await client.get(f"{BASE}/status", headers=auth_headers(user))).json()
    assert status["connected"] is True
    assert status["platform"] == "google_classroom"
    assert status["lastSynced"] is None


@pytest.mark.asyncio
async def test_callback_error_redirects(client: AsyncClient) -> None:
    denied = await client.get(f"{BASE}/callback", params={"error": "access_denied"})
    assert denied.headers["location"].endswith("&error=access_denied")

    bad_state = await client.get(f"{BASE}/callback", params={"code": "abc", "state": "garbage"})
    assert bad_state.headers["location"].endswith("&error=invalid_state")


@pytest.mark.asyncio
async def test_status_when_never_connected(client: AsyncClient, factory, auth_headers) -> None:
    user = await factory.user()
    response = await client.get(f"{BASE}/status", headers=auth_headers(user))
    assert response.json() == {"connected": False, "platform": "google_classroom"}


@pytest.mark.asyncio
async def test_sync_not_connected_returns_404_message(client: AsyncClient, factory, auth_headers) -> None:
    user = await factory.user()
    response = await client.post(f"{BASE}/sync", headers=auth_headers(user))
    assert response.status_code == 404
    assert response.json() == {"message": "Google Classroom not connected"}


@pytest.mark.asyncio
async def test_sync_then_list(client: AsyncClient, factory, auth_headers) -> None:
    user = await factory.user()
    await _connected(factory, user)
    headers = auth_headers(user)

    response = await client.post(f"{BASE}/sync", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Sync completed", "coursesCount": 2, "assignmentsCount": 3}
    courses = (await client.get(f"{BASE}/courses", headers=headers)).json()
    assert [c["name"] for c in courses["courses"]] == ["Chemistry", "Physics"]
    assignments = (await client.get(f"{BASE}/assignments", headers=headers)).json()
    assert assignments["success"] is True
    assert assignments["assignments"][-1]["due_date"] is None


@pytest.mark.asyncio
async def test_sync_failure_returns_500_with_error(client: AsyncClient, factory, google, auth_headers) -> None:
    google.refresh_fails = True
    user = await factory.user()
    factory.db.add(
        Integration(
            user_id=user.id,
            platform="google_classroom",
            access_token="old",
            refresh_token="refresh-1",
            token_expiry=utcnow() - timedelta(minutes=5),
            is_active=True,
        )
    )
    await factory.db.commit()

    response = await client.post(f"{BASE}/sync", headers=auth_headers(user))

    assert response.status_code == 500
    body = response.json()
    assert body["message"] == "Failed to sync Google Classroom"
    assert "invalid_grant" in body["error"]


@pytest.mark.asyncio
async def test_disconnect(client: AsyncClient, factory, auth_headers) -> None:
    user = await factory.user()
    await _connected(factory, user)
    headers = auth_headers(user)

    response = await client.delete(f"{BASE}/disconnect", headers=headers)
    assert response.status_code == 200

    status = (await client.get(f"{BASE}/status", headers=headers)).json()
    assert status["connected"] is False
    assert status["isActive"] is False

    again = await client.delete(f"{BASE}/disconnect", headers=headers)
    assert again.status_code == 404
