from datetime import time

import pytest
from httpx import AsyncClient


async def _at_risk_student(factory):
    student = await factory.user("Asha Verma", "asha@example.edu")
    school_class = await factory.school_class("CS101 Lecture", day_of_week=6, start_time=time(9))
    await factory.enroll(student, school_class)
    await factory.history(student, school_class, present=2, total=10)
    return student, school_class


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_requires_bearer_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/notifications")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_generate_then_list(client: AsyncClient, factory, services, auth_headers) -> None:
    student, _ = await _at_risk_student(factory)
    headers = auth_headers(student)

    response = await client.post("/api/v1/notifications/generate", headers=headers)
    await services.orchestrator.drain()

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Generated 1 notifications"
    assert data["stats"][0]["percentage"] == 20
    assert data["notifications"][0]["type"] == "critical"

    listed = (await client.get("/api/v1/notifications", headers=headers)).json()
    assert listed["unreadCount"] == 1
    assert len(listed["notifications"]) == 1

    count = (await client.get("/api/v1/notifications/unread-count", headers=headers)).json()
    assert count == {"success": True, "unreadCount": 1}


@pytest.mark.asyncio
async def test_read_mark_all_and_delete(client: AsyncClient, factory, services, auth_headers) -> None:
    student, _ = await _at_risk_student(factory)
    headers = auth_headers(student)
    generated = (await client.post("/api/v1/notifications/generate", headers=headers)).json()
    notification_id = generated["notifications"][0]["id"]

    read = await client.patch(f"/api/v1/notifications/{notification_id}/read", headers=headers)
    assert read.status_code == 200
    assert read.json()["notification"]["is_read"] is True

    all_read = await client.patch("/api/v1/notifications/mark-all-read", headers=headers)
    assert all_read.json()["count"] == 0

    deleted = await client.delete(f"/api/v1/notifications/{notification_id}", headers=headers)
    assert deleted.status_code == 200
    missing = await client.delete(f"/api/v1/notifications/{notification_id}", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_other_students_notifications_are_hidden(client: AsyncClient, factory, auth_headers) -> None:
    student, _ = await _at_risk_student(factory)
    other = await factory.user("Kiran Rao", "kiran@example.edu")
    generated = (await client.post("/api/v1/notifications/generate", headers=auth_headers(student))).json()
    notification_id = generated["notifications"][0]["id"]

    response = await client.patch(f"/api/v1/notifications/{notification_id}/read", headers=auth_headers(other))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_send_weekly_is_admin_only(client: AsyncClient, factory, auth_headers) -> None:
    student, _ = await _at_risk_student(factory)
    response = await client.post("/api/v1/notifications/send-weekly", headers=auth_headers(student))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_send_weekly_with_options(client: AsyncClient, factory, transport, auth_headers) -> None:
    await _at_risk_student(factory)
    admin = await factory.user("Admin User", "admin@example.edu", role="ADMIN")

    response = await client.post(
        "/api/v1/notifications/send-weekly",
        headers=auth_headers(admin),
        json={"test_recipients": ["asha@example.edu"]},
    )

    assert response.status_code == 200
    summary = response.json()["summary"]
    assert (summary["sent"], summary["skipped"], summary["failed"]) == (1, 0, 0)
    assert transport.sent[0].to == "asha@example.edu"


@pytest.mark.asyncio
async def test_send_weekly_conflict_while_running(client: AsyncClient, factory, services, auth_headers) -> None:
    admin = await factory.user("Admin User", "admin@example.edu", role="ADMIN")
    services.weekly_campaign._running = True

    response = await client.post("/api/v1/notifications/send-weekly", headers=auth_headers(admin))

    services.weekly_campaign._running = False
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_mark_attendance_triggers_background_check(client: AsyncClient, factory, services, transport, auth_headers) -> None:
    student, school_class = await _at_risk_student(factory)
    headers = auth_headers(student)

    response = await client.post(
        "/api/v1/attendance/mark", headers=headers, json={"class_id": str(school_class.id)}
    )
    await services.orchestrator.drain()

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "present"
    listed = (await client.get("/api/v1/notifications", headers=headers)).json()
    assert listed["unreadCount"] == 1
    assert len(transport.sent) == 1

    again = await client.post("/api/v1/attendance/mark", headers=headers, json={"class_id": str(school_class.id)})
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_mark_attendance_validation(client: AsyncClient, factory, auth_headers) -> None:
    student = await factory.user("Asha Verma", "asha@example.edu")
    other_class = await factory.school_class("MA101 Lecture")
    headers = auth_headers(student)

    missing = await client.post("/api/v1/attendance/mark", headers=headers, json={})
    assert missing.status_code == 400

    not_enrolled = await client.post(
        "/api/v1/attendance/mark", headers=headers, json={"class_id": str(other_class.id)}
    )
    assert not_enrolled.status_code == 403
