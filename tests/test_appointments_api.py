"""HTTP tests for the appointment and audit endpoints."""

import pytest
from httpx import AsyncClient

from tests.fakes import PATIENT_ID, PROFESSIONAL_ID, SERVICE_ID, auth_headers_for

API = "/api/v1"


def booking_json(start: str = "2024-01-15T09:00:00Z", **overrides) -> dict:
    body = {
        "patient_id": str(PATIENT_ID),
        "professional_id": str(PROFESSIONAL_ID),
        "service_id": str(SERVICE_ID),
        "start_time": start,
    }
    body.update(overrides)
    return body


async def create(client: AsyncClient, actor, **overrides) -> dict:
    response = await client.post(
        f"{API}/appointments/", json=booking_json(**overrides), headers=auth_headers_for(actor)
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get(f"{API}/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_create_appointment(client: AsyncClient, reception) -> None:
    data = await create(client, reception)

    assert data["status"] == "pending"
    assert data["duration"] == 50
    assert data["end_time"].startswith("2024-01-15T09:50:00")
    assert data["patient_info"]["name"] == "Lucía Martín"


@pytest.mark.asyncio
async def test_overlap_returns_conflict_set(client: AsyncClient, reception) -> None:
    first = await create(client, reception, end_time="2024-01-15T10:00:00Z")

    response = await client.post(
        f"{API}/appointments/",
        json=booking_json("2024-01-15T09:30:00Z", end_time="2024-01-15T10:30:00Z"),
        headers=auth_headers_for(reception),
    )

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "ConflictException"
    assert body["resource"] == "professional"
    assert [c["id"] for c in body["conflicts"]] == [first["id"]]


@pytest.mark.asyncio
async def test_end_before_start_is_rejected(client: AsyncClient, reception) -> None:
    response = await client.post(
        f"{API}/appointments/",
        json=booking_json(end_time="2024-01-15T08:00:00Z"),
        headers=auth_headers_for(reception),
    )

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_cancel_too_close_reports_reason(client: AsyncClient, reception) -> None:
    created = await create(client, reception, start="2024-01-10T09:00:00Z")

    response = await client.post(
        f"{API}/appointments/{created['id']}/cancel",
        json={"reason": "Stuck in traffic"},
        headers=auth_headers_for(reception),
    )

    assert response.status_code == 422
    assert response.json()["reason"] == "too_close_to_start"


@pytest.mark.asyncio
async def test_cancel_and_reschedule(client: AsyncClient, reception) -> None:
    created = await create(client, reception)
    headers = auth_headers_for(reception)

    moved = await client.post(
        f"{API}/appointments/{created['id']}/reschedule",
        json={"new_start_time": "2024-01-16T11:00:00Z", "reason": "Work meeting"},
        headers=headers,
    )
    assert moved.status_code == 200
    assert moved.json()["rescheduling"]["rescheduling_count"] == 1

    cancelled = await client.post(
        f"{API}/appointments/{created['id']}/cancel",
        json={"reason": "Feeling better", "refund_amount": "45.00"},
        headers=headers,
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert cancelled.json()["cancellation"]["refund_processed"] is True


@pytest.mark.asyncio
async def test_patient_cannot_book(client: AsyncClient, patient) -> None:
    response = await client.post(
        f"{API}/appointments/", json=booking_json(), headers=auth_headers_for(patient)
    )

    assert response.status_code == 403
    assert response.json()["error"] == "ForbiddenException"


@pytest.mark.asyncio
async def test_invalid_token_is_unauthorized(client: AsyncClient) -> None:
    response = await client.get(
        f"{API}/appointments/", headers={"Authorization": "Bearer not-a-token"}
    )

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_list_is_scoped_for_professionals(
    client: AsyncClient, reception, professional, other_professional
) -> None:
    await create(client, reception)

    own = await client.get(f"{API}/appointments/", headers=auth_headers_for(professional))
    foreign = await client.get(f"{API}/appointments/", headers=auth_headers_for(other_professional))

    assert own.json()["total"] == 1
    assert foreign.json()["total"] == 0


@pytest.mark.asyncio
async def test_delete_then_audit_logs(client: AsyncClient, reception, admin) -> None:
    created = await create(client, reception)

    forbidden = await client.delete(
        f"{API}/appointments/{created['id']}", headers=auth_headers_for(reception)
    )
    deleted = await client.delete(
        f"{API}/appointments/{created['id']}", headers=auth_headers_for(admin)
    )
    missing = await client.get(
        f"{API}/appointments/{created['id']}", headers=auth_headers_for(reception)
    )
    logs = await client.get(
        f"{API}/appointments/{created['id']}/audit-logs", headers=auth_headers_for(admin)
    )

    assert forbidden.status_code == 403
    assert deleted.status_code == 204
    assert missing.status_code == 404
    assert logs.status_code == 200
    assert [item["action"] for item in logs.json()["items"]] == ["created", "deleted"]


@pytest.mark.asyncio
async def test_compliance_report_is_admin_only(client: AsyncClient, reception, admin) -> None:
    await create(client, reception)
    params = {"start": "2024-01-01T00:00:00Z", "end": "2024-02-01T00:00:00Z"}

    denied = await client.get(
        f"{API}/audit-logs/compliance-report", params=params, headers=auth_headers_for(reception)
    )
    report = await client.get(
        f"{API}/audit-logs/compliance-report", params=params, headers=auth_headers_for(admin)
    )

    assert denied.status_code == 403
    assert report.status_code == 200
    assert report.json()[0]["action"] == "created"
    assert report.json()[0]["count"] == 1
