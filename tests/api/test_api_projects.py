"""API tests for health, sessions, projects and role assignment.

Tests cover:
- Envelope shape for success and failure
- 401 without a token, with a bad token and for non-members
- Registration issues a usable session token
- Owner-only role assignment (403 otherwise)
- Correlation id header on every response
"""

import uuid
from datetime import timedelta

import pytest

from buildtrack.core.auth import create_access_token

pytestmark = pytest.mark.integration


# ============================================================================
# Health and correlation
# ============================================================================


async def test_health(client):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "buildtrack"}
    assert "x-request-id" in response.headers


async def test_ready_checks_database(client):
    response = await client.get("/api/ready")

    assert response.status_code == 200
    assert response.json()["checks"] == {"database": True}


async def test_custom_request_id_echoed(client):
    response = await client.get("/api/health", headers={"X-Request-ID": "site-visit-42"})
    assert response.headers["x-request-id"] == "site-visit-42"


async def test_unknown_route_has_debug_id(client):
    response = await client.get("/api/no-such-route")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"]["kind"] == "NOT_FOUND"
    assert "debug_id" in body


# ============================================================================
# Sessions
# ============================================================================


async def test_register_and_read_session(client):
    response = await client.post("/api/auth/register", json={"name": "Pat Vendor", "email": "Pat@Example.com"})

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user"]["email"] == "pat@example.com"
    assert data["token_type"] == "bearer"

    session = await client.get("/api/auth/session", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert session.status_code == 200
    assert session.json()["data"]["user"]["name"] == "Pat Vendor"
    assert session.json()["data"]["project_roles"] == []


async def test_register_duplicate_email(client, world):
    response = await client.post("/api/auth/register", json={"name": "Again", "email": "owner@example.com"})

    assert response.status_code == 409
    assert response.json()["error"]["kind"] == "CONFLICT"


async def test_session_lists_project_roles(client, world, auth_headers):
    response = await client.get("/api/auth/session", headers=auth_headers(world.vendor))

    roles = response.json()["data"]["project_roles"]
    assert roles == [{"project_id": str(world.project_id), "project_name": "Warehouse Retrofit", "role": "VENDOR"}]


async def test_missing_token_is_unauthorized(client, project_url):
    response = await client.get(project_url)

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": {"kind": "UNAUTHORIZED", "message": "Missing authorization header"},
    }


async def test_expired_token_is_unauthorized(client, world, project_url):
    token = create_access_token(world.owner.user_id, expires_in=timedelta(seconds=-5))

    response = await client.get(project_url, headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Session expired"


async def test_garbage_token_is_unauthorized(client, project_url):
    response = await client.get(project_url, headers={"Authorization": "Bearer not.a.jwt"})
    assert response.status_code == 401


async def test_non_member_is_unauthorized(client, project_url, project_service):
    stranger = await project_service.create_user("Stranger", "stranger@example.com")
    token = create_access_token(stranger.data.id)

    response = await client.get(project_url, headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


# ============================================================================
# Projects and roles
# ============================================================================


async def test_create_project_makes_caller_owner(client, world, auth_headers):
    response = await client.post(
        "/api/projects", json={"name": "Clinic fit-out", "is_example": True}, headers=auth_headers(world.pmc)
    )

    assert response.status_code == 201
    project = response.json()["data"]
    assert project["status"] == "ONGOING"
    assert project["is_example"] is True

    detail = await client.get(f"/api/projects/{project['id']}", headers=auth_headers(world.pmc))
    assert detail.json()["data"]["role"] == "OWNER"


async def test_project_detail_for_vendor(client, world, auth_headers, project_url):
    response = await client.get(project_url, headers=auth_headers(world.vendor))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["role"] == "VENDOR"
    assert data["permissions"]["can_submit_evidence"] is True
    assert data["permissions"]["can_export_audit_log"] is False
    assert len(data["members"]) == 4


async def test_owner_assigns_role(client, world, auth_headers, project_url):
    response = await client.post(
        f"{project_url}/roles",
        json={"user_id": str(world.viewer.user_id), "role": "PMC"},
        headers=auth_headers(world.owner),
    )

    assert response.status_code == 200
    assert response.json()["data"]["role"] == "PMC"


async def test_pmc_cannot_assign_role(client, world, auth_headers, project_url):
    response = await client.post(
        f"{project_url}/roles",
        json={"user_id": str(world.viewer.user_id), "role": "OWNER"},
        headers=auth_headers(world.pmc),
    )

    assert response.status_code == 403
    assert response.json()["error"]["details"]["required"] == ["OWNER"]


async def test_unknown_role_is_invalid_input(client, world, auth_headers, project_url):
    response = await client.post(
        f"{project_url}/roles",
        json={"user_id": str(uuid.uuid4()), "role": "CONTRACTOR"},
        headers=auth_headers(world.owner),
    )

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "INVALID_INPUT"


async def test_list_projects(client, world, auth_headers):
    await client.post("/api/projects", json={"name": "Clinic fit-out"}, headers=auth_headers(world.viewer))

    response = await client.get("/api/projects", headers=auth_headers(world.viewer))

    assert response.status_code == 200
    listed = {(p["name"], p["role"]) for p in response.json()["data"]}
    assert listed == {("Warehouse Retrofit", "VIEWER"), ("Clinic fit-out", "OWNER")}


async def test_list_projects_requires_token(client):
    response = await client.get("/api/projects")
    assert response.status_code == 401
