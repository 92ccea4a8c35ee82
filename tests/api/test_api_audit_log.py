"""API tests for the audit log read path and CSV export."""

import csv
import io

import pytest

from buildtrack.domain.audit import CSV_COLUMNS

pytestmark = pytest.mark.integration


@pytest.fixture
def audit_url(project_url):
    return f"{project_url}/audit-log"


async def test_any_member_reads_audit_log(client, world, auth_headers, audit_url, approved_boq):
    response = await client.get(audit_url, headers=auth_headers(world.viewer))

    assert response.status_code == 200
    page = response.json()["data"]
    assert page["offset"] == 0
    assert page["limit"] == 100
    assert page["total"] == len(page["logs"])
    assert page["logs"][0]["action_type"] == "BOQ_APPROVE"


async def test_filters_and_pagination(client, world, auth_headers, audit_url, approved_boq):
    response = await client.get(
        audit_url,
        params={"entity_type": "BOQItem", "limit": 1, "offset": 1},
        headers=auth_headers(world.owner),
    )

    page = response.json()["data"]
    assert page["total"] == 2
    assert len(page["logs"]) == 1
    assert page["logs"][0]["action_type"] == "BOQ_ITEM_ADD"


async def test_filter_by_actor(client, world, auth_headers, audit_url, approved_boq):
    response = await client.get(audit_url, params={"actor_id": str(world.pmc.user_id)}, headers=auth_headers(world.owner))

    actions = {log["action_type"] for log in response.json()["data"]["logs"]}
    assert actions == {"BOQ_CREATE", "BOQ_ITEM_ADD"}


async def test_negative_offset_is_invalid_input(client, world, auth_headers, audit_url):
    response = await client.get(audit_url, params={"offset": -1}, headers=auth_headers(world.owner))

    assert response.status_code == 400
    assert response.json()["error"]["kind"] == "INVALID_INPUT"


async def test_bad_date_is_invalid_input(client, world, auth_headers, audit_url):
    response = await client.get(audit_url, params={"start_date": "yesterday"}, headers=auth_headers(world.owner))
    assert response.status_code == 400


@pytest.mark.parametrize("role", ["owner", "pmc"])
async def test_export_csv(client, world, auth_headers, audit_url, approved_boq, role):
    response = await client.get(f"{audit_url}/export", headers=auth_headers(getattr(world, role)))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert f'filename="audit-log-{world.project_id}-' in response.headers["content-disposition"]

    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == CSV_COLUMNS
    assert rows[1][4] == "PROJECT_CREATE"
    assert rows[-1][4] == "BOQ_APPROVE"


@pytest.mark.parametrize("role", ["vendor", "viewer"])
async def test_export_forbidden_for_other_roles(client, world, auth_headers, audit_url, role):
    response = await client.get(f"{audit_url}/export", headers=auth_headers(getattr(world, role)))

    assert response.status_code == 403
    assert response.json()["error"]["kind"] == "FORBIDDEN"


async def test_export_respects_filters(client, world, auth_headers, audit_url, approved_boq):
    response = await client.get(
        f"{audit_url}/export", params={"action_type": "ROLE_ASSIGN"}, headers=auth_headers(world.owner)
    )

    rows = list(csv.reader(io.StringIO(response.text)))
    assert len(rows) == 4
    assert {row[4] for row in rows[1:]} == {"ROLE_ASSIGN"}
