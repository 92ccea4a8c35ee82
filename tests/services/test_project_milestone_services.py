"""Tests for ProjectService and MilestoneService."""

import uuid

import pytest

from buildtrack.domain.audit import AuditAction
from buildtrack.domain.milestones import MilestoneState
from buildtrack.domain.results import ErrorKind
from buildtrack.domain.roles import Principal, Role

pytestmark = pytest.mark.unit


# ============================================================================
# Users, projects and roles
# ============================================================================


async def test_duplicate_email_conflicts(project_service):
    first = await project_service.create_user("Ana", "ana@example.com")
    second = await project_service.create_user("Ana Again", "ANA@example.com")

    assert first.success
    assert first.data.email == "ana@example.com"
    assert second.error.kind == ErrorKind.CONFLICT


async def test_invalid_user_input(project_service):
    result = await project_service.create_user("", "not-an-email")
    assert result.error.kind == ErrorKind.INVALID_INPUT


async def test_creator_becomes_owner(world, project_service):
    assert await project_service.get_role(world.project_id, world.owner.user_id) == Role.OWNER
    assert await project_service.get_role(world.project_id, uuid.uuid4()) is None


async def test_members_listed_with_roles(world, project_service):
    members = await project_service.list_members(world.project_id)
    assert sorted(role for _, role in members) == ["OWNER", "PMC", "VENDOR", "VIEWER"]


async def test_only_owner_assigns_roles(world, project_service):
    result = await project_service.assign_role(world.project_id, world.viewer.user_id, Role.VENDOR, world.pmc)
    assert result.error.kind == ErrorKind.FORBIDDEN


async def test_reassigning_role_updates_in_place(world, project_service, audit_entries):
    result = await project_service.assign_role(world.project_id, world.viewer.user_id, Role.PMC, world.owner)

    assert result.success
    assert await project_service.get_role(world.project_id, world.viewer.user_id) == Role.PMC
    latest = (await audit_entries(action_type=AuditAction.ROLE_ASSIGN, entity_id=result.data.id))[0]
    assert latest.before_json == {"role": "VIEWER"}
    assert latest.after_json["role"] == "PMC"


async def test_project_for_unknown_owner(project_service):
    result = await project_service.create_project("Ghost", uuid.uuid4())
    assert result.error.kind == ErrorKind.NOT_FOUND


# ============================================================================
# Milestones
# ============================================================================


async def test_create_milestone_in_draft(world, milestone_service, approved_boq):
    result = await milestone_service.create(world.project_id, world.pmc, "  Roof slab ", 30000.0, boq_id=approved_boq.id)

    assert result.success
    assert result.data.title == "Roof slab"
    assert result.data.state == MilestoneState.DRAFT
    assert result.data.version == 1


async def test_vendor_cannot_create_milestone(world, milestone_service):
    result = await milestone_service.create(world.project_id, world.vendor, "Roof slab", 100.0)
    assert result.error.kind == ErrorKind.FORBIDDEN


@pytest.mark.parametrize("title,value", [("", 10.0), ("Roof slab", -1.0)])
async def test_invalid_milestone_input(world, milestone_service, title, value):
    result = await milestone_service.create(world.project_id, world.owner, title, value)
    assert result.error.kind == ErrorKind.INVALID_INPUT


async def test_milestone_with_unknown_boq(world, milestone_service):
    result = await milestone_service.create(world.project_id, world.owner, "Roof slab", 100.0, boq_id=uuid.uuid4())
    assert result.error.kind == ErrorKind.NOT_FOUND


async def test_link_boq_item(world, milestone_service, boq_service, approved_boq, make_milestone):
    detail = await boq_service.get_with_items(approved_boq.id)
    item = detail.data.items[0]
    milestone = await make_milestone(boq_id=approved_boq.id)

    linked = await milestone_service.link_boq_item(milestone.id, item.item_id, 40.0, world.pmc)
    duplicate = await milestone_service.link_boq_item(milestone.id, item.item_id, 10.0, world.pmc)

    assert linked.success
    assert duplicate.error.kind == ErrorKind.CONFLICT
    links = await milestone_service.list_links(milestone.id)
    assert [(link.boq_item_id, link.planned_qty) for link in links] == [(item.item_id, 40.0)]


async def test_link_unknown_item(world, milestone_service, approved_boq, make_milestone):
    milestone = await make_milestone(boq_id=approved_boq.id)
    result = await milestone_service.link_boq_item(milestone.id, uuid.uuid4(), 1.0, world.pmc)
    assert result.error.kind == ErrorKind.NOT_FOUND


async def test_get_milestone_scoped_to_project(world, milestone_service, make_milestone, project_service):
    milestone = await make_milestone()
    other = await project_service.create_project("Other site", world.owner.user_id)
    outsider = Principal(user_id=world.owner.user_id, role=Role.OWNER, project_id=other.data.id)

    assert (await milestone_service.get(milestone.id, world.owner)).success
    assert (await milestone_service.get(milestone.id, outsider)).error.kind == ErrorKind.NOT_FOUND


async def test_projects_listed_for_user(world, project_service):
    other = await project_service.create_project("Clinic fit-out", world.vendor.user_id)

    vendor_projects = await project_service.list_for_user(world.vendor.user_id)
    owner_projects = await project_service.list_for_user(world.owner.user_id)

    assert {(p.id, role) for p, role in vendor_projects} == {(world.project_id, "VENDOR"), (other.data.id, "OWNER")}
    assert [p.id for p, _ in owner_projects] == [world.project_id]


async def test_milestones_listed_per_project(world, milestone_service, make_milestone, project_service):
    first = await make_milestone(title="Piling")
    second = await make_milestone(title="Ground beams")
    other = await project_service.create_project("Other site", world.owner.user_id)
    owner_elsewhere = Principal(user_id=world.owner.user_id, role=Role.OWNER, project_id=other.data.id)
    await milestone_service.create(other.data.id, owner_elsewhere, "Elsewhere", 10.0)

    listed = await milestone_service.list_for_project(world.project_id)

    assert [m.id for m in listed] == [first.id, second.id]
