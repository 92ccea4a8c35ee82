"""Tests for project roles and allowed-role sets.

Pure domain tests, no database required.
"""

import uuid

import pytest

from buildtrack.core.exceptions import ForbiddenError
from buildtrack.domain.results import ErrorKind
from buildtrack.domain.roles import (
    AUDIT_EXPORTERS,
    BOQ_APPROVERS,
    EVIDENCE_SUBMITTERS,
    Principal,
    Role,
    check_role,
    permissions_for,
    require_role,
    validate_not_self_approval,
)

pytestmark = pytest.mark.unit


def _principal(role: Role) -> Principal:
    return Principal(user_id=uuid.uuid4(), role=role, project_id=uuid.uuid4())


def test_check_role_allows_member_of_set():
    assert check_role(_principal(Role.OWNER), BOQ_APPROVERS) is None


def test_check_role_reports_role_and_required():
    """Rejected role is named along with the sorted allowed roles."""
    error = check_role(_principal(Role.VENDOR), AUDIT_EXPORTERS)

    assert error is not None
    assert error.kind == ErrorKind.FORBIDDEN
    assert error.details == {"role": "VENDOR", "required": ["OWNER", "PMC"]}


def test_require_role_raises_forbidden():
    with pytest.raises(ForbiddenError) as exc_info:
        require_role(_principal(Role.VIEWER), EVIDENCE_SUBMITTERS)

    assert exc_info.value.kind == ErrorKind.FORBIDDEN
    assert exc_info.value.details["required"] == ["VENDOR"]


def test_self_approval_is_forbidden():
    user_id = uuid.uuid4()
    with pytest.raises(ForbiddenError, match="own work"):
        validate_not_self_approval(user_id, user_id)


def test_review_of_someone_elses_work_passes():
    validate_not_self_approval(uuid.uuid4(), uuid.uuid4())


@pytest.mark.parametrize(
    "role,allowed",
    [
        (Role.OWNER, {"can_manage_roles", "can_approve_boq", "can_approve_extra", "can_export_audit_log"}),
        (Role.PMC, {"can_edit_boq", "can_verify", "can_export_audit_log"}),
        (Role.VENDOR, {"can_submit_evidence"}),
        (Role.VIEWER, {"can_read"}),
    ],
)
def test_permissions_for_role(role, allowed):
    permissions = permissions_for(role)
    for name in allowed:
        assert permissions[name] is True


def test_viewer_is_read_only():
    permissions = permissions_for(Role.VIEWER)
    assert [name for name, value in permissions.items() if value] == ["can_read"]


def test_vendor_cannot_review_or_export():
    permissions = permissions_for(Role.VENDOR)
    assert permissions["can_review_evidence"] is False
    assert permissions["can_export_audit_log"] is False
    assert permissions["can_approve_boq"] is False
