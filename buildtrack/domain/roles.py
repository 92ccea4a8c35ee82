"""Role Guard: project roles and per-operation allowed sets.

Pure domain logic with no I/O. Roles are a closed enum; every operation
checks the principal against one of the named allowed sets below instead
of comparing role strings at the call site.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from buildtrack.core.exceptions import ForbiddenError
from buildtrack.domain.results import CoreError, ErrorKind


class Role(StrEnum):
    """Role a user holds within one project."""

    OWNER = "OWNER"
    PMC = "PMC"
    VENDOR = "VENDOR"
    VIEWER = "VIEWER"


@dataclass(frozen=True)
class Principal:
    """Authenticated user scoped to a project."""

    user_id: uuid.UUID
    role: Role
    project_id: uuid.UUID | None = None


READERS = frozenset(Role)
BOQ_EDITORS = frozenset({Role.OWNER, Role.PMC})
BOQ_APPROVERS = frozenset({Role.OWNER})
MILESTONE_EDITORS = frozenset({Role.OWNER, Role.PMC})
EVIDENCE_SUBMITTERS = frozenset({Role.VENDOR})
EVIDENCE_REVIEWERS = frozenset({Role.OWNER, Role.PMC})
VERIFIERS = frozenset({Role.OWNER, Role.PMC})
EXTRA_APPROVERS = frozenset({Role.OWNER})
AUDIT_EXPORTERS = frozenset({Role.OWNER, Role.PMC})
ROLE_MANAGERS = frozenset({Role.OWNER})


def _describe(allowed_roles: Iterable[Role]) -> str:
    return " or ".join(sorted(r.value for r in allowed_roles))


def check_role(principal: Principal, allowed_roles: Iterable[Role]) -> CoreError | None:
    """Return a FORBIDDEN error when the principal's role is not allowed, else None."""
    allowed = frozenset(allowed_roles)
    if principal.role in allowed:
        return None
    return CoreError(
        ErrorKind.FORBIDDEN,
        f"Role {principal.role.value} not allowed. Required: {_describe(allowed)}",
        {"role": principal.role.value, "required": sorted(r.value for r in allowed)},
    )


def require_role(principal: Principal, allowed_roles: Iterable[Role]) -> None:
    """Raise ForbiddenError unless the principal holds one of allowed_roles."""
    error = check_role(principal, allowed_roles)
    if error is not None:
        raise ForbiddenError(error.message, **error.details)


def can_read(principal: Principal) -> bool:
    return principal.role in READERS


def can_manage_roles(principal: Principal) -> bool:
    return principal.role in ROLE_MANAGERS


def can_edit_boq(principal: Principal) -> bool:
    return principal.role in BOQ_EDITORS


def can_approve_boq(principal: Principal) -> bool:
    return principal.role in BOQ_APPROVERS


def can_edit_milestones(principal: Principal) -> bool:
    return principal.role in MILESTONE_EDITORS


def can_submit_evidence(principal: Principal) -> bool:
    return principal.role in EVIDENCE_SUBMITTERS


def can_review_evidence(principal: Principal) -> bool:
    return principal.role in EVIDENCE_REVIEWERS


def can_verify(principal: Principal) -> bool:
    return principal.role in VERIFIERS


def can_approve_extra(principal: Principal) -> bool:
    return principal.role in EXTRA_APPROVERS


def can_export_audit_log(principal: Principal) -> bool:
    """Owner or PMC may export the project audit trail."""
    return principal.role in AUDIT_EXPORTERS


def validate_not_self_approval(reviewer_id: uuid.UUID, submitter_id: uuid.UUID) -> None:
    """Reviewers cannot approve or reject their own submissions."""
    if reviewer_id == submitter_id:
        raise ForbiddenError("Cannot approve own work")


def permissions_for(role: Role) -> dict[str, bool]:
    """Permission summary for a role, used by clients to decide which actions to offer."""
    principal = Principal(user_id=uuid.UUID(int=0), role=role)
    return {
        "can_read": can_read(principal),
        "can_manage_roles": can_manage_roles(principal),
        "can_edit_boq": can_edit_boq(principal),
        "can_approve_boq": can_approve_boq(principal),
        "can_edit_milestones": can_edit_milestones(principal),
        "can_submit_evidence": can_submit_evidence(principal),
        "can_review_evidence": can_review_evidence(principal),
        "can_verify": can_verify(principal),
        "can_approve_extra": can_approve_extra(principal),
        "can_export_audit_log": can_export_audit_log(principal),
    }
