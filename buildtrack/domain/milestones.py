"""Milestone lifecycle graph and per-edge role permissions.

Pure domain logic with no external dependencies.
Draft -> In Progress -> Submitted -> Verified -> Closed, with a single
backward edge for rework when a submission is rejected.
"""

from collections import deque
from enum import StrEnum

from buildtrack.domain.roles import Role


class MilestoneState(StrEnum):
    """Milestone lifecycle states."""

    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    VERIFIED = "VERIFIED"
    CLOSED = "CLOSED"


INITIAL_STATE = MilestoneState.DRAFT
TERMINAL_STATES = frozenset({MilestoneState.CLOSED})


TRANSITIONS: dict[str, list[str]] = {
    MilestoneState.DRAFT: [MilestoneState.IN_PROGRESS],
    MilestoneState.IN_PROGRESS: [MilestoneState.SUBMITTED],
    MilestoneState.SUBMITTED: [
        MilestoneState.VERIFIED,
        MilestoneState.IN_PROGRESS,
    ],  # IN_PROGRESS only on rejection
    MilestoneState.VERIFIED: [MilestoneState.CLOSED],
    MilestoneState.CLOSED: [],  # Terminal state
}

TRANSITION_PERMISSIONS: dict[tuple[str, str], frozenset[Role]] = {
    (MilestoneState.DRAFT, MilestoneState.IN_PROGRESS): frozenset({Role.OWNER, Role.PMC, Role.VENDOR}),
    (MilestoneState.IN_PROGRESS, MilestoneState.SUBMITTED): frozenset({Role.VENDOR}),
    (MilestoneState.SUBMITTED, MilestoneState.VERIFIED): frozenset({Role.OWNER, Role.PMC}),
    (MilestoneState.SUBMITTED, MilestoneState.IN_PROGRESS): frozenset({Role.OWNER, Role.PMC}),
    (MilestoneState.VERIFIED, MilestoneState.CLOSED): frozenset({Role.OWNER, Role.PMC}),
}

# States from which payment may be released.
PAYABLE_STATES = frozenset({MilestoneState.VERIFIED, MilestoneState.CLOSED})

# States that prove work was recorded against linked BOQ items.
PROGRESS_STATES = frozenset({MilestoneState.SUBMITTED, MilestoneState.VERIFIED, MilestoneState.CLOSED})


def is_valid_transition(from_state: str, to_state: str) -> bool:
    return to_state in TRANSITIONS.get(from_state, [])


def is_rejection(from_state: str, to_state: str) -> bool:
    return from_state == MilestoneState.SUBMITTED and to_state == MilestoneState.IN_PROGRESS


def allowed_roles(from_state: str, to_state: str) -> frozenset[Role]:
    return TRANSITION_PERMISSIONS.get((from_state, to_state), frozenset())


def can_perform_transition(from_state: str, to_state: str, role: Role) -> bool:
    return role in allowed_roles(from_state, to_state)


def valid_next_states(current_state: str) -> list[str]:
    return list(TRANSITIONS.get(current_state, []))


def valid_next_states_for_role(current_state: str, role: Role) -> list[str]:
    return [s for s in valid_next_states(current_state) if can_perform_transition(current_state, s, role)]


def reachable_states(start: str = INITIAL_STATE) -> dict[str, int]:
    """Breadth-first walk of the graph.

    Returns:
        Mapping of every reachable state to its minimum number of edges from start.
    """
    distances = {start: 0}
    queue = deque([start])
    while queue:
        state = queue.popleft()
        for nxt in TRANSITIONS.get(state, []):
            if nxt not in distances:
                distances[nxt] = distances[state] + 1
                queue.append(nxt)
    return distances
