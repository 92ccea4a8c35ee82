"""Tests for the milestone lifecycle graph.

Pure domain tests, no database required.
"""

import pytest

from buildtrack.domain.milestones import (
    INITIAL_STATE,
    TERMINAL_STATES,
    TRANSITION_PERMISSIONS,
    TRANSITIONS,
    MilestoneState,
    can_perform_transition,
    is_rejection,
    is_valid_transition,
    reachable_states,
    valid_next_states,
    valid_next_states_for_role,
)
from buildtrack.domain.roles import Role

pytestmark = pytest.mark.unit


# ============================================================================
# Graph shape
# ============================================================================


def test_every_state_has_an_entry():
    assert set(TRANSITIONS) == set(MilestoneState)


def test_initial_and_terminal_states():
    assert INITIAL_STATE == MilestoneState.DRAFT
    assert TERMINAL_STATES == {MilestoneState.CLOSED}
    assert valid_next_states(MilestoneState.CLOSED) == []


def test_every_edge_has_permissions():
    """Each edge in the graph names at least one role allowed to take it."""
    for from_state, targets in TRANSITIONS.items():
        for to_state in targets:
            assert TRANSITION_PERMISSIONS[(from_state, to_state)], (from_state, to_state)


def test_all_states_reachable_from_draft():
    assert set(reachable_states()) == set(MilestoneState)


def test_payable_states_need_full_path():
    """VERIFIED and CLOSED cannot be reached from DRAFT in fewer edges than the happy path."""
    distances = reachable_states(MilestoneState.DRAFT)
    assert distances[MilestoneState.SUBMITTED] == 2
    assert distances[MilestoneState.VERIFIED] == 3
    assert distances[MilestoneState.CLOSED] == 4


@pytest.mark.parametrize(
    "from_state,to_state",
    [
        (MilestoneState.DRAFT, MilestoneState.VERIFIED),
        (MilestoneState.DRAFT, MilestoneState.CLOSED),
        (MilestoneState.DRAFT, MilestoneState.SUBMITTED),
        (MilestoneState.IN_PROGRESS, MilestoneState.VERIFIED),
        (MilestoneState.VERIFIED, MilestoneState.IN_PROGRESS),
        (MilestoneState.CLOSED, MilestoneState.DRAFT),
        (MilestoneState.DRAFT, "ARCHIVED"),
    ],
)
def test_invalid_edges(from_state, to_state):
    assert is_valid_transition(from_state, to_state) is False


def test_only_backward_edge_is_rejection():
    assert is_rejection(MilestoneState.SUBMITTED, MilestoneState.IN_PROGRESS)
    assert not is_rejection(MilestoneState.DRAFT, MilestoneState.IN_PROGRESS)


# ============================================================================
# Per-edge roles
# ============================================================================


def test_only_vendor_submits():
    assert can_perform_transition(MilestoneState.IN_PROGRESS, MilestoneState.SUBMITTED, Role.VENDOR)
    for role in (Role.OWNER, Role.PMC, Role.VIEWER):
        assert not can_perform_transition(MilestoneState.IN_PROGRESS, MilestoneState.SUBMITTED, role)


def test_vendor_cannot_verify_or_close():
    assert not can_perform_transition(MilestoneState.SUBMITTED, MilestoneState.VERIFIED, Role.VENDOR)
    assert not can_perform_transition(MilestoneState.VERIFIED, MilestoneState.CLOSED, Role.VENDOR)


def test_viewer_takes_no_edge():
    for from_state in MilestoneState:
        assert valid_next_states_for_role(from_state, Role.VIEWER) == []


def test_pmc_options_from_submitted():
    assert set(valid_next_states_for_role(MilestoneState.SUBMITTED, Role.PMC)) == {
        MilestoneState.VERIFIED,
        MilestoneState.IN_PROGRESS,
    }
