"""Payment eligibility decision table.

Pure function of milestone state, BOQ approval and extra-approval status.
No DB access, fully deterministic: the same inputs always yield the same verdict.
"""

from dataclasses import asdict, dataclass

from buildtrack.domain.milestones import PAYABLE_STATES

REASON_ELIGIBLE = "eligible"
REASON_NOT_VERIFIED = "milestone not verified"
REASON_EXTRA_PENDING = "extra pending approval"
REASON_BOQ_NOT_APPROVED = "BOQ not approved"


@dataclass(frozen=True)
class EligibilityInputs:
    """Snapshot of everything the verdict depends on."""

    milestone_state: str
    boq_approved: bool
    is_extra: bool
    extra_approved: bool
    value: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class EligibilityVerdict:
    """Derived yes/no decision on whether a milestone's payment may be released."""

    eligible: bool
    reason: str
    eligible_amount: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def evaluate_eligibility(inputs: EligibilityInputs) -> EligibilityVerdict:
    """Apply the eligibility decision table.

    Rules:
        - DRAFT / IN_PROGRESS / SUBMITTED: never eligible
        - VERIFIED / CLOSED, extra milestone: eligible only once the extra is approved,
          regardless of BOQ approval
        - VERIFIED / CLOSED, regular milestone: eligible only against an approved BOQ
    """
    if inputs.milestone_state not in PAYABLE_STATES:
        return EligibilityVerdict(False, REASON_NOT_VERIFIED)

    if inputs.is_extra:
        if not inputs.extra_approved:
            return EligibilityVerdict(False, REASON_EXTRA_PENDING)
        return EligibilityVerdict(True, REASON_ELIGIBLE, inputs.value)

    if not inputs.boq_approved:
        return EligibilityVerdict(False, REASON_BOQ_NOT_APPROVED)

    return EligibilityVerdict(True, REASON_ELIGIBLE, inputs.value)


def has_extra_approval_gap(is_extra: bool, extra_approved: bool) -> bool:
    """True when an extra milestone still awaits owner approval."""
    return is_extra and not extra_approved


def can_close(inputs: EligibilityInputs) -> bool:
    """Closing requires an eligible verdict, or an approved BOQ with no extra-approval gap."""
    if evaluate_eligibility(inputs).eligible:
        return True
    return inputs.boq_approved and not has_extra_approval_gap(inputs.is_extra, inputs.extra_approved)
