"""Re-export all models so Base.metadata sees them."""

from buildtrack.db.models.audit_log import AuditLog
from buildtrack.db.models.boq import BOQ, BOQItem, BOQRevision
from buildtrack.db.models.evidence import Evidence, EvidenceFile
from buildtrack.db.models.milestone import Milestone, MilestoneBOQLink, MilestoneStateTransition
from buildtrack.db.models.payment_eligibility import PaymentEligibility
from buildtrack.db.models.project import Project, ProjectRole
from buildtrack.db.models.user import User

__all__ = [
    "AuditLog",
    "BOQ",
    "BOQItem",
    "BOQRevision",
    "Evidence",
    "EvidenceFile",
    "Milestone",
    "MilestoneBOQLink",
    "MilestoneStateTransition",
    "PaymentEligibility",
    "Project",
    "ProjectRole",
    "User",
]
