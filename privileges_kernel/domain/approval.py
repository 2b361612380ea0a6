"""
Approval domain types (``privileges_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the clinical-privilege approval state machine:
roles, approval levels and their fixed order, request/approval statuses,
decision inputs and the result records handed back to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Level order is one explicit finite mapping, ``NEXT_APPROVAL_LEVEL``:
  HEAD_OF_SECTION -> HEAD_OF_DEPT -> COMMITTEE -> MEDICAL_DIRECTOR -> None.
  It is strictly increasing, never skips, never wraps.
* Terminal request statuses (APPROVED, REJECTED) have no current level.
* EMPLOYEE is never an approver.  ADMIN may act at any level and is a
  terminal override, like MEDICAL_DIRECTOR.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


# =========================================================================
# Roles and levels
# =========================================================================


class UserRole(str, Enum):
    """Roles known to the privileges system."""

    EMPLOYEE = "EMPLOYEE"
    HEAD_OF_SECTION = "HEAD_OF_SECTION"
    HEAD_OF_DEPT = "HEAD_OF_DEPT"
    COMMITTEE = "COMMITTEE"
    MEDICAL_DIRECTOR = "MEDICAL_DIRECTOR"
    ADMIN = "ADMIN"


class ApprovalLevel(str, Enum):
    """Levels of the approval pipeline, one per approving role."""

    HEAD_OF_SECTION = "HEAD_OF_SECTION"
    HEAD_OF_DEPT = "HEAD_OF_DEPT"
    COMMITTEE = "COMMITTEE"
    MEDICAL_DIRECTOR = "MEDICAL_DIRECTOR"


FIRST_APPROVAL_LEVEL: ApprovalLevel = ApprovalLevel.HEAD_OF_SECTION

# Total order over levels.  Rank is the position in the pipeline.
APPROVAL_LEVEL_ORDER: tuple[ApprovalLevel, ...] = (
    ApprovalLevel.HEAD_OF_SECTION,
    ApprovalLevel.HEAD_OF_DEPT,
    ApprovalLevel.COMMITTEE,
    ApprovalLevel.MEDICAL_DIRECTOR,
)

# None marks the final level: an approval there resolves the request.
NEXT_APPROVAL_LEVEL: dict[ApprovalLevel, ApprovalLevel | None] = {
    ApprovalLevel.HEAD_OF_SECTION: ApprovalLevel.HEAD_OF_DEPT,
    ApprovalLevel.HEAD_OF_DEPT: ApprovalLevel.COMMITTEE,
    ApprovalLevel.COMMITTEE: ApprovalLevel.MEDICAL_DIRECTOR,
    ApprovalLevel.MEDICAL_DIRECTOR: None,
}

# Level each approving role acts at.  ADMIN has none; it takes the
# request's current level.
ROLE_APPROVAL_LEVEL: dict[UserRole, ApprovalLevel] = {
    UserRole.HEAD_OF_SECTION: ApprovalLevel.HEAD_OF_SECTION,
    UserRole.HEAD_OF_DEPT: ApprovalLevel.HEAD_OF_DEPT,
    UserRole.COMMITTEE: ApprovalLevel.COMMITTEE,
    UserRole.MEDICAL_DIRECTOR: ApprovalLevel.MEDICAL_DIRECTOR,
}

APPROVER_ROLES: frozenset[UserRole] = frozenset({
    UserRole.HEAD_OF_SECTION,
    UserRole.HEAD_OF_DEPT,
    UserRole.COMMITTEE,
    UserRole.MEDICAL_DIRECTOR,
    UserRole.ADMIN,
})

# Roles whose approval resolves the request regardless of current level.
FINAL_SIGN_OFF_ROLES: frozenset[UserRole] = frozenset({
    UserRole.MEDICAL_DIRECTOR,
    UserRole.ADMIN,
})


# =========================================================================
# Statuses and outcomes
# =========================================================================


class RequestStatus(str, Enum):
    """Aggregate status of a privilege request."""

    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
})

ACTIVE_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.PENDING,
    RequestStatus.IN_REVIEW,
})


class ApprovalStatus(str, Enum):
    """Status of one approver's record on one request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RETURNED_FOR_MODIFICATION = "RETURNED_FOR_MODIFICATION"


class DecisionOutcome(str, Enum):
    """What an approver can decide."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    RETURNED = "RETURNED"


OUTCOME_TO_APPROVAL_STATUS: dict[DecisionOutcome, ApprovalStatus] = {
    DecisionOutcome.APPROVED: ApprovalStatus.APPROVED,
    DecisionOutcome.REJECTED: ApprovalStatus.REJECTED,
    DecisionOutcome.RETURNED: ApprovalStatus.RETURNED_FOR_MODIFICATION,
}


# =========================================================================
# Inputs
# =========================================================================


@dataclass(frozen=True)
class Actor:
    """An authenticated user acting on a request."""

    id: UUID
    role: UserRole


@dataclass(frozen=True)
class PrivilegeDecision:
    """Grant or deny one privilege of the request."""

    privilege_id: UUID
    is_granted: bool
    deny_reason: str | None = None


@dataclass(frozen=True)
class Decision:
    """An approver's decision on a request.

    ``outcome`` may be a ``DecisionOutcome`` or its string value as received
    from the caller.  Anything else is rejected by the engine with
    ``InvalidDecisionOutcomeError``.
    """

    outcome: DecisionOutcome | str
    comments: str | None = None
    privilege_decisions: tuple[PrivilegeDecision, ...] = ()


# =========================================================================
# Results
# =========================================================================


@dataclass(frozen=True)
class RequestedPrivilegeRecord:
    """Snapshot of one requested privilege."""

    privilege_id: UUID
    position: int
    is_granted: bool
    deny_reason: str | None = None


@dataclass(frozen=True)
class RequestSnapshot:
    """Immutable view of a privilege request after a read or a transition."""

    request_id: UUID
    applicant_id: UUID
    status: RequestStatus
    current_level: ApprovalLevel | None
    version: int
    submitted_at: datetime | None = None
    level_entered_at: datetime | None = None
    completed_at: datetime | None = None
    returned_at: datetime | None = None
    privileges: tuple[RequestedPrivilegeRecord, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    @property
    def awaiting_resubmission(self) -> bool:
        return self.returned_at is not None


@dataclass(frozen=True)
class ApprovalRecord:
    """Snapshot of one approver's decision record."""

    approval_id: UUID
    request_id: UUID
    approver_id: UUID
    level: ApprovalLevel
    status: ApprovalStatus
    comments: str | None = None
    decided_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class DecisionResult:
    """Outcome of ``submit_decision``.

    Carries enough for the caller to build an audit entry and a
    notification: the final request state, the actor, and the grant
    state of every privilege after the decision.
    """

    request: RequestSnapshot
    approval: ApprovalRecord
    actor: Actor
    previous_status: RequestStatus
    previous_level: ApprovalLevel | None
    privilege_outcomes: tuple[RequestedPrivilegeRecord, ...] = ()
    created_approval: bool = True


@dataclass(frozen=True)
class ApprovalProgress:
    """Which levels of a request have signed off."""

    request_id: UUID
    status: RequestStatus
    current_level: ApprovalLevel | None
    approved_levels: tuple[ApprovalLevel, ...] = ()
    remaining_levels: tuple[ApprovalLevel, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES


class EscalationTier(str, Enum):
    """How far a waiting request has been escalated."""

    NONE = "NONE"
    REMINDER = "REMINDER"
    MANAGER = "MANAGER"
    HR = "HR"


@dataclass(frozen=True)
class EscalationThresholds:
    """Hours a level may wait before each escalation tier applies."""

    reminder_hours: float = 24
    manager_hours: float = 48
    hr_hours: float = 72

    def __post_init__(self) -> None:
        if not (0 < self.reminder_hours <= self.manager_hours <= self.hr_hours):
            raise ValueError(
                "Escalation thresholds must be positive and non-decreasing: "
                f"{self.reminder_hours}, {self.manager_hours}, {self.hr_hours}"
            )


@dataclass(frozen=True)
class EscalationCandidate:
    """An active request whose current level has waited too long."""

    request_id: UUID
    applicant_id: UUID
    level: ApprovalLevel
    hours_pending: float
    tier: EscalationTier
