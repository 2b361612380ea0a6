"""
Pure domain layer.

Value objects and the level-ordering tables of the approval state machine,
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O (other than SystemClock)
"""

from privileges_kernel.domain.approval import (
    APPROVAL_LEVEL_ORDER,
    APPROVER_ROLES,
    FINAL_SIGN_OFF_ROLES,
    FIRST_APPROVAL_LEVEL,
    NEXT_APPROVAL_LEVEL,
    OUTCOME_TO_APPROVAL_STATUS,
    ROLE_APPROVAL_LEVEL,
    TERMINAL_REQUEST_STATUSES,
    Actor,
    ApprovalLevel,
    ApprovalProgress,
    ApprovalRecord,
    ApprovalStatus,
    Decision,
    DecisionOutcome,
    DecisionResult,
    EscalationCandidate,
    EscalationThresholds,
    EscalationTier,
    PrivilegeDecision,
    RequestedPrivilegeRecord,
    RequestSnapshot,
    RequestStatus,
    UserRole,
)
from privileges_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = [
    # Roles and levels
    "UserRole",
    "ApprovalLevel",
    "APPROVAL_LEVEL_ORDER",
    "NEXT_APPROVAL_LEVEL",
    "ROLE_APPROVAL_LEVEL",
    "APPROVER_ROLES",
    "FINAL_SIGN_OFF_ROLES",
    "FIRST_APPROVAL_LEVEL",
    # Statuses
    "RequestStatus",
    "ApprovalStatus",
    "DecisionOutcome",
    "OUTCOME_TO_APPROVAL_STATUS",
    "TERMINAL_REQUEST_STATUSES",
    # Inputs
    "Actor",
    "Decision",
    "PrivilegeDecision",
    # Results
    "RequestSnapshot",
    "RequestedPrivilegeRecord",
    "ApprovalRecord",
    "DecisionResult",
    "ApprovalProgress",
    # Escalation
    "EscalationTier",
    "EscalationThresholds",
    "EscalationCandidate",
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
]
