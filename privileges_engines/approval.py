"""
privileges_engines.approval -- Pure approval transition engine.

Responsibility:
    Decide, from an outcome, the acting role and the request's current
    level, what the request's next status and level are, which level the
    approver's record belongs to, and which privilege grant flags change.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import privileges_kernel/domain/ types.

Invariants enforced:
    - REJECTED is terminal: status REJECTED, no level.
    - RETURNED re-enters the pipeline: status PENDING at the first level.
    - APPROVED by a final sign-off role (MEDICAL_DIRECTOR, ADMIN) is
      terminal: status APPROVED, no level.
    - APPROVED by any other approver moves to IN_REVIEW at the level after
      the approver's ROLE.  The request's current level is not consulted,
      so an out-of-order approver can move the request backwards or
      forwards.  This is existing behavior and is kept as is.
    - Privilege decisions only touch privileges of the request; a grant
      always clears the deny reason.

Failure modes:
    - ``parse_outcome`` returns None for unrecognized outcomes; the
      service turns that into InvalidDecisionOutcomeError.
    - ``derive_transition`` raises ValueError for a non-approver role or
      an ADMIN acting on a request without a current level.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from privileges_engines.tracer import traced_engine
from privileges_kernel.domain.approval import (
    APPROVAL_LEVEL_ORDER,
    APPROVER_ROLES,
    FINAL_SIGN_OFF_ROLES,
    FIRST_APPROVAL_LEVEL,
    NEXT_APPROVAL_LEVEL,
    OUTCOME_TO_APPROVAL_STATUS,
    ROLE_APPROVAL_LEVEL,
    TERMINAL_REQUEST_STATUSES,
    ApprovalLevel,
    ApprovalProgress,
    ApprovalRecord,
    ApprovalStatus,
    DecisionOutcome,
    PrivilegeDecision,
    RequestedPrivilegeRecord,
    RequestStatus,
    UserRole,
)


@dataclass(frozen=True)
class Transition:
    """Result of applying one decision to a request's status and level."""

    status: RequestStatus
    current_level: ApprovalLevel | None
    approval_status: ApprovalStatus
    approval_level: ApprovalLevel

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES


@dataclass(frozen=True)
class PrivilegeUpdate:
    """New grant state for one privilege of the request."""

    privilege_id: UUID
    is_granted: bool
    deny_reason: str | None


def is_approver(role: UserRole | str) -> bool:
    """True when ``role`` may decide on requests.  EMPLOYEE never may."""
    try:
        return UserRole(role) in APPROVER_ROLES
    except ValueError:
        return False


def parse_outcome(outcome: DecisionOutcome | str | None) -> DecisionOutcome | None:
    """Coerce a caller-supplied outcome, or None if it is not recognized."""
    if isinstance(outcome, DecisionOutcome):
        return outcome
    if not isinstance(outcome, str):
        return None
    try:
        return DecisionOutcome(outcome.strip().upper())
    except ValueError:
        return None


def level_rank(level: ApprovalLevel) -> int:
    """Zero-based position of ``level`` in the pipeline."""
    return APPROVAL_LEVEL_ORDER.index(level)


def next_level(level: ApprovalLevel) -> ApprovalLevel | None:
    """The level after ``level``, or None when ``level`` is final."""
    return NEXT_APPROVAL_LEVEL[level]


def approval_level_for(
    actor_role: UserRole,
    current_level: ApprovalLevel | None,
) -> ApprovalLevel:
    """Level recorded on an approver's record.

    Approving roles act at their own level.  ADMIN acts at the request's
    current level.
    """
    if actor_role in ROLE_APPROVAL_LEVEL:
        return ROLE_APPROVAL_LEVEL[actor_role]
    if actor_role == UserRole.ADMIN and current_level is not None:
        return current_level
    raise ValueError(
        f"No approval level for role {actor_role.value} at level {current_level}"
    )


@traced_engine(
    "approval_transition", "1.0",
    fingerprint_fields=("outcome", "actor_role", "current_level"),
)
def derive_transition(
    *,
    outcome: DecisionOutcome,
    actor_role: UserRole,
    current_level: ApprovalLevel | None,
) -> Transition:
    """Compute the request's next status and level for one decision.

    Args:
        outcome: The approver's decision.
        actor_role: Role of the deciding approver.
        current_level: The request's level before the decision.

    Returns:
        Transition with the new request status and level and the status
        and level of the approver's record.
    """
    if actor_role not in APPROVER_ROLES:
        raise ValueError(f"Role {actor_role.value} cannot approve")

    approval_level = approval_level_for(actor_role, current_level)
    approval_status = OUTCOME_TO_APPROVAL_STATUS[outcome]

    if outcome == DecisionOutcome.REJECTED:
        return Transition(
            status=RequestStatus.REJECTED,
            current_level=None,
            approval_status=approval_status,
            approval_level=approval_level,
        )

    if outcome == DecisionOutcome.RETURNED:
        return Transition(
            status=RequestStatus.PENDING,
            current_level=FIRST_APPROVAL_LEVEL,
            approval_status=approval_status,
            approval_level=approval_level,
        )

    if actor_role in FINAL_SIGN_OFF_ROLES:
        return Transition(
            status=RequestStatus.APPROVED,
            current_level=None,
            approval_status=approval_status,
            approval_level=approval_level,
        )

    # Next level from the approver's role, not from current_level.
    following = next_level(ROLE_APPROVAL_LEVEL[actor_role])
    if following is None:
        # Only MEDICAL_DIRECTOR has no next level and it is a final role.
        raise ValueError(f"Role {actor_role.value} has no next level")

    return Transition(
        status=RequestStatus.IN_REVIEW,
        current_level=following,
        approval_status=approval_status,
        approval_level=approval_level,
    )


def normalize_privilege_decisions(
    privileges: Iterable[RequestedPrivilegeRecord],
    decisions: Iterable[PrivilegeDecision],
) -> tuple[PrivilegeUpdate, ...]:
    """Match decisions against the request's own privileges.

    Decisions for privileges outside the request are dropped.  When a
    privilege is named more than once the last decision wins.  A grant
    clears the deny reason; a blank deny reason is stored as None.

    Returns:
        Updates in the request's privilege order.
    """
    ordered = [p.privilege_id for p in privileges]
    owned = set(ordered)

    latest: dict[UUID, PrivilegeDecision] = {}
    for decision in decisions:
        if decision.privilege_id in owned:
            latest[decision.privilege_id] = decision

    updates = []
    for privilege_id in ordered:
        decision = latest.get(privilege_id)
        if decision is None:
            continue
        reason = None
        if not decision.is_granted and decision.deny_reason:
            reason = decision.deny_reason.strip() or None
        updates.append(
            PrivilegeUpdate(
                privilege_id=privilege_id,
                is_granted=decision.is_granted,
                deny_reason=reason,
            )
        )
    return tuple(updates)


def summarize_progress(
    request_id: UUID,
    status: RequestStatus,
    current_level: ApprovalLevel | None,
    approvals: Iterable[ApprovalRecord],
) -> ApprovalProgress:
    """Levels that have an APPROVED record, and the levels still ahead."""
    approved = {
        a.level for a in approvals if a.status == ApprovalStatus.APPROVED
    }
    approved_levels = tuple(
        level for level in APPROVAL_LEVEL_ORDER if level in approved
    )

    if status in TERMINAL_REQUEST_STATUSES or current_level is None:
        remaining: tuple[ApprovalLevel, ...] = ()
    else:
        remaining = APPROVAL_LEVEL_ORDER[level_rank(current_level):]

    return ApprovalProgress(
        request_id=request_id,
        status=status,
        current_level=current_level,
        approved_levels=approved_levels,
        remaining_levels=remaining,
    )
