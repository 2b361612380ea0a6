"""
privileges_kernel.services.approval_service -- Approver decisions on requests.

Responsibility:
    Applies one approver decision to a privilege request: validates the
    actor and the request state, upserts the approver's record, applies
    per-privilege grant/deny outcomes, and moves the request to its next
    status and level.  Delegates the transition rules to the pure
    approval engine.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and
    privileges_engines.

Invariants enforced:
    - One approval row per (request, approver): re-decisions update the
      existing row in place.
    - Terminal requests accept no decisions.
    - Privilege decisions only touch rows of the request being decided.
    - Every decision bumps the request's ``version``, so two concurrent
      decisions on one request can never both commit.

Failure modes:
    - RequestNotFoundError if request_id not found.
    - ApproverNotEligibleError / SelfApprovalError on forbidden actors.
    - RequestAlreadyResolvedError on APPROVED or REJECTED requests.
    - InvalidDecisionOutcomeError / RejectionCommentRequiredError on
      malformed decisions.
    - StaleDataError from flush when another transaction won the race
      (translated to OptimisticLockError by the orchestrator).
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from privileges_engines.approval import (
    Transition,
    derive_transition,
    is_approver,
    normalize_privilege_decisions,
    parse_outcome,
)
from privileges_kernel.domain.approval import (
    TERMINAL_REQUEST_STATUSES,
    Actor,
    ApprovalLevel,
    Decision,
    DecisionOutcome,
    DecisionResult,
    RequestStatus,
    UserRole,
)
from privileges_kernel.domain.clock import Clock, SystemClock
from privileges_kernel.exceptions import (
    ApproverNotEligibleError,
    InvalidDecisionOutcomeError,
    RejectionCommentRequiredError,
    RequestAlreadyResolvedError,
    RequestNotFoundError,
    SelfApprovalError,
)
from privileges_kernel.logging_config import get_logger
from privileges_kernel.models.approval import ApprovalModel
from privileges_kernel.models.privilege_request import PrivilegeRequestModel
from privileges_kernel.services.auditor_service import AuditorService
from privileges_kernel.services.base import BaseService

logger = get_logger("services.approval")


class ApprovalService(BaseService[PrivilegeRequestModel]):
    """Records approver decisions.  Flushes only; the caller commits."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        require_rejection_comments: bool = False,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._require_rejection_comments = require_rejection_comments

    # =========================================================================
    # Loading
    # =========================================================================

    def _load_request_for_update(self, request_id: UUID) -> PrivilegeRequestModel:
        """Load and row-lock a request, refreshing any cached state."""
        model = self.session.execute(
            select(PrivilegeRequestModel)
            .where(PrivilegeRequestModel.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(str(request_id))
        return model

    def _find_approval(
        self, request_id: UUID, approver_id: UUID,
    ) -> ApprovalModel | None:
        return self.session.execute(
            select(ApprovalModel).where(
                ApprovalModel.request_id == request_id,
                ApprovalModel.approver_id == approver_id,
            )
        ).scalar_one_or_none()

    # =========================================================================
    # Validation
    # =========================================================================

    def _check_actor(self, model: PrivilegeRequestModel, actor: Actor) -> UserRole:
        if not is_approver(actor.role):
            role = getattr(actor.role, "value", actor.role)
            logger.warning(
                "approval_forbidden_attempt",
                extra={
                    "request_id": str(model.id),
                    "actor_id": str(actor.id),
                    "actor_role": str(role),
                    "reason": "not_an_approver",
                },
            )
            raise ApproverNotEligibleError(str(actor.id), str(role))

        role = UserRole(actor.role)
        if actor.id == model.applicant_id:
            logger.warning(
                "approval_forbidden_attempt",
                extra={
                    "request_id": str(model.id),
                    "actor_id": str(actor.id),
                    "actor_role": role.value,
                    "reason": "self_approval",
                },
            )
            raise SelfApprovalError(str(model.id), str(actor.id))
        return role

    def _check_decision(
        self, model: PrivilegeRequestModel, decision: Decision,
    ) -> DecisionOutcome:
        outcome = parse_outcome(decision.outcome)
        if outcome is None:
            raise InvalidDecisionOutcomeError(decision.outcome)

        if (
            outcome == DecisionOutcome.REJECTED
            and self._require_rejection_comments
            and not (decision.comments and decision.comments.strip())
        ):
            raise RejectionCommentRequiredError(str(model.id))
        return outcome

    # =========================================================================
    # Decision
    # =========================================================================

    def submit_decision(
        self,
        request_id: UUID,
        actor: Actor,
        decision: Decision,
    ) -> DecisionResult:
        """Apply one approver decision to a request.

        Steps, all inside the caller's transaction:
        1. Lock the request; load the approver's existing record.
        2. Upsert the approver's record with the mapped status.
        3. Apply privilege decisions belonging to this request.
        4. Move the request to its new status and level.
        5. Flush and append an audit event.

        Raises:
            RequestNotFoundError, ApproverNotEligibleError,
            SelfApprovalError, RequestAlreadyResolvedError,
            InvalidDecisionOutcomeError, RejectionCommentRequiredError.
        """
        model = self._load_request_for_update(request_id)
        role = self._check_actor(model, actor)

        previous_status = RequestStatus(model.status)
        if previous_status in TERMINAL_REQUEST_STATUSES:
            raise RequestAlreadyResolvedError(str(request_id), previous_status.value)

        outcome = self._check_decision(model, decision)
        previous_level = (
            ApprovalLevel(model.current_level) if model.current_level else None
        )

        transition = derive_transition(
            outcome=outcome,
            actor_role=role,
            current_level=previous_level,
        )
        now = self._clock.now()

        approval, created = self._upsert_approval(
            model, actor, transition, decision.comments, now,
        )
        self._apply_privilege_decisions(model, decision)
        self._apply_transition(model, transition, outcome, previous_level, now)

        self.session.flush()

        snapshot = model.to_dto()
        self._auditor.record_decision(
            request=snapshot,
            actor=Actor(id=actor.id, role=role),
            outcome=outcome,
            comments=decision.comments,
            previous_status=previous_status.value,
            previous_level=previous_level.value if previous_level else None,
        )

        logger.info(
            "approval_decision_recorded",
            extra={
                "request_id": str(request_id),
                "actor_id": str(actor.id),
                "actor_role": role.value,
                "outcome": outcome.value,
                "approval_id": str(approval.id),
                "approval_created": created,
                "from_status": previous_status.value,
                "to_status": transition.status.value,
                "from_level": previous_level.value if previous_level else None,
                "to_level": (
                    transition.current_level.value
                    if transition.current_level else None
                ),
            },
        )

        return DecisionResult(
            request=snapshot,
            approval=approval.to_dto(),
            actor=Actor(id=actor.id, role=role),
            previous_status=previous_status,
            previous_level=previous_level,
            privilege_outcomes=snapshot.privileges,
            created_approval=created,
        )

    def _upsert_approval(
        self,
        model: PrivilegeRequestModel,
        actor: Actor,
        transition: Transition,
        comments: str | None,
        now: datetime,
    ) -> tuple[ApprovalModel, bool]:
        approval = self._find_approval(model.id, actor.id)
        if approval is not None:
            # Level stays as first recorded.
            approval.status = transition.approval_status.value
            approval.comments = comments
            approval.decided_at = now
            return approval, False

        approval = ApprovalModel(
            request_id=model.id,
            approver_id=actor.id,
            level=transition.approval_level.value,
            status=transition.approval_status.value,
            comments=comments,
            decided_at=now,
            created_at=now,
        )
        self.session.add(approval)
        return approval, True

    def _apply_privilege_decisions(
        self, model: PrivilegeRequestModel, decision: Decision,
    ) -> None:
        if not decision.privilege_decisions:
            return

        updates = normalize_privilege_decisions(
            [p.to_dto() for p in model.privileges],
            decision.privilege_decisions,
        )
        rows = {p.privilege_id: p for p in model.privileges}
        for update in updates:
            row = rows[update.privilege_id]
            row.is_granted = update.is_granted
            row.deny_reason = update.deny_reason

        # Repeats for one owned privilege are merged, not ignored.
        ignored = sum(
            1 for d in decision.privilege_decisions if d.privilege_id not in rows
        )
        if ignored:
            logger.debug(
                "privilege_decisions_ignored",
                extra={"request_id": str(model.id), "ignored": ignored},
            )

    def _apply_transition(
        self,
        model: PrivilegeRequestModel,
        transition: Transition,
        outcome: DecisionOutcome,
        previous_level: ApprovalLevel | None,
        now: datetime,
    ) -> None:
        model.status = transition.status.value
        model.current_level = (
            transition.current_level.value if transition.current_level else None
        )

        if transition.current_level is None:
            model.level_entered_at = None
        elif (
            transition.current_level != previous_level
            or outcome == DecisionOutcome.RETURNED
        ):
            model.level_entered_at = now

        model.returned_at = now if outcome == DecisionOutcome.RETURNED else None
        if transition.is_terminal:
            model.completed_at = now

        model.version = model.version + 1
