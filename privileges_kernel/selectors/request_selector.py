"""
Module: privileges_kernel.selectors.request_selector
Responsibility: Read-only queries over privilege requests: request detail,
    approver inboxes, approval history, sign-off progress and requests
    overdue for escalation.
Architecture position: Kernel > Selectors.  Returns frozen domain DTOs.

Invariants enforced:
    - Read-only: no add/flush/commit.
    - Requests returned to their applicant are not counted as waiting on an
      approver (neither in inboxes nor in escalation).

Failure modes:
    - RequestNotFoundError from get() and progress() for unknown ids.
"""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select

from privileges_engines.approval import summarize_progress
from privileges_engines.escalation import (
    DEFAULT_THRESHOLDS,
    escalation_tier,
    hours_between,
)
from privileges_kernel.domain.approval import (
    ACTIVE_REQUEST_STATUSES,
    ApprovalLevel,
    ApprovalProgress,
    ApprovalRecord,
    EscalationCandidate,
    EscalationThresholds,
    EscalationTier,
    RequestSnapshot,
)
from privileges_kernel.exceptions import RequestNotFoundError
from privileges_kernel.models.approval import ApprovalModel
from privileges_kernel.models.privilege_request import PrivilegeRequestModel
from privileges_kernel.selectors.base import BaseSelector

_ACTIVE = [s.value for s in ACTIVE_REQUEST_STATUSES]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RequestSelector(BaseSelector[PrivilegeRequestModel]):
    """Queries for request views, inboxes and escalation jobs."""

    def _get_model(self, request_id: UUID) -> PrivilegeRequestModel:
        model = self.session.get(PrivilegeRequestModel, request_id)
        if model is None:
            raise RequestNotFoundError(str(request_id))
        return model

    def get(self, request_id: UUID) -> RequestSnapshot:
        """Snapshot of one request with its privileges in order."""
        return self._get_model(request_id).to_dto()

    def find(self, request_id: UUID) -> RequestSnapshot | None:
        model = self.session.get(PrivilegeRequestModel, request_id)
        return model.to_dto() if model else None

    def list_for_applicant(self, applicant_id: UUID) -> list[RequestSnapshot]:
        """All requests of an applicant, newest first."""
        models = self.session.execute(
            select(PrivilegeRequestModel)
            .where(PrivilegeRequestModel.applicant_id == applicant_id)
            .order_by(PrivilegeRequestModel.submitted_at.desc())
        ).scalars().all()
        return [m.to_dto() for m in models]

    def list_awaiting(
        self,
        level: ApprovalLevel,
        include_returned: bool = False,
    ) -> list[RequestSnapshot]:
        """Approver inbox: active requests at ``level``, longest waiting first."""
        stmt = (
            select(PrivilegeRequestModel)
            .where(
                PrivilegeRequestModel.status.in_(_ACTIVE),
                PrivilegeRequestModel.current_level == level.value,
            )
            .order_by(
                PrivilegeRequestModel.level_entered_at,
                PrivilegeRequestModel.submitted_at,
            )
        )
        if not include_returned:
            stmt = stmt.where(PrivilegeRequestModel.returned_at.is_(None))
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def approvals_for(self, request_id: UUID) -> list[ApprovalRecord]:
        """Approver records of a request, oldest first."""
        models = self.session.execute(
            select(ApprovalModel)
            .where(ApprovalModel.request_id == request_id)
            .order_by(ApprovalModel.created_at, ApprovalModel.level)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def progress(self, request_id: UUID) -> ApprovalProgress:
        """Which levels signed off, and which are still ahead."""
        snapshot = self.get(request_id)
        return summarize_progress(
            request_id=snapshot.request_id,
            status=snapshot.status,
            current_level=snapshot.current_level,
            approvals=self.approvals_for(request_id),
        )

    def list_overdue(
        self,
        as_of: datetime,
        thresholds: EscalationThresholds = DEFAULT_THRESHOLDS,
    ) -> list[EscalationCandidate]:
        """Active requests waiting at their level past the reminder threshold.

        Args:
            as_of: Reference time (timezone-aware), normally ``clock.now()``.
            thresholds: Hours for the REMINDER, MANAGER and HR tiers.

        Returns:
            Candidates ordered by hours pending, longest first.
        """
        models = self.session.execute(
            select(PrivilegeRequestModel)
            .where(
                PrivilegeRequestModel.status.in_(_ACTIVE),
                PrivilegeRequestModel.returned_at.is_(None),
                PrivilegeRequestModel.level_entered_at.is_not(None),
            )
        ).scalars().all()

        reference = _as_utc(as_of)
        candidates = []
        for model in models:
            hours = hours_between(_as_utc(model.level_entered_at), reference)
            tier = escalation_tier(hours, thresholds)
            if tier == EscalationTier.NONE:
                continue
            candidates.append(
                EscalationCandidate(
                    request_id=model.id,
                    applicant_id=model.applicant_id,
                    level=ApprovalLevel(model.current_level),
                    hours_pending=round(hours, 2),
                    tier=tier,
                )
            )

        candidates.sort(key=lambda c: (-c.hours_pending, str(c.request_id)))
        return candidates
