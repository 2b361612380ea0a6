"""
privileges_kernel.services.request_service -- Request submission and resubmission.

Responsibility:
    Creates privilege requests in PENDING at the first approval level, and
    lets the applicant resubmit a request an approver returned for
    modification.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - A request names at least one privilege; duplicates collapse to the
      first occurrence.
    - New privileges start granted (the requested state).
    - Resubmission keeps the grant data of privileges that stay in the
      request and re-enters the pipeline at HEAD_OF_SECTION.

Failure modes:
    - EmptyPrivilegeRequestError when no privileges are given.
    - RequestNotFoundError, NotRequestApplicantError,
      RequestNotReturnedError on resubmission.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from privileges_kernel.domain.approval import (
    FIRST_APPROVAL_LEVEL,
    RequestSnapshot,
    RequestStatus,
)
from privileges_kernel.domain.clock import Clock, SystemClock
from privileges_kernel.exceptions import (
    EmptyPrivilegeRequestError,
    NotRequestApplicantError,
    RequestNotFoundError,
    RequestNotReturnedError,
)
from privileges_kernel.logging_config import get_logger
from privileges_kernel.models.privilege_request import (
    PrivilegeRequestModel,
    RequestedPrivilegeModel,
)
from privileges_kernel.services.auditor_service import AuditorService
from privileges_kernel.services.base import BaseService

logger = get_logger("services.request")


def _distinct(privilege_ids: Iterable[UUID]) -> list[UUID]:
    seen: set[UUID] = set()
    ordered = []
    for privilege_id in privilege_ids:
        if privilege_id not in seen:
            seen.add(privilege_id)
            ordered.append(privilege_id)
    return ordered


class RequestService(BaseService[PrivilegeRequestModel]):
    """Submission side of the request lifecycle.  Flushes only."""

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()

    def submit_request(
        self,
        applicant_id: UUID,
        privilege_ids: Iterable[UUID],
    ) -> RequestSnapshot:
        """Create a PENDING request awaiting HEAD_OF_SECTION.

        Raises:
            EmptyPrivilegeRequestError: If ``privilege_ids`` is empty.
        """
        ordered = _distinct(privilege_ids)
        if not ordered:
            raise EmptyPrivilegeRequestError(str(applicant_id))

        now = self._clock.now()
        model = PrivilegeRequestModel(
            applicant_id=applicant_id,
            status=RequestStatus.PENDING.value,
            current_level=FIRST_APPROVAL_LEVEL.value,
            version=1,
            submitted_at=now,
            level_entered_at=now,
        )
        model.privileges = [
            RequestedPrivilegeModel(
                privilege_id=privilege_id,
                position=position,
                is_granted=True,
            )
            for position, privilege_id in enumerate(ordered)
        ]
        self.session.add(model)
        self.session.flush()

        snapshot = model.to_dto()
        self._auditor.record_request_submitted(snapshot)

        logger.info(
            "privilege_request_submitted",
            extra={
                "request_id": str(model.id),
                "applicant_id": str(applicant_id),
                "privilege_count": len(ordered),
            },
        )
        return snapshot

    def resubmit_request(
        self,
        request_id: UUID,
        applicant_id: UUID,
        privilege_ids: Iterable[UUID] | None = None,
    ) -> RequestSnapshot:
        """Send a returned request back to HEAD_OF_SECTION.

        When ``privilege_ids`` is given it replaces the privilege set:
        privileges that stay keep their grant data, new ones start
        granted, missing ones are removed.

        Raises:
            RequestNotFoundError: Unknown request.
            NotRequestApplicantError: Caller is not the applicant.
            RequestNotReturnedError: The last decision was not RETURNED.
            EmptyPrivilegeRequestError: Replacement set is empty.
        """
        model = self.session.execute(
            select(PrivilegeRequestModel)
            .where(PrivilegeRequestModel.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise RequestNotFoundError(str(request_id))

        if model.applicant_id != applicant_id:
            logger.warning(
                "resubmission_forbidden_attempt",
                extra={
                    "request_id": str(request_id),
                    "actor_id": str(applicant_id),
                },
            )
            raise NotRequestApplicantError(str(request_id), str(applicant_id))

        if model.status != RequestStatus.PENDING.value or model.returned_at is None:
            raise RequestNotReturnedError(str(request_id), model.status)

        added: list[UUID] = []
        removed: list[UUID] = []
        if privilege_ids is not None:
            added, removed = self._replace_privileges(model, privilege_ids)

        now = self._clock.now()
        model.current_level = FIRST_APPROVAL_LEVEL.value
        model.level_entered_at = now
        model.returned_at = None
        model.version = model.version + 1
        self.session.flush()

        snapshot = model.to_dto()
        self._auditor.record_request_resubmitted(
            snapshot, added=tuple(added), removed=tuple(removed),
        )

        logger.info(
            "privilege_request_resubmitted",
            extra={
                "request_id": str(request_id),
                "applicant_id": str(applicant_id),
                "privileges_added": len(added),
                "privileges_removed": len(removed),
            },
        )
        return snapshot

    def _replace_privileges(
        self,
        model: PrivilegeRequestModel,
        privilege_ids: Iterable[UUID],
    ) -> tuple[list[UUID], list[UUID]]:
        ordered = _distinct(privilege_ids)
        if not ordered:
            raise EmptyPrivilegeRequestError(str(model.applicant_id))

        existing = {p.privilege_id: p for p in model.privileges}
        wanted = set(ordered)

        rows = []
        added = []
        for position, privilege_id in enumerate(ordered):
            row = existing.get(privilege_id)
            if row is None:
                row = RequestedPrivilegeModel(
                    privilege_id=privilege_id,
                    is_granted=True,
                )
                added.append(privilege_id)
            row.position = position
            rows.append(row)

        removed = [pid for pid in existing if pid not in wanted]
        # delete-orphan cascade removes rows dropped from the collection
        model.privileges = rows
        return added, removed
