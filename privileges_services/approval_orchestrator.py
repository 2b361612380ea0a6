"""
privileges_services.approval_orchestrator -- Transactional entry point for decisions.

Responsibility:
    Wires the kernel services for one session and owns the transaction
    around every write: ``submit_decision``, ``submit_request`` and
    ``resubmit_request`` each commit as one unit or roll back as one unit.

Architecture position:
    Services -- the only layer that commits.  Kernel services below it
    flush only.

Invariants enforced:
    - All-or-nothing: the approval record, privilege grant flags, request
      status/level and the audit event commit together.
    - A lost race on the request's version surfaces as
      OptimisticLockError after rollback; there is no internal retry.
    - Storage errors propagate unchanged after rollback.

Failure modes:
    - Every typed error of ApprovalService / RequestService, re-raised
      after rollback.
    - OptimisticLockError on concurrent decisions on one request.
    - SQLAlchemyError on storage failures.

Usage:
    bootstrap()
    with get_session() as session:
        orchestrator = ApprovalOrchestrator.from_settings(
            session, get_active_settings(),
        )
        result = orchestrator.submit_decision(request_id, actor, decision)
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from privileges_config.schema import PrivilegesSettings
from privileges_engines.escalation import DEFAULT_THRESHOLDS
from privileges_kernel.domain.approval import (
    Actor,
    Decision,
    DecisionResult,
    EscalationCandidate,
    EscalationThresholds,
    RequestSnapshot,
)
from privileges_kernel.domain.clock import Clock, SystemClock
from privileges_kernel.exceptions import OptimisticLockError
from privileges_kernel.logging_config import LogContext, get_logger
from privileges_kernel.selectors.request_selector import RequestSelector
from privileges_kernel.services.approval_service import ApprovalService
from privileges_kernel.services.auditor_service import REQUEST_ENTITY, AuditorService
from privileges_kernel.services.request_service import RequestService

logger = get_logger("services.approval_orchestrator")

T = TypeVar("T")


class ApprovalOrchestrator:
    """
    Single point of service construction and transaction control.

    Contract:
        Construct one orchestrator per session.  Reads go through
        ``selector``; writes go through the methods below.

    Non-goals:
        - Does NOT authenticate actors; the caller supplies an
          already-authenticated ``Actor``.
        - Does NOT send notifications; results carry what a notifier needs.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        require_rejection_comments: bool = False,
        escalation_thresholds: EscalationThresholds = DEFAULT_THRESHOLDS,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._escalation_thresholds = escalation_thresholds

        self.auditor = AuditorService(session, self._clock)
        self.approval_service = ApprovalService(
            session,
            self.auditor,
            self._clock,
            require_rejection_comments=require_rejection_comments,
        )
        self.request_service = RequestService(session, self.auditor, self._clock)
        self.selector = RequestSelector(session)

    @classmethod
    def from_settings(
        cls,
        session: Session,
        settings: PrivilegesSettings,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ) -> ApprovalOrchestrator:
        return cls(
            session,
            clock=clock,
            require_rejection_comments=settings.approval.require_rejection_comments,
            escalation_thresholds=settings.escalation.thresholds(),
            auto_commit=auto_commit,
        )

    # =========================================================================
    # Transaction wrapper
    # =========================================================================

    def _run(
        self,
        operation: str,
        request_id: UUID | None,
        work: Callable[[], T],
        **fields: str,
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            request_id=str(request_id) if request_id else None,
            **fields,
        ):
            logger.info(f"{operation}_started")
            t0 = time.monotonic()
            try:
                result = work()
                if self._auto_commit:
                    self._session.commit()
            except StaleDataError as exc:
                self._rollback()
                logger.warning(
                    f"{operation}_conflict",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                )
                raise OptimisticLockError(
                    REQUEST_ENTITY, str(request_id) if request_id else "unknown",
                ) from exc
            except Exception:
                self._rollback()
                logger.warning(
                    f"{operation}_failed",
                    exc_info=True,
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                )
                raise

            logger.info(
                f"{operation}_completed",
                extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
            )
            return result

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()

    # =========================================================================
    # Writes
    # =========================================================================

    def submit_decision(
        self,
        request_id: UUID,
        actor: Actor,
        decision: Decision,
    ) -> DecisionResult:
        """Record one approver decision and commit it atomically.

        Raises:
            NotFoundError, ForbiddenError, InvalidStateError, ValidationError,
            OptimisticLockError, SQLAlchemyError.
        """
        role = getattr(actor.role, "value", actor.role)
        return self._run(
            "approval_decision",
            request_id,
            lambda: self.approval_service.submit_decision(request_id, actor, decision),
            actor_id=str(actor.id),
            actor_role=str(role),
        )

    def submit_request(
        self,
        applicant_id: UUID,
        privilege_ids: Iterable[UUID],
    ) -> RequestSnapshot:
        """Create a new PENDING request and commit it."""
        return self._run(
            "request_submission",
            None,
            lambda: self.request_service.submit_request(applicant_id, privilege_ids),
            actor_id=str(applicant_id),
        )

    def resubmit_request(
        self,
        request_id: UUID,
        applicant_id: UUID,
        privilege_ids: Iterable[UUID] | None = None,
    ) -> RequestSnapshot:
        """Send a returned request back into review and commit it."""
        return self._run(
            "request_resubmission",
            request_id,
            lambda: self.request_service.resubmit_request(
                request_id, applicant_id, privilege_ids,
            ),
            actor_id=str(applicant_id),
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def escalation_candidates(
        self, as_of: datetime | None = None,
    ) -> list[EscalationCandidate]:
        """Requests overdue at their level, using the configured thresholds."""
        return self.selector.list_overdue(
            as_of or self._clock.now(), self._escalation_thresholds,
        )
