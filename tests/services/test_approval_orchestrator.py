"""
ApprovalOrchestrator tests.

Verifies:
- Each write commits as one unit
- A failure anywhere in a decision rolls back every row it touched
- StaleDataError surfaces as OptimisticLockError
- Decision-scoped log context and lifecycle log events
- Construction from settings
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from privileges_config.loader import parse_settings
from privileges_kernel.domain.approval import (
    ApprovalLevel,
    Decision,
    DecisionOutcome,
    EscalationTier,
    PrivilegeDecision,
    RequestStatus,
    UserRole,
)
from privileges_kernel.exceptions import (
    ConcurrencyError,
    OptimisticLockError,
    RejectionCommentRequiredError,
    RequestAlreadyResolvedError,
)
from privileges_kernel.models.approval import ApprovalModel
from privileges_kernel.models.audit_event import AuditEvent
from privileges_services.approval_orchestrator import ApprovalOrchestrator

APPROVE = Decision(DecisionOutcome.APPROVED)


def _count(session, model, *criteria):
    return session.execute(
        select(func.count()).select_from(model).where(*criteria)
    ).scalar_one()


class TestCommitBoundaries:

    def test_decision_commits(self, session, orchestrator, approvers, applicant_id):
        request = orchestrator.submit_request(applicant_id, [uuid4(), uuid4()])
        result = orchestrator.submit_decision(
            request.request_id, approvers[UserRole.HEAD_OF_SECTION], APPROVE,
        )

        assert result.request.status == RequestStatus.IN_REVIEW
        stored = orchestrator.selector.get(request.request_id)
        assert stored.current_level == ApprovalLevel.HEAD_OF_DEPT

    def test_failure_after_flush_rolls_back_everything(
        self, session, orchestrator, approvers, applicant_id, monkeypatch,
    ):
        p1 = uuid4()
        request = orchestrator.submit_request(applicant_id, [p1])
        events_before = _count(session, AuditEvent)

        def _explode(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(orchestrator.auditor, "record_decision", _explode)

        with pytest.raises(RuntimeError):
            orchestrator.submit_decision(
                request.request_id,
                approvers[UserRole.HEAD_OF_SECTION],
                Decision(
                    DecisionOutcome.APPROVED,
                    privilege_decisions=(PrivilegeDecision(p1, False, "no"),),
                ),
            )

        stored = orchestrator.selector.get(request.request_id)
        assert stored.status == RequestStatus.PENDING
        assert stored.current_level == ApprovalLevel.HEAD_OF_SECTION
        assert stored.version == 1
        assert stored.privileges[0].is_granted is True
        assert _count(session, ApprovalModel, ApprovalModel.request_id == request.request_id) == 0
        assert _count(session, AuditEvent) == events_before

    def test_typed_errors_propagate_after_rollback(
        self, orchestrator, approvers, applicant_id,
    ):
        request = orchestrator.submit_request(applicant_id, [uuid4()])
        orchestrator.submit_decision(
            request.request_id, approvers[UserRole.MEDICAL_DIRECTOR], APPROVE,
        )
        with pytest.raises(RequestAlreadyResolvedError):
            orchestrator.submit_decision(
                request.request_id, approvers[UserRole.ADMIN], APPROVE,
            )
        assert orchestrator.selector.get(request.request_id).status == RequestStatus.APPROVED

    def test_without_auto_commit_caller_owns_transaction(
        self, session, deterministic_clock, applicant_id,
    ):
        orchestrator = ApprovalOrchestrator(
            session, clock=deterministic_clock, auto_commit=False,
        )
        request = orchestrator.submit_request(applicant_id, [uuid4()])

        session.rollback()

        assert orchestrator.selector.find(request.request_id) is None

    def test_resubmission_commits(self, orchestrator, approvers, applicant_id):
        request = orchestrator.submit_request(applicant_id, [uuid4()])
        orchestrator.submit_decision(
            request.request_id,
            approvers[UserRole.HEAD_OF_DEPT],
            Decision(DecisionOutcome.RETURNED),
        )
        snapshot = orchestrator.resubmit_request(request.request_id, applicant_id)
        assert snapshot.returned_at is None
        assert snapshot.version == 3


class TestConflicts:

    def test_stale_data_becomes_optimistic_lock_error(
        self, orchestrator, approvers, applicant_id, monkeypatch,
    ):
        request = orchestrator.submit_request(applicant_id, [uuid4()])

        def _lose_race(request_id, actor, decision):
            raise StaleDataError(
                "UPDATE statement on table 'privilege_requests' expected "
                "to update 1 row(s); 0 were matched."
            )

        monkeypatch.setattr(orchestrator.approval_service, "submit_decision", _lose_race)

        with pytest.raises(OptimisticLockError) as exc_info:
            orchestrator.submit_decision(
                request.request_id, approvers[UserRole.HEAD_OF_SECTION], APPROVE,
            )

        assert isinstance(exc_info.value, ConcurrencyError)
        assert exc_info.value.code == "OPTIMISTIC_LOCK_CONFLICT"
        assert isinstance(exc_info.value.__cause__, StaleDataError)

    def test_conflict_logged(
        self, orchestrator, approvers, applicant_id, monkeypatch, captured_logs,
    ):
        request = orchestrator.submit_request(applicant_id, [uuid4()])

        def _lose_race(request_id, actor, decision):
            raise StaleDataError("lost race")

        monkeypatch.setattr(orchestrator.approval_service, "submit_decision", _lose_race)

        with pytest.raises(OptimisticLockError):
            orchestrator.submit_decision(
                request.request_id, approvers[UserRole.HEAD_OF_SECTION], APPROVE,
            )

        conflicts = [r for r in captured_logs() if r["message"] == "approval_decision_conflict"]
        assert len(conflicts) == 1
        assert conflicts[0]["request_id"] == str(request.request_id)


class TestLogging:

    def test_lifecycle_events_carry_context(
        self, orchestrator, approvers, applicant_id, captured_logs,
    ):
        request = orchestrator.submit_request(applicant_id, [uuid4()])
        actor = approvers[UserRole.HEAD_OF_SECTION]

        orchestrator.submit_decision(request.request_id, actor, APPROVE)

        records = [
            r for r in captured_logs()
            if r["message"] in (
                "approval_decision_started",
                "approval_decision_recorded",
                "approval_decision_completed",
            )
        ]
        assert [r["message"] for r in records] == [
            "approval_decision_started",
            "approval_decision_recorded",
            "approval_decision_completed",
        ]
        correlation_ids = {r["correlation_id"] for r in records}
        assert len(correlation_ids) == 1
        for record in records:
            assert record["request_id"] == str(request.request_id)
            assert record["actor_id"] == str(actor.id)
            assert record["actor_role"] == "HEAD_OF_SECTION"
        assert "duration_ms" in records[-1]

    def test_failure_logged_with_error_code(
        self, orchestrator, approvers, applicant_id, captured_logs,
    ):
        request = orchestrator.submit_request(applicant_id, [uuid4()])
        orchestrator.submit_decision(
            request.request_id,
            approvers[UserRole.HEAD_OF_SECTION],
            Decision(DecisionOutcome.REJECTED),
        )
        with pytest.raises(RequestAlreadyResolvedError):
            orchestrator.submit_decision(
                request.request_id, approvers[UserRole.COMMITTEE], APPROVE,
            )

        failures = [r for r in captured_logs() if r["message"] == "approval_decision_failed"]
        assert len(failures) == 1
        assert failures[0]["exc_code"] == "REQUEST_ALREADY_RESOLVED"

    def test_context_cleared_after_operation(self, orchestrator, applicant_id):
        from privileges_kernel.logging_config import LogContext

        orchestrator.submit_request(applicant_id, [uuid4()])
        assert LogContext.get_all() == {}


class TestFromSettings:

    @pytest.fixture
    def strict_settings(self):
        return parse_settings({
            "settings_id": "strict",
            "version": 2,
            "database": {"url": "sqlite://"},
            "approval": {"require_rejection_comments": True},
            "escalation": {"reminder_hours": 1, "manager_hours": 2, "hr_hours": 3},
        })

    def test_rejection_comments_enforced(
        self, session, deterministic_clock, strict_settings, approvers, applicant_id,
    ):
        orchestrator = ApprovalOrchestrator.from_settings(
            session, strict_settings, clock=deterministic_clock,
        )
        request = orchestrator.submit_request(applicant_id, [uuid4()])

        with pytest.raises(RejectionCommentRequiredError):
            orchestrator.submit_decision(
                request.request_id,
                approvers[UserRole.HEAD_OF_SECTION],
                Decision(DecisionOutcome.REJECTED),
            )

    def test_escalation_thresholds_applied(
        self, session, deterministic_clock, strict_settings, applicant_id,
    ):
        orchestrator = ApprovalOrchestrator.from_settings(
            session, strict_settings, clock=deterministic_clock,
        )
        request = orchestrator.submit_request(applicant_id, [uuid4()])
        deterministic_clock.advance_hours(2.5)

        candidates = orchestrator.escalation_candidates()

        assert [(c.request_id, c.tier) for c in candidates] == [
            (request.request_id, EscalationTier.MANAGER),
        ]
