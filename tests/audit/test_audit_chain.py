"""
Audit chain tests.

Verifies:
- Every submission, resubmission and decision appends one audit event
- Events are hash-chained from a genesis event with monotonic seq
- Tampering with a stored payload or hash is detected
- ORM updates and deletes of audit events are refused
"""

import pytest
from sqlalchemy import select, update

from privileges_kernel.domain.approval import (
    Decision,
    DecisionOutcome,
    PrivilegeDecision,
    UserRole,
)
from privileges_kernel.exceptions import (
    AuditChainBrokenError,
    ImmutabilityViolationError,
)
from privileges_kernel.models.audit_event import AuditAction, AuditEvent
from privileges_kernel.services.sequence_service import SequenceService
from privileges_kernel.utils.hashing import hash_audit_event, hash_payload


@pytest.fixture
def decided_request(approval_service, approvers, submitted_request, privilege_ids):
    """Submitted, approved by HoS with one denial, returned by HoD."""
    approval_service.submit_decision(
        submitted_request.request_id,
        approvers[UserRole.HEAD_OF_SECTION],
        Decision(
            DecisionOutcome.APPROVED,
            privilege_decisions=(PrivilegeDecision(privilege_ids[1], False, "volume too low"),),
        ),
    )
    approval_service.submit_decision(
        submitted_request.request_id,
        approvers[UserRole.HEAD_OF_DEPT],
        Decision(DecisionOutcome.RETURNED, comments="Add case log"),
    )
    return submitted_request


def _events(session):
    return session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().all()


class TestChainStructure:

    def test_one_event_per_write(self, session, decided_request):
        events = _events(session)
        assert [e.action for e in events] == [
            AuditAction.REQUEST_SUBMITTED.value,
            AuditAction.DECISION_APPROVED.value,
            AuditAction.DECISION_RETURNED.value,
        ]
        assert all(e.entity_id == decided_request.request_id for e in events)

    def test_genesis_and_links(self, session, decided_request):
        events = _events(session)
        assert events[0].is_genesis
        for previous, current in zip(events, events[1:]):
            assert current.prev_hash == previous.hash
            assert current.seq == previous.seq + 1

    def test_hash_matches_contents(self, session, decided_request):
        for event in _events(session):
            assert event.payload_hash == hash_payload(event.payload)
            assert event.hash == hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=event.action,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )

    def test_sequence_counter_tracks_last_event(self, session, decided_request):
        events = _events(session)
        assert SequenceService(session).current_value(SequenceService.AUDIT_EVENT) == events[-1].seq

    def test_decision_payload_carries_outcomes(
        self, auditor_service, approvers, decided_request, privilege_ids,
    ):
        trace = auditor_service.get_trace(decided_request.request_id)
        approved = trace.entries[1]
        assert approved.actor_id == approvers[UserRole.HEAD_OF_SECTION].id
        outcomes = {p["privilege_id"]: p for p in approved.payload["privileges"]}
        assert outcomes[str(privilege_ids[1])]["is_granted"] is False
        assert outcomes[str(privilege_ids[1])]["deny_reason"] == "volume too low"

        returned = trace.entries[2]
        assert returned.payload["comments"] == "Add case log"
        assert returned.payload["status"] == "PENDING"
        assert returned.payload["current_level"] == "HEAD_OF_SECTION"

    def test_trace_of_unknown_entity_is_empty(self, auditor_service):
        from uuid import uuid4

        trace = auditor_service.get_trace(uuid4())
        assert trace.is_empty
        assert trace.last_action is None


class TestChainValidation:

    def test_empty_chain_is_valid(self, auditor_service):
        assert auditor_service.validate_chain() is True

    def test_untouched_chain_is_valid(self, auditor_service, decided_request):
        assert auditor_service.validate_chain() is True

    def test_tampered_payload_detected(self, session, auditor_service, decided_request):
        target = _events(session)[1]
        session.execute(
            update(AuditEvent)
            .where(AuditEvent.id == target.id)
            .values(payload={"status": "APPROVED"})
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor_service.validate_chain()
        assert exc_info.value.audit_event_id == str(target.id)

    def test_tampered_hash_detected(self, session, auditor_service, decided_request):
        target = _events(session)[0]
        session.execute(
            update(AuditEvent)
            .where(AuditEvent.id == target.id)
            .values(hash="0" * 64)
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError):
            auditor_service.validate_chain()

    def test_broken_link_detected(self, session, auditor_service, decided_request):
        events = _events(session)
        target = events[2]
        forged_prev = "f" * 64
        session.execute(
            update(AuditEvent)
            .where(AuditEvent.id == target.id)
            .values(
                prev_hash=forged_prev,
                hash=hash_audit_event(
                    entity_type=target.entity_type,
                    entity_id=str(target.entity_id),
                    action=target.action,
                    payload_hash=target.payload_hash,
                    prev_hash=forged_prev,
                ),
            )
        )
        session.expire_all()

        with pytest.raises(AuditChainBrokenError) as exc_info:
            auditor_service.validate_chain()
        assert exc_info.value.actual_hash == forged_prev


class TestAuditImmutability:

    def test_update_refused(self, session, decided_request):
        event = _events(session)[0]
        event.action = AuditAction.DECISION_APPROVED.value

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_refused(self, session, decided_request):
        event = _events(session)[0]
        session.delete(event)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
