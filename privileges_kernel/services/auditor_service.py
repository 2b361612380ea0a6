"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for every submission,
    resubmission and approval decision.  Provides chain validation for
    tamper detection and per-request traces for review.

Architecture position:
    Kernel > Services -- imperative shell, called by ApprovalService and
    RequestService.

Invariants enforced:
    - Sequence monotonicity via SequenceService.
    - Chain integrity: ``hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash)``.
    - Append-only: audit events are never modified or deleted (ORM
      listeners on the AuditEvent model).

Failure modes:
    - AuditChainBrokenError: recomputed hash does not match the stored
      hash, or prev_hash does not match the predecessor's hash.

Audit relevance:
    Payloads carry the final request status and level, the actor, and the
    per-privilege outcomes.  Rendering them for humans is left to the
    consumers of the trail.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, NoReturn
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from privileges_kernel.domain.approval import (
    Actor,
    DecisionOutcome,
    RequestedPrivilegeRecord,
    RequestSnapshot,
)
from privileges_kernel.domain.clock import Clock, SystemClock
from privileges_kernel.exceptions import AuditChainBrokenError
from privileges_kernel.logging_config import get_logger
from privileges_kernel.models.audit_event import AuditAction, AuditEvent
from privileges_kernel.services.sequence_service import SequenceService
from privileges_kernel.utils.hashing import (
    hash_audit_event,
    hash_payload,
    to_json_payload,
)

logger = get_logger("services.auditor")

REQUEST_ENTITY = "PrivilegeRequest"

_OUTCOME_ACTIONS: dict[DecisionOutcome, AuditAction] = {
    DecisionOutcome.APPROVED: AuditAction.DECISION_APPROVED,
    DecisionOutcome.REJECTED: AuditAction.DECISION_REJECTED,
    DecisionOutcome.RETURNED: AuditAction.DECISION_RETURNED,
}


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events of one entity, in sequence order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def _privileges_payload(
    privileges: tuple[RequestedPrivilegeRecord, ...],
) -> list[dict[str, Any]]:
    return [
        {
            "privilege_id": p.privilege_id,
            "is_granted": p.is_granted,
            "deny_reason": p.deny_reason,
        }
        for p in privileges
    ]


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT format or deliver events to humans.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _chain_head(self) -> str | None:
        return self._session.execute(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).scalar_one_or_none()

    def _append(
        self,
        request_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any],
        entity_type: str = REQUEST_ENTITY,
    ) -> AuditEvent:
        """Link a new event onto the chain head and flush it."""
        # Allocating the sequence locks the counter row, so no other writer
        # can move the chain head until this transaction ends.
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._chain_head()

        stored = to_json_payload(payload)
        digest = hash_payload(stored)
        event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=request_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=stored,
            payload_hash=digest,
            prev_hash=prev_hash,
            hash=hash_audit_event(entity_type, str(request_id), action.value, digest, prev_hash),
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={"entity_id": str(request_id), "action": action.value, "seq": seq},
        )
        return event

    # Domain-specific recording methods

    def record_request_submitted(
        self,
        request: RequestSnapshot,
    ) -> AuditEvent:
        return self._append(
            request_id=request.request_id,
            action=AuditAction.REQUEST_SUBMITTED,
            actor_id=request.applicant_id,
            payload={
                "status": request.status,
                "current_level": request.current_level,
                "privileges": _privileges_payload(request.privileges),
            },
        )

    def record_request_resubmitted(
        self,
        request: RequestSnapshot,
        added: tuple[UUID, ...] = (),
        removed: tuple[UUID, ...] = (),
    ) -> AuditEvent:
        return self._append(
            request_id=request.request_id,
            action=AuditAction.REQUEST_RESUBMITTED,
            actor_id=request.applicant_id,
            payload={
                "status": request.status,
                "current_level": request.current_level,
                "privileges_added": sorted(str(p) for p in added),
                "privileges_removed": sorted(str(p) for p in removed),
                "privileges": _privileges_payload(request.privileges),
            },
        )

    def record_decision(
        self,
        request: RequestSnapshot,
        actor: Actor,
        outcome: DecisionOutcome,
        comments: str | None,
        previous_status: str,
        previous_level: str | None,
    ) -> AuditEvent:
        """
        Record one approver decision with the request state it produced.

        Preconditions:
            - ``request`` is the snapshot taken after the transition.
        """
        return self._append(
            request_id=request.request_id,
            action=_OUTCOME_ACTIONS[outcome],
            actor_id=actor.id,
            payload={
                "actor_role": actor.role,
                "comments": comments,
                "from_status": previous_status,
                "from_level": previous_level,
                "status": request.status,
                "current_level": request.current_level,
                "privileges": _privileges_payload(request.privileges),
            },
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Walk every audit event in sequence order and re-check it.

        Each event must link to its predecessor's hash (the first to none),
        its payload must still match ``payload_hash``, and its own hash must
        recompute.  Returns True for an intact or empty chain.

        Raises:
            AuditChainBrokenError: at the first event that fails a check.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        previous_hash: str | None = None
        for event in events:
            if event.prev_hash != previous_hash:
                self._chain_broken(event, "broken_link", previous_hash, event.prev_hash)

            actual_payload_hash = hash_payload(event.payload or {})
            if actual_payload_hash != event.payload_hash:
                self._chain_broken(event, "payload_mismatch", event.payload_hash, actual_payload_hash)

            recomputed = hash_audit_event(
                event.entity_type,
                str(event.entity_id),
                event.action,
                event.payload_hash,
                event.prev_hash,
            )
            if recomputed != event.hash:
                self._chain_broken(event, "hash_mismatch", recomputed, event.hash)

            previous_hash = event.hash

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    @staticmethod
    def _chain_broken(
        event: AuditEvent, reason: str, expected: str | None, actual: str | None
    ) -> NoReturn:
        logger.critical(
            "audit_chain_broken",
            extra={"seq": event.seq, "reason": reason},
        )
        raise AuditChainBrokenError(str(event.id), expected or "None", actual or "None")

    # Trace and query methods

    def get_trace(
        self,
        entity_id: UUID,
        entity_type: str = REQUEST_ENTITY,
    ) -> AuditTrace:
        """All audit events of an entity, oldest first."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=AuditAction(event.action),
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )
