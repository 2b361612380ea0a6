"""
Module: privileges_kernel.models.approval
Responsibility: ORM persistence for approver decision records.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(request_id, approver_id): one current record per approver per
      request.  A re-decision updates the row in place.
    - decided_at is set exactly when status is not PENDING
      (``ck_approvals_decided_at_matches_status``).
    - Status and level values are limited by check constraints.

Failure modes:
    - IntegrityError on a second record for the same approver.
    - IntegrityError if decided_at and status disagree.

Audit relevance:
    Approval rows hold only the latest decision of each approver.  The
    history of every decision is in the audit_events hash chain.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from privileges_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from privileges_kernel.domain.approval import ApprovalRecord
    from privileges_kernel.models.privilege_request import PrivilegeRequestModel


class ApprovalModel(Base):
    """Persistent approver decision.  Upserted per (request, approver)."""

    __tablename__ = "approvals"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "approver_id",
            name="uq_approvals_request_approver",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', "
            "'RETURNED_FOR_MODIFICATION')",
            name="ck_approvals_valid_status",
        ),
        CheckConstraint(
            "level IN ('HEAD_OF_SECTION', 'HEAD_OF_DEPT', 'COMMITTEE', "
            "'MEDICAL_DIRECTOR')",
            name="ck_approvals_valid_level",
        ),
        CheckConstraint(
            "(status = 'PENDING' AND decided_at IS NULL) "
            "OR (status <> 'PENDING' AND decided_at IS NOT NULL)",
            name="ck_approvals_decided_at_matches_status",
        ),
        Index("ix_approvals_request_id", "request_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("privilege_requests.id"),
        nullable=False,
    )
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    level: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="PENDING",
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    request: Mapped["PrivilegeRequestModel"] = relationship(
        "PrivilegeRequestModel",
        back_populates="approvals",
    )

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} request={self.request_id} "
            f"approver={self.approver_id} {self.level}:{self.status}>"
        )

    def to_dto(self) -> ApprovalRecord:
        """Convert ORM model to frozen domain DTO."""
        from privileges_kernel.domain.approval import (
            ApprovalLevel,
            ApprovalRecord,
            ApprovalStatus,
        )

        return ApprovalRecord(
            approval_id=self.id,
            request_id=self.request_id,
            approver_id=self.approver_id,
            level=ApprovalLevel(self.level),
            status=ApprovalStatus(self.status),
            comments=self.comments,
            decided_at=self.decided_at,
            created_at=self.created_at,
        )
