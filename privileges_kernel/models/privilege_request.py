"""
Module: privileges_kernel.models.privilege_request
Responsibility: ORM persistence for privilege requests and the privileges
    requested within them.

Architecture position: Kernel > Models.  May import from db/base.py only
    (domain DTOs are imported lazily inside ``to_dto``).

Invariants enforced:
    - Terminal status has no current level; active status always has one
      (DB check constraint ``ck_privilege_requests_level_matches_status``).
    - deny_reason present only on denied privileges
      (``ck_requested_privileges_deny_reason``).
    - UNIQUE(request_id, privilege_id): a privilege appears once per request.
    - ``version`` is an optimistic lock counter.  The approval service bumps
      it on every decision; SQLAlchemy checks the old value in the UPDATE's
      WHERE clause and raises StaleDataError on a lost race.

Failure modes:
    - IntegrityError on duplicate privilege within one request.
    - IntegrityError if a flush would leave status and level inconsistent.
    - StaleDataError when another transaction committed a decision first.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from privileges_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from privileges_kernel.domain.approval import (
        RequestedPrivilegeRecord,
        RequestSnapshot,
    )
    from privileges_kernel.models.approval import ApprovalModel


class PrivilegeRequestModel(Base):
    """Persistent privilege request.

    Contract:
        Created PENDING at HEAD_OF_SECTION by RequestService; mutated only
        by ApprovalService and RequestService.resubmit_request; never deleted.
    """

    __tablename__ = "privilege_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'IN_REVIEW', 'APPROVED', 'REJECTED')",
            name="ck_privilege_requests_valid_status",
        ),
        CheckConstraint(
            "current_level IS NULL OR current_level IN ("
            "'HEAD_OF_SECTION', 'HEAD_OF_DEPT', 'COMMITTEE', 'MEDICAL_DIRECTOR')",
            name="ck_privilege_requests_valid_level",
        ),
        CheckConstraint(
            "(status IN ('APPROVED', 'REJECTED') AND current_level IS NULL) "
            "OR (status IN ('PENDING', 'IN_REVIEW') AND current_level IS NOT NULL)",
            name="ck_privilege_requests_level_matches_status",
        ),
        # Approver inbox: active requests at a level, oldest first
        Index(
            "ix_privilege_requests_level_waiting",
            "current_level", "level_entered_at",
        ),
        Index("ix_privilege_requests_applicant", "applicant_id"),
    )

    applicant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING",
    )
    current_level: Mapped[str | None] = mapped_column(String(30), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    level_entered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    # Set while the request waits for its applicant after a RETURNED decision
    returned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    privileges: Mapped[list["RequestedPrivilegeModel"]] = relationship(
        "RequestedPrivilegeModel",
        back_populates="request",
        order_by="RequestedPrivilegeModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    approvals: Mapped[list["ApprovalModel"]] = relationship(
        "ApprovalModel",
        back_populates="request",
        order_by="ApprovalModel.created_at",
        lazy="selectin",
    )

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<PrivilegeRequest {self.id} status={self.status} "
            f"level={self.current_level} v{self.version}>"
        )

    def to_dto(self) -> RequestSnapshot:
        """Convert ORM model to frozen domain DTO."""
        from privileges_kernel.domain.approval import (
            ApprovalLevel,
            RequestSnapshot,
            RequestStatus,
        )

        return RequestSnapshot(
            request_id=self.id,
            applicant_id=self.applicant_id,
            status=RequestStatus(self.status),
            current_level=(
                ApprovalLevel(self.current_level) if self.current_level else None
            ),
            version=self.version,
            submitted_at=self.submitted_at,
            level_entered_at=self.level_entered_at,
            completed_at=self.completed_at,
            returned_at=self.returned_at,
            privileges=tuple(p.to_dto() for p in self.privileges),
        )


class RequestedPrivilegeModel(Base):
    """One privilege inside a request, with its current grant decision."""

    __tablename__ = "requested_privileges"

    __table_args__ = (
        UniqueConstraint(
            "request_id", "privilege_id",
            name="uq_requested_privileges_request_privilege",
        ),
        CheckConstraint(
            "deny_reason IS NULL OR is_granted = false",
            name="ck_requested_privileges_deny_reason",
        ),
        Index("ix_requested_privileges_request_id", "request_id"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("privilege_requests.id"),
        nullable=False,
    )
    privilege_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    is_granted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    deny_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    request: Mapped["PrivilegeRequestModel"] = relationship(
        "PrivilegeRequestModel",
        back_populates="privileges",
    )

    def __repr__(self) -> str:
        return (
            f"<RequestedPrivilege {self.privilege_id} "
            f"request={self.request_id} granted={self.is_granted}>"
        )

    def to_dto(self) -> RequestedPrivilegeRecord:
        from privileges_kernel.domain.approval import RequestedPrivilegeRecord

        return RequestedPrivilegeRecord(
            privilege_id=self.privilege_id,
            position=self.position,
            is_granted=self.is_granted,
            deny_reason=self.deny_reason,
        )
