"""SQLAlchemy ORM models."""

from privileges_kernel.models.approval import ApprovalModel
from privileges_kernel.models.audit_event import AuditAction, AuditEvent
from privileges_kernel.models.privilege_request import (
    PrivilegeRequestModel,
    RequestedPrivilegeModel,
)
from privileges_kernel.models.sequence import SequenceCounter

__all__ = [
    "PrivilegeRequestModel",
    "RequestedPrivilegeModel",
    "ApprovalModel",
    "AuditAction",
    "AuditEvent",
    "SequenceCounter",
]
