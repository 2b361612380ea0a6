"""Kernel services.  Every service flushes within the caller's transaction."""

from privileges_kernel.services.approval_service import ApprovalService
from privileges_kernel.services.auditor_service import (
    AuditorService,
    AuditTrace,
    AuditTraceEntry,
)
from privileges_kernel.services.base import BaseService
from privileges_kernel.services.request_service import RequestService
from privileges_kernel.services.sequence_service import SequenceService

__all__ = [
    "BaseService",
    "ApprovalService",
    "AuditorService",
    "AuditTrace",
    "AuditTraceEntry",
    "RequestService",
    "SequenceService",
]
