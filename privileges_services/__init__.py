"""
privileges_services -- orchestration over the kernel.

``bootstrap`` prepares logging and the database from settings once per
process.  ``ApprovalOrchestrator`` is the entry point callers (HTTP
handlers, batch jobs) use to submit, resubmit and decide privilege requests.
"""

from privileges_services.approval_orchestrator import ApprovalOrchestrator
from privileges_services.bootstrap import bootstrap

__all__ = ["ApprovalOrchestrator", "bootstrap"]
