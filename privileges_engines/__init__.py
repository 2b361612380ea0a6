"""
Module: privileges_engines
Responsibility:
    Re-exports the pure calculation engines used by kernel services: the
    approval transition engine and the escalation tier classifier.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import privileges_kernel/domain (and sibling engine modules).

Invariants enforced:
    - Purity: engines never read the clock.  Reference times are passed
      in by the caller.
    - Determinism: identical inputs always produce identical outputs.
"""

from privileges_engines.approval import (
    PrivilegeUpdate,
    Transition,
    approval_level_for,
    derive_transition,
    is_approver,
    level_rank,
    next_level,
    normalize_privilege_decisions,
    parse_outcome,
    summarize_progress,
)
from privileges_engines.escalation import (
    DEFAULT_THRESHOLDS,
    escalation_tier,
    hours_between,
)
from privileges_engines.tracer import traced_engine

__all__ = [
    # Approval
    "Transition",
    "PrivilegeUpdate",
    "approval_level_for",
    "derive_transition",
    "is_approver",
    "level_rank",
    "next_level",
    "normalize_privilege_decisions",
    "parse_outcome",
    "summarize_progress",
    # Escalation
    "DEFAULT_THRESHOLDS",
    "escalation_tier",
    "hours_between",
    # Tracing
    "traced_engine",
]
