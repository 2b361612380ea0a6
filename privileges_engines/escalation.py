"""
privileges_engines.escalation -- Escalation tiers for waiting requests.

Responsibility:
    Classify how long a request has waited at its current level into
    NONE, REMINDER, MANAGER or HR.  Delivery of reminders is somebody
    else's job; this only says which tier applies.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller passes the
    reference time explicitly.

Invariants enforced:
    - Tiers are monotonic in hours: waiting longer never lowers the tier.
    - A threshold is inclusive: exactly 24h pending is REMINDER at the
      default thresholds.
"""

from __future__ import annotations

from datetime import datetime

from privileges_kernel.domain.approval import EscalationThresholds, EscalationTier

DEFAULT_THRESHOLDS = EscalationThresholds()


def hours_between(start: datetime, end: datetime) -> float:
    """Elapsed hours from ``start`` to ``end``, never negative."""
    return max((end - start).total_seconds() / 3600.0, 0.0)


def escalation_tier(
    hours_pending: float,
    thresholds: EscalationThresholds = DEFAULT_THRESHOLDS,
) -> EscalationTier:
    """Tier that applies after ``hours_pending`` hours at one level."""
    if hours_pending >= thresholds.hr_hours:
        return EscalationTier.HR
    if hours_pending >= thresholds.manager_hours:
        return EscalationTier.MANAGER
    if hours_pending >= thresholds.reminder_hours:
        return EscalationTier.REMINDER
    return EscalationTier.NONE
