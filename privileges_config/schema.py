"""
Privileges settings schema.

Typed, frozen view of the YAML settings file.  The loader parses YAML
into these types; ``get_active_settings()`` hands them to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from privileges_kernel.domain.approval import EscalationThresholds


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class ApprovalSettings:
    """Decision validation switches."""

    require_rejection_comments: bool = False


@dataclass(frozen=True)
class EscalationSettings:
    """Hours a level may wait before each escalation tier."""

    reminder_hours: float = 24
    manager_hours: float = 48
    hr_hours: float = 72

    def thresholds(self) -> EscalationThresholds:
        return EscalationThresholds(
            reminder_hours=self.reminder_hours,
            manager_hours=self.manager_hours,
            hr_hours=self.hr_hours,
        )


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class PrivilegesSettings:
    """Complete runtime settings.  ``checksum`` identifies the source file."""

    settings_id: str
    version: int
    database: DatabaseSettings
    approval: ApprovalSettings = field(default_factory=ApprovalSettings)
    escalation: EscalationSettings = field(default_factory=EscalationSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
