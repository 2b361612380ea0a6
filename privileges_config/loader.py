"""
Settings Loader (``privileges_config.loader``).

Responsibility
--------------
Loads the YAML settings file and parses it into the frozen dataclasses
of ``privileges_config.schema``.  Callers use
``privileges_config.get_active_settings()`` rather than this module.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  settings identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Inconsistent escalation thresholds  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from privileges_config.schema import (
    ApprovalSettings,
    DatabaseSettings,
    EscalationSettings,
    LoggingSettings,
    PrivilegesSettings,
)

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{name} must be true or false, got {value!r}")


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=data["url"],
        echo=parse_bool(data.get("echo", False), "database.echo"),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_approval(data: dict[str, Any]) -> ApprovalSettings:
    return ApprovalSettings(
        require_rejection_comments=parse_bool(
            data.get("require_rejection_comments", False),
            "approval.require_rejection_comments",
        ),
    )


def parse_escalation(data: dict[str, Any]) -> EscalationSettings:
    settings = EscalationSettings(
        reminder_hours=float(data.get("reminder_hours", 24)),
        manager_hours=float(data.get("manager_hours", 48)),
        hr_hours=float(data.get("hr_hours", 72)),
    )
    # Raises ValueError on inconsistent thresholds
    settings.thresholds()
    return settings


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown logging.level {level!r}")
    return LoggingSettings(level=level)


def compute_checksum(data: dict[str, Any]) -> str:
    """
    SHA-256 checksum of the canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_settings(data: dict[str, Any]) -> PrivilegesSettings:
    """
    Parse a complete settings dict.

    Raises:
        KeyError: if settings_id, version or database.url is missing.
        ValueError: on invalid values.
    """
    return PrivilegesSettings(
        settings_id=data["settings_id"],
        version=int(data["version"]),
        database=parse_database(data["database"]),
        approval=parse_approval(data.get("approval") or {}),
        escalation=parse_escalation(data.get("escalation") or {}),
        logging=parse_logging(data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> PrivilegesSettings:
    """Load and parse a settings file."""
    return parse_settings(load_yaml_file(path))
