"""
privileges_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_settings()`` is the one way to obtain settings at runtime.
    It reads the YAML settings file, applies the ``PRIVILEGES_DATABASE_URL``
    environment override, and returns a frozen ``PrivilegesSettings``.

Architecture position:
    Configuration -- above ``privileges_kernel``, below
    ``privileges_services``.  The kernel never imports from here; the
    orchestrator passes the relevant values into kernel services.

Failure modes:
    - ``FileNotFoundError`` -- settings file missing.
    - ``KeyError`` / ``ValueError`` -- invalid settings.

Audit relevance:
    Every call emits a ``PRIVILEGES_CONFIG_TRACE`` log entry carrying the
    settings id, version and checksum.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path

from privileges_config.loader import compute_checksum, load_settings, parse_settings
from privileges_config.schema import (
    ApprovalSettings,
    DatabaseSettings,
    EscalationSettings,
    LoggingSettings,
    PrivilegesSettings,
)

_logger = logging.getLogger("privileges_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"
DATABASE_URL_ENV = "PRIVILEGES_DATABASE_URL"
SETTINGS_PATH_ENV = "PRIVILEGES_SETTINGS_FILE"


def get_active_settings(path: Path | None = None) -> PrivilegesSettings:
    """Load settings from ``path``, ``$PRIVILEGES_SETTINGS_FILE`` or the defaults.

    ``$PRIVILEGES_DATABASE_URL``, when set, replaces ``database.url``.
    """
    settings_path = path or Path(
        os.environ.get(SETTINGS_PATH_ENV) or DEFAULT_SETTINGS_PATH
    )
    settings = load_settings(settings_path)

    override = os.environ.get(DATABASE_URL_ENV)
    if override:
        settings = dataclasses.replace(
            settings,
            database=dataclasses.replace(settings.database, url=override),
        )

    _logger.info(
        "PRIVILEGES_CONFIG_TRACE",
        extra={
            "trace_type": "PRIVILEGES_CONFIG_TRACE",
            "settings_id": settings.settings_id,
            "settings_version": settings.version,
            "checksum": settings.checksum,
            "database_url_overridden": bool(override),
        },
    )
    return settings


__all__ = [
    "get_active_settings",
    "load_settings",
    "parse_settings",
    "compute_checksum",
    "PrivilegesSettings",
    "DatabaseSettings",
    "ApprovalSettings",
    "EscalationSettings",
    "LoggingSettings",
    "DEFAULT_SETTINGS_PATH",
]
