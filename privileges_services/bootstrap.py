"""
Process start-up from settings.

``bootstrap()`` is what an HTTP app or batch job calls once before
building orchestrators: it installs JSON logging at the configured level
and the process-wide engine for ``database``.
"""

from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

from privileges_config import get_active_settings
from privileges_config.schema import PrivilegesSettings
from privileges_kernel.db.engine import create_tables, init_engine_from_url
from privileges_kernel.logging_config import configure_logging, get_logger

logger = get_logger("services.bootstrap")


def bootstrap(
    settings: PrivilegesSettings | None = None,
    create_schema: bool = False,
) -> Engine:
    """Configure logging and the database engine from ``settings``.

    Loads the active settings when none are given.  ``create_schema``
    creates any missing tables, for local tooling and first runs.
    """
    settings = settings or get_active_settings()

    configure_logging(level=logging.getLevelNamesMapping()[settings.logging.level])

    db = settings.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )
    if create_schema:
        create_tables()

    logger.info(
        "privileges_bootstrapped",
        extra={
            "settings_id": settings.settings_id,
            "settings_version": settings.version,
            "checksum": settings.checksum,
        },
    )
    return engine
