"""
``@traced_engine``: DEBUG trace records for pure engine calls.

Each call logs ``PRIVILEGES_ENGINE_TRACE`` with the engine name and
version, how long the call took, and a short fingerprint of the inputs
that drove it.  The fingerprint lets two log lines be matched up as the
same decision without logging the inputs themselves.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

# Under the kernel logger root so configure_logging() covers it.
_logger = logging.getLogger("privileges_kernel.engines.tracer")

FINGERPRINT_LENGTH = 16


def _stable_repr(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Mapping):
        return "{" + ",".join(f"{k}:{_stable_repr(value[k])}" for k in sorted(value)) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(map(_stable_repr, value)) + "]"
    return str(value)


def compute_input_fingerprint(fields: tuple[str, ...], arguments: Mapping[str, Any]) -> str:
    """Truncated SHA-256 over ``field=value`` pairs, in ``fields`` order."""
    canonical = "|".join(f"{name}={_stable_repr(arguments.get(name))}" for name in fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Wrap an engine function so every call emits a trace record."""

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = (time.perf_counter() - started) * 1000

            _logger.debug(
                "PRIVILEGES_ENGINE_TRACE",
                extra={
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round(elapsed_ms, 3),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
