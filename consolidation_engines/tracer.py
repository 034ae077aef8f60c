"""
consolidation_engines.tracer -- engine invocation tracing.

``@traced_engine`` wraps a pure engine call and emits one
``CONSOLIDATION_ENGINE_TRACE`` record with the engine name and version,
a deterministic fingerprint of selected keyword inputs, and the call
duration.  The decorator only reads kwargs and logs; it never mutates
inputs.
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable
from dataclasses import fields, is_dataclass
from typing import Any

from consolidation_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, (int, float, str)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if is_dataclass(value) and not isinstance(value, type):
        inner = ",".join(
            f"{f.name}:{_canonicalize(getattr(value, f.name))}" for f in fields(value)
        )
        return f"{type(value).__name__}({inner})"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """16-hex-char SHA-256 prefix over the named kwargs; missing ones count as null."""
    parts = [f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits CONSOLIDATION_ENGINE_TRACE for engine invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                fp = compute_input_fingerprint(fingerprint_fields, kwargs)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.debug(
                "CONSOLIDATION_ENGINE_TRACE",
                extra={
                    "trace_type": "CONSOLIDATION_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
