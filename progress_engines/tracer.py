"""
progress_engines.tracer -- engine invocation tracer emitting PROGRESS_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps pure engine calls with one structured log
    record: engine name, engine version, a deterministic SHA-256 input
    fingerprint and the duration.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; never touches inputs.

Fingerprinting:
    Selected arguments are canonicalized (dict keys sorted, Decimal and
    UUID as strings, a catalog as ``id:version:checksum``) and hashed.
    Two calls with the same fingerprint and the same catalog must return
    the same result; the trace makes that checkable after the fact.

Usage:
    from progress_engines.tracer import traced_engine

    @traced_engine("percent_complete", "1.0", fingerprint_fields=("component_type",))
    def calculate(self, component_type, current_milestones, catalog):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from progress_kernel.domain.catalog import MilestoneCatalog
from progress_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value; unknown types fall back to ``str()``."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float, Decimal, UUID)):
        return str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, MilestoneCatalog):
        return f"{value.catalog_id}:{value.version}:{value.checksum}"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple, frozenset, set)):
        seq = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return "[" + ",".join(_canonicalize(v) for v in seq) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonicalize({f.name: getattr(value, f.name) for f in dataclasses.fields(value)})
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """SHA-256 prefix (16 hex chars) over the selected arguments.

    Missing fields are recorded as "null".
    """
    parts = [f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator emitting PROGRESS_ENGINE_TRACE for pure engine invocations.

    Args:
        engine_name: Engine identifier (e.g. "delta").
        engine_version: Engine version (e.g. "1.0").
        fingerprint_fields: Parameter names (positional or keyword) hashed
            into the input fingerprint.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.info(
                "PROGRESS_ENGINE_TRACE",
                extra={
                    "trace_type": "PROGRESS_ENGINE_TRACE",
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
